"""Concurrent batch runs with per-item progress events."""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .background import ProcessOptions
from .codec import EncodedImage, ImageSource
from .errors import NobgError
from .processor import SingleImageProcessor

__all__ = [
    "ItemStatus",
    "BatchItem",
    "BatchProgressEvent",
    "ProgressStream",
    "BatchRun",
    "BatchCoordinator",
]

LOGGER = logging.getLogger(__name__)


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (ItemStatus.DONE, ItemStatus.ERROR)


_TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.PROCESSING},
    ItemStatus.PROCESSING: {ItemStatus.DONE, ItemStatus.ERROR},
    ItemStatus.DONE: set(),
    ItemStatus.ERROR: set(),
}


def display_name(path: Union[str, Path]) -> str:
    return Path(path).name or "unknown"


@dataclass
class BatchItem:
    id: str
    name: str
    source_path: str
    status: ItemStatus = ItemStatus.PENDING
    result: Optional[EncodedImage] = None
    error: Optional[str] = None

    @classmethod
    def create(cls, source_path: Union[str, Path]) -> "BatchItem":
        path = str(source_path)
        return cls(id=uuid.uuid4().hex, name=display_name(path), source_path=path)

    def _advance(self, status: ItemStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal transition {self.status.value} -> {status.value} for {self.name}")
        self.status = status

    def mark_processing(self) -> None:
        self._advance(ItemStatus.PROCESSING)

    def mark_done(self, result: EncodedImage) -> None:
        self._advance(ItemStatus.DONE)
        self.result = result

    def mark_error(self, message: str) -> None:
        self._advance(ItemStatus.ERROR)
        self.error = message

    def copy(self) -> "BatchItem":
        return replace(self)


@dataclass(frozen=True)
class BatchProgressEvent:
    index: int
    total: int
    name: str
    result: Optional[EncodedImage] = None
    error: Optional[str] = None

    @property
    def status(self) -> ItemStatus:
        return ItemStatus.ERROR if self.error is not None else ItemStatus.DONE


_CLOSED = object()


class ProgressStream:
    """
    Queue of :class:`BatchProgressEvent` for one run.

    Iterating blocks until ``total`` events have been seen or the run is
    reset. ``get(timeout)`` and ``drain`` never raise for an empty queue:
    they return ``None`` and ``[]`` respectively, and ``finished`` tells a
    quiet moment apart from the end of the stream.
    """

    def __init__(self, total: int) -> None:
        self.total = total
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._seen = 0
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def finished(self) -> bool:
        return self.closed or self._seen >= self.total

    def get(self, timeout: Optional[float] = None) -> Optional[BatchProgressEvent]:
        """Next event, or ``None`` if the stream is finished or ``timeout`` expires."""
        if self.finished:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._accept(item)

    def drain(self) -> List[BatchProgressEvent]:
        events: List[BatchProgressEvent] = []
        while not self.finished:
            try:
                event = self._get_nowait()
            except queue.Empty:
                break
            if event is None:
                break
            events.append(event)
        return events

    def _get_nowait(self) -> Optional[BatchProgressEvent]:
        return self._accept(self._queue.get_nowait())

    def _accept(self, item: object) -> Optional[BatchProgressEvent]:
        if item is _CLOSED or self.closed:
            return None
        self._seen += 1
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[BatchProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def _publish(self, event: BatchProgressEvent) -> None:
        self._queue.put(event)

    def _close(self) -> None:
        self._closed.set()
        self._queue.put(_CLOSED)


class BatchRun:
    """
    One fixed set of items sharing a :class:`ProcessOptions` value.

    Items are only mutated here, under the run lock. Once discarded, late
    completions are ignored and the items keep whatever state they had.
    """

    def __init__(self, items: Sequence[BatchItem], options: ProcessOptions) -> None:
        self.items: List[BatchItem] = list(items)
        self.options = options
        self.total = len(self.items)
        self.stream = ProgressStream(self.total)
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._discarded = False
        self._futures: List[Future] = []
        self.initial_snapshot: List[BatchItem] = []
        if self.total == 0:
            self._finished.set()

    @property
    def discarded(self) -> bool:
        with self._lock:
            return self._discarded

    def snapshot(self) -> List[BatchItem]:
        with self._lock:
            return [item.copy() for item in self.items]

    def item(self, index: int) -> BatchItem:
        with self._lock:
            return self.items[index].copy()

    def counts(self) -> dict:
        with self._lock:
            counts = {status: 0 for status in ItemStatus}
            for item in self.items:
                counts[item.status] += 1
            return counts

    def is_complete(self) -> bool:
        with self._lock:
            return all(item.status.terminal for item in self.items)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every item is terminal (or the run is discarded)."""
        return self._finished.wait(timeout)

    def _start(self) -> None:
        with self._lock:
            for item in self.items:
                item.mark_processing()

    def _complete(
        self,
        index: int,
        result: Optional[EncodedImage] = None,
        error: Optional[str] = None,
    ) -> bool:
        with self._lock:
            if self._discarded:
                return False
            item = self.items[index]
            if error is not None:
                item.mark_error(error)
            else:
                item.mark_done(result)
            self.stream._publish(
                BatchProgressEvent(
                    index=index,
                    total=self.total,
                    name=item.name,
                    result=item.result,
                    error=item.error,
                )
            )
            if all(entry.status.terminal for entry in self.items):
                self._finished.set()
            return True

    def _discard(self) -> None:
        with self._lock:
            if self._discarded:
                return
            self._discarded = True
            futures = list(self._futures)
        for future in futures:
            future.cancel()
        self.stream._close()
        self._finished.set()


class BatchCoordinator:
    """
    Drives a :class:`SingleImageProcessor` over many paths with a bounded
    thread pool. Only one run is active; submitting again or calling
    :meth:`reset` discards the previous one.
    """

    def __init__(self, processor: SingleImageProcessor, max_workers: Optional[int] = None) -> None:
        self.processor = processor
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="nobg-batch")
        self._lock = threading.Lock()
        self._run: Optional[BatchRun] = None

    @property
    def current_run(self) -> Optional[BatchRun]:
        with self._lock:
            return self._run

    def submit(
        self,
        sources: Sequence[Union[str, Path]],
        options: ProcessOptions,
    ) -> Tuple[List[BatchItem], ProgressStream]:
        run = self.start(sources, options)
        return run.initial_snapshot, run.stream

    def start(self, sources: Sequence[Union[str, Path]], options: ProcessOptions) -> BatchRun:
        run = BatchRun([BatchItem.create(source) for source in sources], options)
        with self._lock:
            previous, self._run = self._run, run
        if previous is not None:
            previous._discard()

        LOGGER.info("Starting batch of %d images", run.total)
        run._start()
        run.initial_snapshot = run.snapshot()
        futures = [self._executor.submit(self._work, run, index) for index in range(run.total)]
        with run._lock:
            run._futures.extend(futures)
        return run

    def reset(self) -> None:
        with self._lock:
            run, self._run = self._run, None
        if run is not None:
            LOGGER.info("Discarding batch run of %d images", run.total)
            run._discard()

    def close(self) -> None:
        self.reset()
        self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "BatchCoordinator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _work(self, run: BatchRun, index: int) -> None:
        if run.discarded:
            return
        item = run.items[index]
        try:
            encoded = self.processor.process(ImageSource.from_path(item.source_path), run.options)
        except (NobgError, ValueError) as exc:
            LOGGER.debug("Batch item %d (%s) failed: %s", index, item.name, exc)
            delivered = run._complete(index, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Unexpected failure on %s", item.name)
            delivered = run._complete(index, error=f"Unexpected error: {exc}")
        else:
            delivered = run._complete(index, result=encoded)

        if not delivered:
            LOGGER.debug("Dropped result for %s from a discarded run", item.name)
