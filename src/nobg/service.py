from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from .background import ProcessOptions
from .batch import BatchCoordinator, BatchItem, BatchRun, ProgressStream
from .clipboard import ClipboardImageSession, ClipboardReader
from .codec import EncodedImage, ImageCodec, ImageSource
from .config import NobgConfig
from .errors import ModelUnavailableError, NoActiveSessionError, SinkWriteError
from .processor import SingleImageProcessor
from .sink import ClipboardWriter, ResultSink, SaveOutcome

if TYPE_CHECKING:
    from .inference import InferenceService

__all__ = ["RemovalService"]

LOGGER = logging.getLogger(__name__)


class RemovalService:
    """
    Entry point for a UI: one method per user action.

    Submitting a new source through any channel drops the clipboard cache;
    single and clipboard operations also discard the current batch run.
    """

    def __init__(
        self,
        inference: "InferenceService",
        config: Optional[NobgConfig] = None,
        clipboard_reader: Optional[ClipboardReader] = None,
        clipboard_writer: Optional[ClipboardWriter] = None,
    ) -> None:
        self.config = config or NobgConfig()
        self.processor = SingleImageProcessor(inference, ImageCodec(self.config.max_dim))
        self.session = ClipboardImageSession(
            self.processor,
            reader=clipboard_reader,
            cache_masks=self.config.cache_masks,
        )
        self.coordinator = BatchCoordinator(self.processor, max_workers=self.config.max_workers)
        self.sink = ResultSink(self.config.output_suffix, clipboard_writer=clipboard_writer)
        self._single_name: Optional[str] = None
        self._single_result: Optional[EncodedImage] = None
        self._single_ticket = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: NobgConfig, **kwargs) -> "RemovalService":
        from .inference import load_inference

        return cls(load_inference(config), config=config, **kwargs)

    def check_model(self) -> Path:
        from .inference import MODEL_REGISTRY

        path = MODEL_REGISTRY[self.config.model_name].weights_path(self.config.weights_dir)
        if not path.exists():
            raise ModelUnavailableError(f"Model weights not found at {path}")
        return path

    @property
    def result(self) -> Optional[EncodedImage]:
        """Result currently shown for the single-image / clipboard view."""
        with self._lock:
            name, result = self._single_name, self._single_result
        if name == "clipboard":
            return self.session.latest
        return result

    def process_single(self, path: Union[str, Path], options: ProcessOptions) -> EncodedImage:
        self.session.invalidate()
        self.coordinator.reset()
        source = ImageSource.from_path(path)
        ticket = self._begin_single(source.name)
        encoded = self.processor.process(source, options)
        with self._lock:
            if ticket == self._single_ticket:
                self._single_result = encoded
        return encoded

    def capture_clipboard(self, options: ProcessOptions) -> EncodedImage:
        self.coordinator.reset()
        self._begin_single("clipboard")
        return self.session.capture_and_process(options)

    def reprocess_clipboard(self, options: ProcessOptions) -> EncodedImage:
        return self.session.reprocess(options)

    def process_batch(
        self,
        paths: Sequence[Union[str, Path]],
        options: ProcessOptions,
    ) -> Tuple[List[BatchItem], ProgressStream]:
        self.session.invalidate()
        self._begin_single(None)
        return self.coordinator.submit(paths, options)

    @property
    def batch(self) -> Optional[BatchRun]:
        return self.coordinator.current_run

    def save_single(self, destination: Union[str, Path]) -> Path:
        encoded = self.result
        if encoded is None:
            raise NoActiveSessionError("There is no result to save")
        return self.sink.save(encoded, destination)

    def suggested_single_name(self) -> str:
        return self.sink.suggested_name(self._single_name)

    def save_batch_item(self, index: int, folder: Union[str, Path]) -> Path:
        run = self._require_batch()
        return self.sink.save_item(run.item(index), folder)

    def save_all_batch(self, folder: Union[str, Path]) -> List[SaveOutcome]:
        run = self._require_batch()
        outcomes = self.sink.save_all(run.snapshot(), folder)
        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed:
            LOGGER.warning("%d of %d files could not be saved", len(failed), len(outcomes))
        return outcomes

    def copy_to_clipboard(self, encoded: Optional[EncodedImage] = None) -> None:
        encoded = encoded or self.result
        if encoded is None:
            raise SinkWriteError("There is no result to copy", source="clipboard")
        self.sink.copy_to_clipboard(encoded)

    def reset(self) -> None:
        self.coordinator.reset()
        self.session.invalidate()
        self._begin_single(None)

    def close(self) -> None:
        self.coordinator.close()

    def _begin_single(self, name: Optional[str]) -> int:
        with self._lock:
            self._single_ticket += 1
            self._single_name, self._single_result = name, None
            return self._single_ticket

    def _require_batch(self) -> BatchRun:
        run = self.coordinator.current_run
        if run is None:
            raise NoActiveSessionError("No batch has been submitted")
        return run
