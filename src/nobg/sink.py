"""Writing results to disk and to the clipboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set, Union

from PIL import Image

from .batch import BatchItem, ItemStatus
from .codec import EncodedImage
from .errors import EncodeError, SinkWriteError

__all__ = ["ResultSink", "SaveOutcome"]

LOGGER = logging.getLogger(__name__)

ClipboardWriter = Callable[[Image.Image], None]


@dataclass
class SaveOutcome:
    name: str
    destination: Optional[Path]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ResultSink:
    """
    Persists encoded results. Clipboard copies go through ``clipboard_writer``,
    a callable taking an RGBA image, supplied by the UI toolkit.
    """

    def __init__(self, suffix: str = "_nobg", clipboard_writer: Optional[ClipboardWriter] = None) -> None:
        self.suffix = suffix
        self.clipboard_writer = clipboard_writer

    def suggested_name(self, source_name: Optional[str]) -> str:
        stem = Path(source_name).stem if source_name else "clipboard"
        return f"{stem or 'output'}{self.suffix}.png"

    def save(self, encoded: EncodedImage, destination: Union[str, Path]) -> Path:
        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(encoded.data)
        except OSError as exc:
            raise SinkWriteError(f"Cannot write {destination}: {exc}", source=destination.name) from exc
        LOGGER.info("Saved %s", destination)
        return destination

    def save_item(self, item: BatchItem, folder: Union[str, Path]) -> Path:
        if item.status is not ItemStatus.DONE or item.result is None:
            raise SinkWriteError(f"Item is {item.status.value}, nothing to save", source=item.name)
        return self.save(item.result, Path(folder) / self.suggested_name(item.name))

    def save_all(self, items: Iterable[BatchItem], folder: Union[str, Path]) -> List[SaveOutcome]:
        """Write every finished item on its own; a failed write does not stop the rest."""
        folder = Path(folder)
        outcomes: List[SaveOutcome] = []
        reserved: Set[Path] = set()

        for item in items:
            if item.status is not ItemStatus.DONE or item.result is None:
                continue
            destination = self._unique_destination(folder / self.suggested_name(item.name), reserved)
            try:
                self.save(item.result, destination)
            except SinkWriteError as exc:
                LOGGER.warning("Saving %s failed: %s", item.name, exc)
                outcomes.append(SaveOutcome(item.name, destination, error=str(exc)))
                continue
            outcomes.append(SaveOutcome(item.name, destination))
        return outcomes

    def copy_to_clipboard(self, encoded: EncodedImage) -> None:
        if self.clipboard_writer is None:
            raise SinkWriteError("No clipboard writer configured", source="clipboard")
        try:
            image = encoded.to_image()
        except OSError as exc:
            raise EncodeError(f"Cannot decode result for the clipboard: {exc}") from exc
        try:
            self.clipboard_writer(image)
        except Exception as exc:
            raise SinkWriteError(f"Clipboard write failed: {exc}", source="clipboard") from exc

    @staticmethod
    def _unique_destination(destination: Path, reserved: Set[Path]) -> Path:
        candidate = destination
        for idx in count(1):
            if candidate not in reserved:
                break
            candidate = destination.with_name(f"{destination.stem}_{idx}{destination.suffix}")
        reserved.add(candidate)
        return candidate
