from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from PIL import Image, ImageGrab

from .background import ProcessOptions
from .codec import EncodedImage
from .errors import NoActiveSessionError, NoClipboardImageError
from .processor import SingleImageProcessor

__all__ = ["ClipboardImageSession", "grab_clipboard_image"]

LOGGER = logging.getLogger(__name__)

CLIPBOARD_NAME = "clipboard"

ClipboardReader = Callable[[], Any]


def grab_clipboard_image() -> Optional[Image.Image]:
    """Read the system clipboard, returning ``None`` unless it holds a bitmap."""
    try:
        content = ImageGrab.grabclipboard()
    except (OSError, NotImplementedError) as exc:
        raise NoClipboardImageError(f"Clipboard unavailable: {exc}", source=CLIPBOARD_NAME) from exc
    if isinstance(content, Image.Image):
        return content
    return None


class ClipboardImageSession:
    """
    Remembers the last clipboard bitmap so a background change can be
    re-rendered without reading the clipboard again.

    Every call takes a ticket. A result is published to :attr:`latest`
    only when no newer call was started in the meantime; older calls still
    run to completion and return their own result.
    """

    def __init__(
        self,
        processor: SingleImageProcessor,
        reader: Optional[ClipboardReader] = None,
        cache_masks: bool = False,
    ) -> None:
        self.processor = processor
        self.reader = reader or grab_clipboard_image
        self.cache_masks = cache_masks
        self.latest: Optional[EncodedImage] = None
        self._lock = threading.Lock()
        self._bitmap: Optional[Image.Image] = None
        self._mask: Optional[Image.Image] = None
        self._ticket = 0

    @property
    def active(self) -> bool:
        with self._lock:
            return self._bitmap is not None

    def capture_and_process(self, options: ProcessOptions) -> EncodedImage:
        ticket = self._next_ticket()
        content = self.reader()
        if not isinstance(content, Image.Image):
            raise NoClipboardImageError("The clipboard holds no image", source=CLIPBOARD_NAME)

        image = self.processor.codec.decode_bitmap(content, name=CLIPBOARD_NAME)
        with self._lock:
            self._bitmap = image
            self._mask = None
        LOGGER.info("Captured %dx%d clipboard image", *image.size)
        return self._render(ticket, image, None, options)

    def reprocess(self, options: ProcessOptions) -> EncodedImage:
        ticket = self._next_ticket()
        with self._lock:
            image, mask = self._bitmap, self._mask
        if image is None:
            raise NoActiveSessionError("No clipboard image has been captured", source=CLIPBOARD_NAME)
        return self._render(ticket, image, mask, options)

    def invalidate(self) -> None:
        with self._lock:
            self._ticket += 1
            self._bitmap = None
            self._mask = None
            self.latest = None

    def is_current(self, ticket: int) -> bool:
        with self._lock:
            return ticket == self._ticket

    def _next_ticket(self) -> int:
        with self._lock:
            self._ticket += 1
            return self._ticket

    def _render(
        self,
        ticket: int,
        image: Image.Image,
        mask: Optional[Image.Image],
        options: ProcessOptions,
    ) -> EncodedImage:
        if mask is None:
            mask = self.processor.predict_mask(image, CLIPBOARD_NAME)
            if self.cache_masks:
                with self._lock:
                    if self._bitmap is image:
                        self._mask = mask
        encoded = self.processor.render(image, options, name=CLIPBOARD_NAME, mask=mask)

        with self._lock:
            if ticket == self._ticket:
                self.latest = encoded
            else:
                LOGGER.debug("Discarding stale clipboard result (ticket %d)", ticket)
        return encoded
