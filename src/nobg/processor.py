from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from PIL import Image

from .background import ProcessOptions
from .codec import EncodedImage, ImageCodec, ImageSource
from .compositor import composite
from .errors import InferenceError, NobgError

if TYPE_CHECKING:
    from .inference import InferenceService

__all__ = ["SingleImageProcessor"]

LOGGER = logging.getLogger(__name__)


class SingleImageProcessor:
    """
    Runs decode -> infer -> composite -> encode for one image.

    Holds no per-call state, so one instance may serve any number of
    threads as long as the inference service does too.
    """

    def __init__(self, inference: "InferenceService", codec: Optional[ImageCodec] = None) -> None:
        self.inference = inference
        self.codec = codec or ImageCodec()

    def process(self, source: ImageSource, options: ProcessOptions) -> EncodedImage:
        image = self.codec.decode(source)
        return self.render(image, options, name=source.name)

    def predict_mask(self, image: Image.Image, name: Optional[str] = None) -> Image.Image:
        try:
            return self.inference.infer(image)
        except NobgError as exc:
            if exc.source is None:
                exc.source = name
            raise
        except Exception as exc:
            raise InferenceError(f"Inference failed: {exc}", source=name) from exc

    def render(
        self,
        image: Image.Image,
        options: ProcessOptions,
        name: Optional[str] = None,
        mask: Optional[Image.Image] = None,
    ) -> EncodedImage:
        """Composite and encode an already decoded image, inferring its mask unless given."""
        if mask is None:
            mask = self.predict_mask(image, name)
        try:
            result = composite(image, mask, options.background)
            encoded = self.codec.encode(result)
        except NobgError as exc:
            if exc.source is None:
                exc.source = name
            raise
        LOGGER.debug("Processed %s (%s)", name or "image", options.background.kind)
        return encoded
