"""
Background removal toolkit.

Decodes images from files or the clipboard, predicts an alpha matte with an
ONNX matting model, and flattens the result onto a transparent or solid
background, one image at a time or as a concurrent batch.
"""

from .background import BackgroundSpec, ProcessOptions
from .batch import BatchCoordinator, BatchItem, BatchProgressEvent, ItemStatus
from .clipboard import ClipboardImageSession
from .codec import EncodedImage, ImageCodec, ImageSource
from .compositor import composite
from .config import NobgConfig
from .processor import SingleImageProcessor
from .service import RemovalService
from .sink import ResultSink

__all__ = [
    "BackgroundSpec",
    "ProcessOptions",
    "BatchCoordinator",
    "BatchItem",
    "BatchProgressEvent",
    "ItemStatus",
    "ClipboardImageSession",
    "EncodedImage",
    "ImageCodec",
    "ImageSource",
    "composite",
    "NobgConfig",
    "SingleImageProcessor",
    "RemovalService",
    "ResultSink",
]
