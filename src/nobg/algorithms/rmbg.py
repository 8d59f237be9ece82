from __future__ import annotations

from .onnx_base import ONNXMattingModel

__all__ = ["RMBG14Matting"]


class RMBG14Matting(ONNXMattingModel):
    """BRIA RMBG-1.4: 1024x1024 input, ``pixel/255 - 0.5``, output already in [0, 1]."""

    MODEL_NAME = "rmbg-1.4"
    WEIGHTS_URL = (
        "https://github.com/danielgatis/rembg/releases/download/v0.0.0/"
        "rmbg-1.4.onnx"
    )
    DEFAULT_SIZE = 1024
    NORMALIZE_MEAN = (0.5, 0.5, 0.5)
    NORMALIZE_STD = (1.0, 1.0, 1.0)
    OUTPUT_SIGMOID = False
