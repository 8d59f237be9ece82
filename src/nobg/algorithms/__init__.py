from .base import MattingModel
from .isnet import ISNetMatting
from .onnx_base import ONNXMattingModel
from .rmbg import RMBG14Matting

__all__ = [
    "MattingModel",
    "ONNXMattingModel",
    "ISNetMatting",
    "RMBG14Matting",
]
