from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Protocol, runtime_checkable

import numpy as np
import torch
import torch.nn.functional as F
from PIL import Image
from torchvision.transforms import functional as TF

from .algorithms.base import MattingModel
from .algorithms.isnet import ISNetMatting
from .algorithms.onnx_base import ONNXMattingModel
from .algorithms.rmbg import RMBG14Matting
from .config import NobgConfig
from .errors import DimensionMismatchError, InferenceError, NobgError

__all__ = [
    "MODEL_REGISTRY",
    "InferenceService",
    "MattingInference",
    "MaskRefiner",
    "load_inference",
]

LOGGER = logging.getLogger(__name__)


MODEL_REGISTRY: Dict[str, type[MattingModel]] = {
    "rmbg14": RMBG14Matting,
    "isnet": ISNetMatting,
}


@runtime_checkable
class InferenceService(Protocol):
    def infer(self, image: Image.Image) -> Image.Image:
        """Return an ``L`` mask with the same size as ``image``."""
        ...


class MaskRefiner:
    """Threshold, dilate and feather a predicted matte."""

    def __init__(
        self,
        alpha_threshold: Optional[float] = None,
        dilate: int = 0,
        feather: int = 0,
    ) -> None:
        self.alpha_threshold = alpha_threshold
        self.dilate = max(0, dilate)
        self.feather = max(0, feather)

    @classmethod
    def from_config(cls, config: NobgConfig) -> "MaskRefiner":
        return cls(config.alpha_threshold, config.refine_dilate, config.refine_feather)

    @property
    def is_identity(self) -> bool:
        return self.alpha_threshold is None and not self.dilate and not self.feather

    def __call__(self, mask: Image.Image) -> Image.Image:
        if self.is_identity:
            return mask

        alpha_np = np.asarray(mask.convert("L"), dtype=np.float32) / 255.0

        if self.alpha_threshold is not None:
            threshold = max(0.0, min(1.0, self.alpha_threshold))
            alpha_np = (alpha_np >= threshold).astype(np.float32)

        if self.dilate or self.feather:
            alpha_tensor = torch.from_numpy(alpha_np).unsqueeze(0).unsqueeze(0)
            for _ in range(self.dilate):
                alpha_tensor = F.max_pool2d(alpha_tensor, kernel_size=3, stride=1, padding=1)
            if self.feather:
                # gaussian_blur reflect-pads by the radius, which needs each side
                # longer than the radius; replicate-pad first so thin masks blur too.
                radius = self.feather
                padded = F.pad(alpha_tensor, (radius, radius, radius, radius), mode="replicate")
                blurred = TF.gaussian_blur(padded, kernel_size=2 * radius + 1, sigma=radius)
                alpha_tensor = blurred[..., radius:-radius, radius:-radius]
            alpha_np = alpha_tensor.squeeze(0).squeeze(0).clamp(0, 1).numpy()

        return Image.fromarray((alpha_np * 255).round().astype("uint8"))


class MattingInference:
    """
    Adapts a :class:`MattingModel` to the :class:`InferenceService` contract.

    When ``serialize`` is set, calls into the model are made one at a time;
    onnxruntime sessions are shared across worker threads.
    """

    def __init__(
        self,
        model: MattingModel,
        refiner: Optional[MaskRefiner] = None,
        serialize: bool = True,
    ) -> None:
        self.model = model
        self.refiner = refiner or MaskRefiner()
        self._lock = threading.Lock() if serialize else None

    def infer(self, image: Image.Image) -> Image.Image:
        width, height = image.size
        if width == 0 or height == 0:
            raise InferenceError("Invalid image: 0x0 dimensions")

        rgb = image.convert("RGB")
        try:
            if self._lock is not None:
                with self._lock:
                    mask = self.model.forward(rgb)
            else:
                mask = self.model.forward(rgb)
        except NobgError:
            raise
        except Exception as exc:
            raise InferenceError(f"{self.model.MODEL_NAME} failed: {exc}") from exc

        if mask.size != image.size:
            raise DimensionMismatchError(
                f"Model returned a {mask.size[0]}x{mask.size[1]} mask for a {width}x{height} image"
            )
        return self.refiner(mask)


def load_inference(config: NobgConfig) -> MattingInference:
    if config.model_name not in MODEL_REGISTRY:
        raise ValueError(f"Unknown model '{config.model_name}'. Choices: {list(MODEL_REGISTRY)}")

    model_cls = MODEL_REGISTRY[config.model_name]
    if issubclass(model_cls, ONNXMattingModel):
        model = model_cls(
            config.weights_dir,
            providers=config.providers,
            download=config.download_weights,
        )
    else:
        model = model_cls(config.weights_dir, download=config.download_weights)

    LOGGER.info("Inference backend ready: %s", model.describe())
    return MattingInference(
        model,
        refiner=MaskRefiner.from_config(config),
        serialize=config.serialize_inference,
    )
