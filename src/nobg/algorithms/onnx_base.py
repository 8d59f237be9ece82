from __future__ import annotations

from pathlib import Path
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import onnxruntime as ort
import torch
import torch.nn.functional as F
from PIL import Image
from torchvision import transforms

from ..errors import InferenceError, ModelUnavailableError
from .base import MattingModel, PreprocessResult

LOGGER = logging.getLogger(__name__)


class ONNXMattingModel(MattingModel):
    """
    Shared ONNXRuntime-backed matting implementation.
    """

    NORMALIZE_MEAN: Tuple[float, float, float] = (0.5, 0.5, 0.5)
    NORMALIZE_STD: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    OUTPUT_SIGMOID: bool = False
    OUTPUT_MINMAX: bool = False

    def __init__(
        self,
        weights_root: Path,
        providers: Sequence[str] = ("CPUExecutionProvider",),
        download: bool = True,
    ) -> None:
        self.session: ort.InferenceSession | None = None
        self.input_name: str | None = None
        self.output_name: str | None = None
        self.providers = list(providers)
        self.transform = transforms.Compose(
            [
                transforms.Resize(
                    (self.DEFAULT_SIZE, self.DEFAULT_SIZE),
                    interpolation=transforms.InterpolationMode.BILINEAR,
                ),
                transforms.ToTensor(),
                transforms.Normalize(mean=self.NORMALIZE_MEAN, std=self.NORMALIZE_STD),
            ]
        )
        super().__init__(weights_root, download=download)

    def _load(self, weights: Path) -> None:
        session_options = ort.SessionOptions()
        session_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        providers = self._resolve_providers(self.providers)
        try:
            session = ort.InferenceSession(
                weights.as_posix(),
                sess_options=session_options,
                providers=providers,
            )
        except Exception as exc:
            raise ModelUnavailableError(
                f"onnxruntime could not load {weights.name}: {exc}"
            ) from exc

        self.session = session
        self.input_name = session.get_inputs()[0].name
        self.output_name = session.get_outputs()[0].name
        LOGGER.info("Loaded %s with providers %s", weights.name, session.get_providers())

    @staticmethod
    def _resolve_providers(requested: Sequence[str]) -> List[str]:
        available = set(ort.get_available_providers())
        providers = [name for name in requested if name in available]
        missing = [name for name in requested if name not in available]
        if missing:
            LOGGER.warning(
                "Execution providers %s are not available; using %s.",
                missing,
                providers or ["CPUExecutionProvider"],
            )
        return providers or ["CPUExecutionProvider"]

    def preprocess(self, image: Image.Image) -> PreprocessResult:
        image = image.convert("RGB")
        tensor = self.transform(image).unsqueeze(0)
        return PreprocessResult(tensor=tensor, orig_size=(image.height, image.width))

    def run(self, tensor: torch.Tensor) -> torch.Tensor:
        if self.session is None or self.input_name is None or self.output_name is None:
            raise InferenceError("ONNX session not initialized.")

        ort_inputs = {self.input_name: tensor.detach().cpu().numpy().astype(np.float32)}
        try:
            outputs = self.session.run([self.output_name], ort_inputs)[0]
        except Exception as exc:
            raise InferenceError(f"{self.MODEL_NAME} inference failed: {exc}") from exc

        alpha = torch.from_numpy(np.asarray(outputs, dtype=np.float32))
        if self.OUTPUT_SIGMOID:
            alpha = torch.sigmoid(alpha)
        if self.OUTPUT_MINMAX:
            lo, hi = alpha.min(), alpha.max()
            alpha = (alpha - lo) / (hi - lo) if hi > lo else torch.zeros_like(alpha)
        return alpha

    def postprocess(self, alpha_pred: torch.Tensor, orig_size: Tuple[int, int]) -> Image.Image:
        if alpha_pred.dim() != 4:
            alpha_pred = alpha_pred.reshape(1, 1, *alpha_pred.shape[-2:])
        orig_h, orig_w = orig_size
        alpha = F.interpolate(
            alpha_pred[:1, :1],
            size=(orig_h, orig_w),
            mode="bilinear",
            align_corners=False,
        )[0, 0]
        alpha = torch.nan_to_num(alpha, nan=0.0, posinf=1.0, neginf=0.0).clamp(0, 1)
        alpha_img = (alpha.numpy() * 255).round().astype("uint8")
        return Image.fromarray(alpha_img)

    def input_shape(self) -> Optional[List]:
        if self.session is None:
            return None
        return list(self.session.get_inputs()[0].shape)
