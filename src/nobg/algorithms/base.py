from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Dict, Optional, Tuple

import torch
from PIL import Image

from ..errors import ModelUnavailableError
from ..utils.downloads import download_file, sha256_file

LOGGER = logging.getLogger(__name__)


@dataclass
class PreprocessResult:
    tensor: torch.Tensor
    orig_size: Tuple[int, int]


class MattingModel(abc.ABC):
    """
    Abstract base class for matting backends.

    Subclasses turn an RGB image into a single channel ``L`` alpha matte of
    the same size. Weights are resolved under ``weights_root`` and fetched
    from ``WEIGHTS_URL`` when missing and downloads are allowed.
    """

    MODEL_NAME: ClassVar[str]
    WEIGHTS_URL: ClassVar[Optional[str]] = None
    WEIGHTS_SHA256: ClassVar[Optional[str]] = None
    DEFAULT_SIZE: ClassVar[int] = 1024
    WEIGHTS_EXTENSION: ClassVar[str] = ".onnx"

    def __init__(self, weights_root: Path, download: bool = True) -> None:
        self.weights = self.ensure_weights(Path(weights_root), download=download)
        self._load(self.weights)

    @classmethod
    def weights_path(cls, root: Path) -> Path:
        return root / f"{cls.MODEL_NAME}{cls.WEIGHTS_EXTENSION}"

    @classmethod
    def ensure_weights(cls, root: Path, download: bool = True) -> Path:
        path = cls.weights_path(root)
        if path.exists() and path.stat().st_size > 0:
            if not cls.WEIGHTS_SHA256 or sha256_file(path) == cls.WEIGHTS_SHA256.lower():
                return path
            LOGGER.warning("Checksum mismatch for %s; fetching a fresh copy.", path)

        if not download or not cls.WEIGHTS_URL:
            raise ModelUnavailableError(
                f"Model weights for '{cls.MODEL_NAME}' not found at {path}. "
                "Place the ONNX file there or enable downloads."
            )

        try:
            return download_file(cls.WEIGHTS_URL, path, cls.WEIGHTS_SHA256)
        except Exception as exc:  # pragma: no cover - network failure is runtime only
            raise ModelUnavailableError(
                f"Could not download weights for '{cls.MODEL_NAME}': {exc}"
            ) from exc

    @abc.abstractmethod
    def _load(self, weights: Path) -> None:
        ...

    @abc.abstractmethod
    def preprocess(self, image: Image.Image) -> PreprocessResult:
        ...

    @abc.abstractmethod
    def run(self, tensor: torch.Tensor) -> torch.Tensor:
        ...

    @abc.abstractmethod
    def postprocess(self, alpha_pred: torch.Tensor, orig_size: Tuple[int, int]) -> Image.Image:
        ...

    def forward(self, image: Image.Image) -> Image.Image:
        prepared = self.preprocess(image)
        with torch.inference_mode():
            raw = self.run(prepared.tensor)
            return self.postprocess(raw, prepared.orig_size)

    def describe(self) -> Dict[str, str]:
        return {"model": self.MODEL_NAME, "weights": self.weights.as_posix()}
