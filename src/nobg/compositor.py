from __future__ import annotations

from typing import Union

import numpy as np
from PIL import Image

from .background import BackgroundSpec
from .errors import DimensionMismatchError

__all__ = ["composite", "mask_to_array"]

MaskLike = Union[Image.Image, np.ndarray]


def mask_to_array(mask: MaskLike) -> np.ndarray:
    """Return the mask as a float64 array in [0, 1], shape (H, W)."""
    if isinstance(mask, Image.Image):
        if mask.mode != "L":
            mask = mask.convert("L")
        return np.asarray(mask, dtype=np.float64) / 255.0

    array = np.asarray(mask)
    if array.ndim == 3 and array.shape[-1] == 1:
        array = array[..., 0]
    if array.ndim != 2:
        raise DimensionMismatchError(f"Mask must be single channel, got shape {array.shape}")
    if np.issubdtype(array.dtype, np.integer):
        return array.astype(np.float64) / 255.0
    return np.clip(np.nan_to_num(array.astype(np.float64), nan=0.0), 0.0, 1.0)


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5).clip(0, 255).astype(np.uint8)


def composite(image: Image.Image, mask: MaskLike, spec: BackgroundSpec) -> Image.Image:
    """
    Blend ``image`` against the background described by ``spec``.

    ``Transparent`` keeps RGB and writes the mask into a straight
    (non-premultiplied) alpha channel. Every other spec produces an opaque
    image where each channel is ``mask * src + (1 - mask) * bg``.
    """
    alpha = mask_to_array(mask)
    width, height = image.size
    if alpha.shape != (height, width):
        raise DimensionMismatchError(
            f"Mask is {alpha.shape[1]}x{alpha.shape[0]} but image is {width}x{height}"
        )

    rgb = np.asarray(image.convert("RGB"), dtype=np.float64)
    out = np.empty((height, width, 4), dtype=np.uint8)

    if spec.is_transparent:
        out[..., :3] = rgb.astype(np.uint8)
        out[..., 3] = _round_half_up(alpha * 255.0)
    else:
        background = np.asarray(spec.rgb, dtype=np.float64)
        weight = alpha[..., None]
        out[..., :3] = _round_half_up(weight * rgb + (1.0 - weight) * background)
        out[..., 3] = 255

    return Image.fromarray(out)
