"""Decoding sources into RGBA images and encoding results as PNG payloads."""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import EncodeError, UnreadableSourceError

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "DATA_URL_PREFIX",
    "EncodedImage",
    "ImageSource",
    "ImageCodec",
    "is_supported",
]

LOGGER = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif",
        ".tif", ".tiff", ".ico", ".tga", ".pnm", ".pbm",
        ".pgm", ".ppm", ".hdr", ".ff", ".qoi", ".svg",
    }
)

DATA_URL_PREFIX = "data:image/png;base64,"

DEFAULT_MAX_DIM = 4096

# Vector sources are rasterised at least this wide, and never beyond the cap.
SVG_MIN_WIDTH = 2048
SVG_MAX_DIM = 8192


def is_supported(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


@dataclass(frozen=True)
class EncodedImage:
    """PNG-encoded result handed back to callers."""

    data: bytes
    width: int
    height: int

    def data_url(self) -> str:
        return DATA_URL_PREFIX + base64.b64encode(self.data).decode("ascii")

    @classmethod
    def from_data_url(cls, data_url: str) -> "EncodedImage":
        payload = data_url[len(DATA_URL_PREFIX):] if data_url.startswith(DATA_URL_PREFIX) else data_url
        try:
            data = base64.b64decode(payload, validate=True)
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
        except (ValueError, UnidentifiedImageError, OSError) as exc:
            raise EncodeError(f"Invalid PNG payload: {exc}") from exc
        return cls(data=data, width=width, height=height)

    def to_image(self) -> Image.Image:
        with Image.open(io.BytesIO(self.data)) as img:
            img.load()
            return img.convert("RGBA")


@dataclass(frozen=True)
class ImageSource:
    """
    Where an image comes from: a filesystem ``path`` or an in-memory
    ``bitmap``. Exactly one of the two is set.
    """

    path: Optional[str] = None
    bitmap: Optional[Image.Image] = None

    def __post_init__(self) -> None:
        if self.path is not None and self.bitmap is not None:
            raise ValueError("ImageSource takes either a path or a bitmap, not both.")
        if self.path is None and self.bitmap is None:
            raise ValueError("ImageSource needs a path or a bitmap.")
        if self.path is not None:
            path = str(self.path)
            if not path:
                raise ValueError("ImageSource path must not be empty.")
            object.__setattr__(self, "path", path)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageSource":
        return cls(path=str(path))

    @classmethod
    def from_bitmap(cls, bitmap: Image.Image) -> "ImageSource":
        return cls(bitmap=bitmap)

    @property
    def name(self) -> str:
        if self.path is None:
            return "clipboard"
        return Path(self.path).name or "unknown"


class ImageCodec:
    """Pillow-backed decoder/encoder with a cap on the working resolution."""

    def __init__(self, max_dim: Optional[int] = DEFAULT_MAX_DIM) -> None:
        self.max_dim = max_dim

    def decode(self, source: Union[ImageSource, str, Path, bytes, Image.Image]) -> Image.Image:
        if isinstance(source, ImageSource):
            if source.bitmap is not None:
                return self.decode_bitmap(source.bitmap)
            return self.decode_path(source.path)
        if isinstance(source, (bytes, bytearray)):
            return self.decode_bytes(bytes(source))
        if isinstance(source, Image.Image):
            return self.decode_bitmap(source)
        return self.decode_path(source)

    def decode_path(self, path: Union[str, Path]) -> Image.Image:
        path = Path(path)
        if not path.exists():
            raise UnreadableSourceError(f"File not found: {path}", source=path.name)
        if not is_supported(path):
            raise UnreadableSourceError(
                f"Unsupported format '{path.suffix or path.name}'", source=path.name
            )
        if path.suffix.lower() == ".svg":
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise UnreadableSourceError(f"Cannot read file: {exc}", source=path.name) from exc
            return self.decode_svg(data, name=path.name)
        try:
            with Image.open(path) as img:
                img.load()
                return self._normalize(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            LOGGER.debug("Could not decode %s: %s", path, exc)
            raise UnreadableSourceError(f"Cannot decode image: {exc}", source=path.name) from exc

    def decode_bytes(self, data: bytes, name: str = "memory") -> Image.Image:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                return self._normalize(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise UnreadableSourceError(f"Cannot decode image: {exc}", source=name) from exc

    def decode_svg(self, data: bytes, name: str = "memory") -> Image.Image:
        """
        Rasterise an SVG document with cairosvg.

        The drawing is scaled up so it is at least ``SVG_MIN_WIDTH`` pixels
        wide, each side clamped to ``SVG_MAX_DIM``. Documents without a
        positive intrinsic size are rejected.
        """
        try:
            import cairosvg
        except (ImportError, OSError) as exc:
            raise UnreadableSourceError(f"SVG support unavailable: {exc}", source=name) from exc

        try:
            natural = cairosvg.svg2png(bytestring=data)
            with Image.open(io.BytesIO(natural)) as img:
                width, height = img.size
            if width <= 0 or height <= 0:
                raise ValueError("SVG has no drawable size")
            scale = max(SVG_MIN_WIDTH / width, 1.0)
            target = (
                max(1, min(round(width * scale), SVG_MAX_DIM)),
                max(1, min(round(height * scale), SVG_MAX_DIM)),
            )
            png = cairosvg.svg2png(bytestring=data, output_width=target[0], output_height=target[1])
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Could not rasterise SVG %s: %s", name, exc)
            raise UnreadableSourceError(f"Cannot decode SVG: {exc}", source=name) from exc
        LOGGER.debug("Rasterised SVG %s at %dx%d", name, *target)
        return self.decode_bytes(png, name=name)

    def decode_bitmap(self, bitmap: Image.Image, name: str = "clipboard") -> Image.Image:
        try:
            bitmap.load()
            return self._normalize(bitmap)
        except (Image.DecompressionBombError, OSError, ValueError) as exc:
            raise UnreadableSourceError(f"Invalid bitmap: {exc}", source=name) from exc

    def encode(self, image: Image.Image) -> EncodedImage:
        buffer = io.BytesIO()
        try:
            image.save(buffer, format="PNG")
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeError(f"PNG encoding failed: {exc}") from exc
        width, height = image.size
        return EncodedImage(data=buffer.getvalue(), width=width, height=height)

    def _normalize(self, img: Image.Image) -> Image.Image:
        width, height = img.size
        if width == 0 or height == 0:
            raise ValueError("image has zero size")
        img = ImageOps.exif_transpose(img)
        rgba = img.convert("RGBA")
        return self._downscale(rgba)

    def _downscale(self, img: Image.Image) -> Image.Image:
        if not self.max_dim:
            return img
        width, height = img.size
        if width <= self.max_dim and height <= self.max_dim:
            return img
        scale = self.max_dim / max(width, height)
        new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
        LOGGER.info("Downscaling %dx%d image to %dx%d", width, height, *new_size)
        return img.resize(new_size, Image.Resampling.LANCZOS)
