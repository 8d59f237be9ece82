from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from PIL import Image

from nobg.errors import InferenceError


class ConstantInference:
    """Returns a uniform mask and records how many times it ran."""

    def __init__(self, value: int = 255) -> None:
        self.value = value
        self.calls = 0
        self._lock = threading.Lock()

    def infer(self, image: Image.Image) -> Image.Image:
        with self._lock:
            self.calls += 1
        return Image.new("L", image.size, self.value)


class RedFailsInference(ConstantInference):
    """Fails on images whose top-left pixel is pure red."""

    def infer(self, image: Image.Image) -> Image.Image:
        if image.convert("RGB").getpixel((0, 0)) == (255, 0, 0):
            raise InferenceError("model could not segment this image")
        return super().infer(image)


class GatedInference(ConstantInference):
    """Blocks every call until ``gate`` is set."""

    def __init__(self, value: int = 255) -> None:
        super().__init__(value)
        self.gate = threading.Event()

    def infer(self, image: Image.Image) -> Image.Image:
        self.gate.wait(timeout=10)
        return super().infer(image)


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    def _make(name: str = "photo.png", color=(10, 120, 200), size=(16, 12)) -> Path:
        path = tmp_path / "input" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color).save(path)
        return path

    return _make


@pytest.fixture
def image_paths(make_image) -> List[Path]:
    return [
        make_image("a.png", (10, 20, 30)),
        make_image("b.jpg", (40, 50, 60)),
        make_image("c.bmp", (70, 80, 90)),
    ]
