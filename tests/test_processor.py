from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from nobg.background import BackgroundSpec, ProcessOptions
from nobg.codec import EncodedImage, ImageCodec, ImageSource
from nobg.errors import EncodeError, InferenceError, UnreadableSourceError
from nobg.processor import SingleImageProcessor

from conftest import ConstantInference, RedFailsInference


def test_white_background_end_to_end(make_image) -> None:
    path = make_image("portrait.png", color=(200, 10, 10))
    processor = SingleImageProcessor(ConstantInference(0))

    encoded = processor.process(ImageSource.from_path(path), ProcessOptions(BackgroundSpec.white()))

    assert isinstance(encoded, EncodedImage)
    assert encoded.data.startswith(b"\x89PNG")
    with Image.open(io.BytesIO(encoded.data)) as result:
        assert result.size == (16, 12)
        assert result.mode == "RGBA"
        assert result.getpixel((3, 3)) == (255, 255, 255, 255)


def test_transparent_result_keeps_foreground(make_image) -> None:
    path = make_image(color=(1, 2, 3))
    processor = SingleImageProcessor(ConstantInference(255))

    encoded = processor.process(ImageSource.from_path(path), ProcessOptions())

    assert encoded.to_image().getpixel((0, 0)) == (1, 2, 3, 255)


def test_missing_file_is_unreadable(tmp_path: Path) -> None:
    processor = SingleImageProcessor(ConstantInference())
    with pytest.raises(UnreadableSourceError) as info:
        processor.process(ImageSource.from_path(tmp_path / "nope.png"), ProcessOptions())
    assert info.value.source == "nope.png"


def test_corrupt_file_is_unreadable(tmp_path: Path) -> None:
    broken = tmp_path / "broken.png"
    broken.write_text("not an image")
    processor = SingleImageProcessor(ConstantInference())
    with pytest.raises(UnreadableSourceError):
        processor.process(ImageSource.from_path(broken), ProcessOptions())


def test_unsupported_extension_is_unreadable(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")
    processor = SingleImageProcessor(ConstantInference())
    with pytest.raises(UnreadableSourceError):
        processor.process(ImageSource.from_path(notes), ProcessOptions())


def test_inference_failure_names_the_source(make_image) -> None:
    path = make_image("red.png", color=(255, 0, 0))
    processor = SingleImageProcessor(RedFailsInference())
    with pytest.raises(InferenceError) as info:
        processor.process(ImageSource.from_path(path), ProcessOptions(BackgroundSpec.black()))
    assert info.value.source == "red.png"
    assert "red.png" in str(info.value)


def test_unexpected_inference_exception_is_wrapped(make_image) -> None:
    class Exploding:
        def infer(self, image):
            raise RuntimeError("boom")

    processor = SingleImageProcessor(Exploding())
    with pytest.raises(InferenceError):
        processor.process(ImageSource.from_path(make_image()), ProcessOptions())


def test_encode_failure_surfaces(make_image) -> None:
    class BrokenCodec(ImageCodec):
        def encode(self, image):
            raise EncodeError("disk full")

    processor = SingleImageProcessor(ConstantInference(), codec=BrokenCodec())
    with pytest.raises(EncodeError) as info:
        processor.process(ImageSource.from_path(make_image("x.png")), ProcessOptions())
    assert info.value.source == "x.png"


def test_bitmap_source_is_processed() -> None:
    bitmap = Image.new("RGBA", (5, 4), (9, 9, 9, 255))
    processor = SingleImageProcessor(ConstantInference(255))
    encoded = processor.process(ImageSource.from_bitmap(bitmap), ProcessOptions())
    assert (encoded.width, encoded.height) == (5, 4)


def test_image_source_requires_exactly_one_input() -> None:
    with pytest.raises(ValueError):
        ImageSource()
    with pytest.raises(ValueError):
        ImageSource(path="a.png", bitmap=Image.new("RGB", (1, 1)))
    with pytest.raises(ValueError):
        ImageSource(path="")


def test_large_images_are_downscaled(tmp_path: Path) -> None:
    path = tmp_path / "wide.png"
    Image.new("RGB", (400, 100), "blue").save(path)
    codec = ImageCodec(max_dim=200)
    assert codec.decode(ImageSource.from_path(path)).size == (200, 50)


def test_data_url_round_trip(make_image) -> None:
    processor = SingleImageProcessor(ConstantInference())
    encoded = processor.process(ImageSource.from_path(make_image()), ProcessOptions())
    url = encoded.data_url()
    assert url.startswith("data:image/png;base64,")
    assert EncodedImage.from_data_url(url) == encoded


def test_decompression_bomb_is_unreadable(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "huge.png"
    Image.new("RGB", (100, 100), "white").save(path)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    codec = ImageCodec()

    with pytest.raises(UnreadableSourceError) as info:
        codec.decode(ImageSource.from_path(path))
    assert info.value.source == "huge.png"
    with pytest.raises(UnreadableSourceError):
        codec.decode_bytes(path.read_bytes())


def _require_cairosvg():
    try:
        import cairosvg  # noqa: F401
    except (ImportError, OSError):
        pytest.skip("cairosvg / libcairo not available")


def test_svg_is_rasterised_at_minimum_width(tmp_path: Path) -> None:
    _require_cairosvg()
    path = tmp_path / "logo.svg"
    path.write_text(
        '<svg xmlns="http://www.w3.org/2000/svg" width="100" height="50">'
        '<rect width="100" height="50" fill="#ff0000"/></svg>'
    )
    image = ImageCodec(max_dim=None).decode(ImageSource.from_path(path))
    assert image.size == (2048, 1024)
    assert image.getpixel((1024, 512)) == (255, 0, 0, 255)


def test_svg_width_is_capped(tmp_path: Path) -> None:
    _require_cairosvg()
    path = tmp_path / "strip.svg"
    path.write_text(
        '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="100">'
        '<rect width="10" height="100" fill="#00ff00"/></svg>'
    )
    image = ImageCodec(max_dim=None).decode(ImageSource.from_path(path))
    assert image.size == (2048, 8192)


def test_zero_sized_svg_is_unreadable(tmp_path: Path) -> None:
    _require_cairosvg()
    path = tmp_path / "empty.svg"
    path.write_text('<svg xmlns="http://www.w3.org/2000/svg" width="0" height="0"></svg>')
    with pytest.raises(UnreadableSourceError) as info:
        ImageCodec().decode(ImageSource.from_path(path))
    assert info.value.source == "empty.svg"
