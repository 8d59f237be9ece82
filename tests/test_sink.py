from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from nobg.batch import BatchItem
from nobg.codec import ImageCodec
from nobg.errors import SinkWriteError
from nobg.sink import ResultSink


@pytest.fixture
def encoded():
    return ImageCodec().encode(Image.new("RGBA", (3, 2), (1, 2, 3, 128)))


def done_item(path: str, encoded) -> BatchItem:
    item = BatchItem.create(path)
    item.mark_processing()
    item.mark_done(encoded)
    return item


def test_suggested_name_strips_extension() -> None:
    sink = ResultSink()
    assert sink.suggested_name("holiday.photo.jpg") == "holiday.photo_nobg.png"
    assert sink.suggested_name(None) == "clipboard_nobg.png"
    assert ResultSink(suffix="-cut").suggested_name("a.webp") == "a-cut.png"


def test_save_writes_png_bytes(tmp_path: Path, encoded) -> None:
    destination = ResultSink().save(encoded, tmp_path / "nested" / "out.png")
    assert destination.read_bytes() == encoded.data
    with Image.open(destination) as img:
        assert img.size == (3, 2)


def test_save_failure_raises_sink_error(tmp_path: Path, encoded) -> None:
    blocker = tmp_path / "taken.png"
    blocker.mkdir()
    with pytest.raises(SinkWriteError):
        ResultSink().save(encoded, blocker)


def test_save_all_writes_items_independently(tmp_path: Path, encoded) -> None:
    folder = tmp_path / "out"
    folder.mkdir()
    (folder / "second_nobg.png").mkdir()  # makes that one write fail

    failed = BatchItem.create("/x/failed.png")
    failed.mark_processing()
    failed.mark_error("inference failed")
    items = [
        done_item("/x/first.png", encoded),
        done_item("/x/second.png", encoded),
        failed,
        done_item("/x/third.png", encoded),
    ]

    outcomes = ResultSink().save_all(items, folder)

    assert [outcome.name for outcome in outcomes] == ["first.png", "second.png", "third.png"]
    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert (folder / "first_nobg.png").is_file()
    assert (folder / "third_nobg.png").is_file()


def test_save_all_disambiguates_duplicate_names(tmp_path: Path, encoded) -> None:
    items = [done_item("/a/same.png", encoded), done_item("/b/same.png", encoded)]
    outcomes = ResultSink().save_all(items, tmp_path)
    assert [outcome.destination.name for outcome in outcomes] == ["same_nobg.png", "same_nobg_1.png"]


def test_save_item_requires_done(tmp_path: Path) -> None:
    with pytest.raises(SinkWriteError):
        ResultSink().save_item(BatchItem.create("/x/a.png"), tmp_path)


def test_copy_to_clipboard_uses_writer(encoded) -> None:
    copied = []
    ResultSink(clipboard_writer=copied.append).copy_to_clipboard(encoded)
    assert copied[0].size == (3, 2)
    assert copied[0].mode == "RGBA"


def test_copy_without_writer_fails(encoded) -> None:
    with pytest.raises(SinkWriteError):
        ResultSink().copy_to_clipboard(encoded)
