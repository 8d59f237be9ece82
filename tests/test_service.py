from __future__ import annotations

import threading
from pathlib import Path

import pytest
from PIL import Image

from nobg.background import BackgroundSpec, ProcessOptions
from nobg.config import NobgConfig
from nobg.errors import NoActiveSessionError
from nobg.service import RemovalService

from conftest import ConstantInference


@pytest.fixture
def clipboard():
    return {"content": Image.new("RGB", (4, 4), (30, 40, 50))}


@pytest.fixture
def service(tmp_path: Path, clipboard):
    copied = []
    config = NobgConfig(weights_dir=tmp_path / "weights", max_workers=2)
    svc = RemovalService(
        ConstantInference(255),
        config=config,
        clipboard_reader=lambda: clipboard["content"],
        clipboard_writer=copied.append,
    )
    svc.copied = copied
    yield svc
    svc.close()


def test_process_single_invalidates_clipboard(service, make_image) -> None:
    service.capture_clipboard(ProcessOptions())
    service.process_single(make_image(), ProcessOptions(BackgroundSpec.white()))
    with pytest.raises(NoActiveSessionError):
        service.reprocess_clipboard(ProcessOptions())


def test_process_batch_invalidates_clipboard(service, image_paths) -> None:
    service.capture_clipboard(ProcessOptions())
    _, stream = service.process_batch(image_paths, ProcessOptions())
    list(stream)
    with pytest.raises(NoActiveSessionError):
        service.reprocess_clipboard(ProcessOptions())


def test_single_result_can_be_saved_and_copied(service, make_image, tmp_path: Path) -> None:
    path = make_image("cat.jpg")
    encoded = service.process_single(path, ProcessOptions())

    assert service.suggested_single_name() == "cat_nobg.png"
    destination = service.save_single(tmp_path / "out" / service.suggested_single_name())
    assert destination.read_bytes() == encoded.data

    service.copy_to_clipboard()
    assert len(service.copied) == 1


def test_clipboard_result_tracks_latest(service) -> None:
    service.capture_clipboard(ProcessOptions())
    latest = service.reprocess_clipboard(ProcessOptions(BackgroundSpec.black()))
    assert service.result == latest
    assert service.suggested_single_name() == "clipboard_nobg.png"


def test_batch_save_all_and_single_item(service, image_paths, tmp_path: Path) -> None:
    _, stream = service.process_batch(image_paths, ProcessOptions(BackgroundSpec.color(1, 2, 3)))
    assert len(list(stream)) == 3

    folder = tmp_path / "results"
    outcomes = service.save_all_batch(folder)
    assert all(outcome.ok for outcome in outcomes)
    assert sorted(p.name for p in folder.iterdir()) == ["a_nobg.png", "b_nobg.png", "c_nobg.png"]

    single = service.save_batch_item(1, tmp_path / "one")
    assert single.name == "b_nobg.png"


def test_reset_clears_everything(service, image_paths) -> None:
    _, stream = service.process_batch(image_paths, ProcessOptions())
    list(stream)
    service.reset()
    assert service.batch is None
    assert service.result is None
    with pytest.raises(NoActiveSessionError):
        service.save_all_batch("/tmp/unused")


def test_save_single_without_result_fails(service, tmp_path: Path) -> None:
    with pytest.raises(NoActiveSessionError):
        service.save_single(tmp_path / "x.png")


def test_concurrent_single_requests_publish_the_latest(tmp_path: Path, make_image) -> None:
    first_path = make_image("first.png", (1, 2, 3))
    second_path = make_image("second.png", (4, 5, 6))
    started = threading.Event()
    release = threading.Event()

    class FirstCallBlocks(ConstantInference):
        def infer(self, image: Image.Image) -> Image.Image:
            if image.convert("RGB").getpixel((0, 0)) == (1, 2, 3):
                started.set()
                release.wait(timeout=10)
            return super().infer(image)

    svc = RemovalService(FirstCallBlocks(255), config=NobgConfig(weights_dir=tmp_path / "w"))
    try:
        results = {}
        worker = threading.Thread(
            target=lambda: results.setdefault("first", svc.process_single(first_path, ProcessOptions()))
        )
        worker.start()
        assert started.wait(timeout=5)
        second = svc.process_single(second_path, ProcessOptions())
        release.set()
        worker.join(timeout=10)

        assert results["first"] is not None
        assert svc.result is second
        assert svc.suggested_single_name() == "second_nobg.png"
    finally:
        release.set()
        svc.close()
