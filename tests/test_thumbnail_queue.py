"""Tests for the background thumbnail pass."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from media_vault.errors import ThumbnailError
from media_vault.extraction import ThumbnailGenerator, ThumbnailTimings
from media_vault.models import ItemType, ThumbStatus
from media_vault.services import ThumbnailQueue, ThumbnailTask, item_from_import
from media_vault.vault import Vault

MakeImage = Callable[..., bytes]


class FlakyGenerator(ThumbnailGenerator):
    """Fails a fixed number of times before delegating to the real generator."""

    def __init__(self, thumbs_root: Path, failures: int) -> None:
        super().__init__(thumbs_root)
        self.failures = failures
        self.calls = 0

    def generate(
        self, input_path: Path, output_path: Path, max_dimension: int = 480
    ) -> ThumbnailTimings:
        self.calls += 1
        if self.calls <= self.failures:
            raise ThumbnailError("decode", input_path, "transient failure")
        return super().generate(input_path, output_path, max_dimension)


class BlockingGenerator(ThumbnailGenerator):
    """Holds every job until released."""

    def __init__(self, thumbs_root: Path) -> None:
        super().__init__(thumbs_root)
        self.release = threading.Event()

    def generate(
        self, input_path: Path, output_path: Path, max_dimension: int = 480
    ) -> ThumbnailTimings:
        self.release.wait(timeout=5)
        return super().generate(input_path, output_path, max_dimension)


class BrokenGenerator(ThumbnailGenerator):
    """Raises something other than a thumbnail failure."""

    def __init__(self, thumbs_root: Path) -> None:
        super().__init__(thumbs_root)
        self.calls = 0

    def generate(
        self, input_path: Path, output_path: Path, max_dimension: int = 480
    ) -> ThumbnailTimings:
        self.calls += 1
        raise RuntimeError("unexpected")


@pytest.fixture
def large_png(tmp_path: Path, make_image: MakeImage) -> Path:
    path = tmp_path / "large.png"
    path.write_bytes(make_image(1000, 600))
    return path


class TestThumbnailQueue:
    def test_runs_job_and_reports_success(self, tmp_path: Path, large_png: Path) -> None:
        generator = ThumbnailGenerator(tmp_path / "thumbs")
        produced: list[Path] = []

        with ThumbnailQueue(generator) as queue:
            assert queue.enqueue(
                ThumbnailTask(
                    dedupe_key="large.png",
                    input_path=large_png,
                    output_path=generator.path_for("large.png"),
                    on_success=produced.append,
                )
            )
            results = queue.wait()

        assert len(results) == 1
        assert results[0].ok is True
        assert results[0].attempts == 1
        assert produced == [generator.path_for("large.png")]
        with Image.open(produced[0]) as thumb:
            assert thumb.size == (480, 288)

    def test_duplicate_keys_are_ignored_while_queued(
        self, tmp_path: Path, large_png: Path
    ) -> None:
        generator = BlockingGenerator(tmp_path / "thumbs")
        task = ThumbnailTask("large.png", large_png, generator.path_for("large.png"))

        with ThumbnailQueue(generator, concurrency=1) as queue:
            assert queue.enqueue(task) is True
            assert queue.enqueue(task) is False
            assert queue.queue_length == 1
            generator.release.set()
            results = queue.wait()

        assert len(results) == 1
        assert queue.queue_length == 0

    def test_transient_failure_is_retried(self, tmp_path: Path, large_png: Path) -> None:
        generator = FlakyGenerator(tmp_path / "thumbs", failures=1)

        with ThumbnailQueue(generator, max_retries=1) as queue:
            queue.enqueue(ThumbnailTask("k.png", large_png, generator.path_for("k.png")))
            results = queue.wait()

        assert results[0].ok is True
        assert results[0].attempts == 2

    def test_exhausted_retries_call_on_error(self, tmp_path: Path, large_png: Path) -> None:
        generator = FlakyGenerator(tmp_path / "thumbs", failures=10)
        errors: list[BaseException] = []

        with ThumbnailQueue(generator, max_retries=2) as queue:
            queue.enqueue(
                ThumbnailTask(
                    "k.png", large_png, generator.path_for("k.png"), on_error=errors.append
                )
            )
            results = queue.wait()

        assert results[0].ok is False
        assert results[0].attempts == 3
        assert generator.calls == 3
        assert len(errors) == 1
        assert isinstance(errors[0], ThumbnailError)

    def test_callback_failure_does_not_break_the_job(
        self, tmp_path: Path, large_png: Path
    ) -> None:
        generator = ThumbnailGenerator(tmp_path / "thumbs")

        def _explode(_path: Path) -> None:
            raise RuntimeError("callback failed")

        with ThumbnailQueue(generator) as queue:
            queue.enqueue(
                ThumbnailTask("k.png", large_png, generator.path_for("k.png"), on_success=_explode)
            )
            results = queue.wait()

        assert results[0].ok is True

    def test_enqueue_after_shutdown_is_rejected(self, tmp_path: Path, large_png: Path) -> None:
        generator = ThumbnailGenerator(tmp_path / "thumbs")
        queue = ThumbnailQueue(generator)
        queue.shutdown()

        task = ThumbnailTask("k.png", large_png, generator.path_for("k.png"))
        assert queue.enqueue(task) is False


    def test_unexpected_error_fails_job_without_retry(
        self, tmp_path: Path, large_png: Path
    ) -> None:
        generator = BrokenGenerator(tmp_path / "thumbs")
        errors: list[BaseException] = []

        with ThumbnailQueue(generator, max_retries=3) as queue:
            queue.enqueue(
                ThumbnailTask(
                    "k.png", large_png, generator.path_for("k.png"), on_error=errors.append
                )
            )
            results = queue.wait()

        assert results[0].ok is False
        assert results[0].attempts == 1
        assert generator.calls == 1
        assert isinstance(errors[0], RuntimeError)


class TestBackfill:
    def test_pending_items_get_thumbnails(self, vault: Vault, make_image: MakeImage) -> None:
        large = vault.import_bytes(make_image(1000, 600), ext_hint="png", make_thumbnail=False)
        vault.records.insert_items(
            [item_from_import(large, item_id="a"), item_from_import(large, item_id="b")]
        )

        results = vault.backfill_thumbnails()

        assert len(results) == 1
        assert results[0].ok is True
        assert vault.thumbnails.path_for(large.vault_key).exists()
        for item_id in ("a", "b"):
            item = vault.records.get_item(item_id)
            assert item is not None
            assert item.thumb_status == ThumbStatus.READY

    def test_small_items_are_marked_skipped(self, vault: Vault, make_image: MakeImage) -> None:
        small = vault.import_bytes(make_image(100, 100), ext_hint="png", make_thumbnail=False)
        item = item_from_import(small, item_id="small")
        item.thumb_status = ThumbStatus.PENDING
        vault.records.insert_item(item)

        assert vault.backfill_thumbnails() == []

        stored = vault.records.get_item("small")
        assert stored is not None
        assert stored.thumb_status == ThumbStatus.SKIPPED
        assert not vault.thumbnails.path_for(small.vault_key).exists()

    def test_undecodable_items_are_marked_error(self, vault: Vault) -> None:
        broken = vault.import_bytes(b"not an image", ext_hint="png", make_thumbnail=False)
        item = item_from_import(broken, item_id="broken")
        item.type = ItemType.IMAGE
        item.thumb_status = ThumbStatus.PENDING
        vault.records.insert_item(item)

        results = vault.backfill_thumbnails()

        assert results[0].ok is False
        stored = vault.records.get_item("broken")
        assert stored is not None
        assert stored.thumb_status == ThumbStatus.ERROR

    def test_oversized_items_are_marked_error(self, vault: Vault, oversized_png: bytes) -> None:
        huge = vault.import_bytes(oversized_png, ext_hint="png", make_thumbnail=False)
        item = item_from_import(huge, item_id="huge")
        item.thumb_status = ThumbStatus.PENDING
        vault.records.insert_item(item)

        results = vault.backfill_thumbnails()

        assert results[0].ok is False
        stored = vault.records.get_item("huge")
        assert stored is not None
        assert stored.thumb_status == ThumbStatus.ERROR
