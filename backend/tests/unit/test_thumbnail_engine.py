#!/usr/bin/env python3
"""
Tests for ThumbnailEngine, its lock file and the derived-file naming helpers.

These use real Pillow encodes on small images rather than mocks, since the
guarantees under test are about what ends up on disk.
"""

import pytest
from PIL import Image

from gallery.exceptions import NotFoundError, StorageError, ThumbnailLockBusyError
from gallery.services.thumbnail_pipeline import (
    ThumbnailEngine,
    ThumbnailLock,
    calculate_dimensions,
    derived_file_names,
    expected_file_names,
    og_file_name,
    variant_file_names,
)
from gallery.services.thumbnail_pipeline.naming import lock_file_name


@pytest.fixture
def engine():
    engine = ThumbnailEngine(
        quality=70,
        variant_attempts=2,
        backoff_seconds=0,
        variant_timeout_seconds=30,
        lock_timeout_seconds=60,
    )
    yield engine
    engine.close()


@pytest.fixture
def output_dir(tmp_path):
    directory = tmp_path / "places" / "42"
    directory.mkdir(parents=True)
    return directory


def write_truncated_jpeg(path, size=(600, 400)):
    """A JPEG whose header parses but whose pixel data is cut short."""
    Image.effect_noise(size, 64).convert("RGB").save(path, "JPEG", quality=95)
    data = path.read_bytes()
    path.write_bytes(data[: len(data) // 2])


@pytest.mark.unit
@pytest.mark.thumbnail
class TestNaming:
    def test_variant_and_preview_names(self):
        names = [name for _, name, _ in variant_file_names("abc123.jpg")]
        assert names == ["abc123-thumb.webp", "abc123-small.webp", "abc123-medium.webp"]
        assert og_file_name("abc123.png") == "abc123-og.jpg"
        assert lock_file_name("abc123.png") == "abc123.lock"

    def test_expected_file_names(self):
        expected = expected_file_names(["a.jpg", "b.gif"])
        assert len(expected) == 2 * (1 + len(derived_file_names("a.jpg")))
        assert {"a.jpg", "a-og.jpg", "b-medium.webp"} <= expected

    @pytest.mark.parametrize(
        "source,max_dimension,expected",
        [
            ((1600, 1200), 200, (200, 150)),
            ((1000, 3000), 400, (133, 400)),
            ((120, 80), 800, (120, 80)),
            ((5000, 1), 200, (200, 1)),
        ],
    )
    def test_calculate_dimensions(self, source, max_dimension, expected):
        assert calculate_dimensions(*source, max_dimension) == expected

    def test_calculate_dimensions_rejects_empty_source(self):
        with pytest.raises(ValueError):
            calculate_dimensions(0, 10, 200)


@pytest.mark.unit
@pytest.mark.thumbnail
class TestThumbnailEngine:
    def test_generates_every_variant(self, engine, make_image, output_dir):
        source = make_image(name="abc123.jpg", size=(1600, 1200), directory=output_dir)

        assert engine.generate(source, "abc123.jpg", output_dir) == (1600, 1200)

        sizes = {}
        for variant, file_name, _ in variant_file_names("abc123.jpg"):
            with Image.open(output_dir / file_name) as img:
                assert img.format == "WEBP"
                sizes[variant.value] = img.size
        assert sizes == {"thumb": (200, 150), "small": (400, 300), "medium": (800, 600)}
        assert engine.variants_exist("abc123.jpg", output_dir)

    def test_leaves_no_temp_or_lock_files(self, engine, make_image, output_dir):
        source = make_image(name="abc123.png", fmt="PNG", size=(300, 500), directory=output_dir)
        engine.generate(source, "abc123.png", output_dir)

        leftovers = [
            p.name for p in output_dir.iterdir() if ".tmp." in p.name or p.suffix == ".lock"
        ]
        assert leftovers == []
        assert all(p.stat().st_size > 0 for p in output_dir.iterdir())

    def test_is_idempotent(self, engine, make_image, output_dir):
        source = make_image(name="abc123.jpg", size=(500, 500), directory=output_dir)

        def snapshot():
            result = {}
            for _, file_name, _ in variant_file_names("abc123.jpg"):
                path = output_dir / file_name
                with Image.open(path) as img:
                    result[file_name] = (img.size, path.read_bytes())
            return result

        first_dimensions = engine.generate(source, "abc123.jpg", output_dir)
        first = snapshot()
        second_dimensions = engine.generate(source, "abc123.jpg", output_dir)

        assert second_dimensions == first_dimensions
        assert snapshot() == first
        assert sorted(p.name for p in output_dir.iterdir()) == [
            "abc123-medium.webp",
            "abc123-small.webp",
            "abc123-thumb.webp",
            "abc123.jpg",
        ]

    def test_small_source_is_not_upscaled(self, engine, make_image, output_dir):
        source = make_image(name="tiny.gif", fmt="GIF", size=(120, 80), directory=output_dir)
        engine.generate(source, "tiny.gif", output_dir)
        with Image.open(output_dir / "tiny-medium.webp") as img:
            assert img.size == (120, 80)

    def test_missing_source(self, engine, output_dir):
        with pytest.raises(NotFoundError):
            engine.generate(output_dir / "gone.jpg", "gone.jpg", output_dir)

    def test_unreadable_source(self, engine, output_dir):
        source = output_dir / "junk.jpg"
        source.write_bytes(b"not an image at all")
        with pytest.raises(StorageError):
            engine.generate(source, "junk.jpg", output_dir)
        assert not any(p.suffix == ".webp" for p in output_dir.iterdir())

    def test_failed_pass_removes_all_variants(self, engine, output_dir):
        # Variants from an earlier successful pass
        for _, file_name, _ in variant_file_names("broken.jpg"):
            Image.new("RGB", (10, 10)).save(output_dir / file_name, "WEBP")
        source = output_dir / "broken.jpg"
        write_truncated_jpeg(source)

        with pytest.raises(StorageError):
            engine.generate(source, "broken.jpg", output_dir)

        remaining = sorted(p.name for p in output_dir.iterdir())
        assert remaining == ["broken.jpg"]

    def test_decoder_error_mid_pass_removes_written_variants(
        self, engine, make_image, output_dir, monkeypatch
    ):
        source = make_image(name="abc123.jpg", size=(900, 600), directory=output_dir)
        render = engine._render_variant
        rendered = []

        def bomb_on_second_variant(src, final_path, max_dimension):
            rendered.append(final_path.name)
            if len(rendered) == 2:
                raise Image.DecompressionBombError("frame exceeds pixel limit")
            return render(src, final_path, max_dimension)

        monkeypatch.setattr(engine, "_render_variant", bomb_on_second_variant)

        with pytest.raises(Image.DecompressionBombError):
            engine.generate(source, "abc123.jpg", output_dir)

        assert rendered[0] == "abc123-thumb.webp"
        assert sorted(p.name for p in output_dir.iterdir()) == ["abc123.jpg"]

    def test_decompression_bomb_during_render_is_a_storage_error(
        self, engine, make_image, output_dir, monkeypatch
    ):
        source = make_image(name="big.jpg", size=(100, 100), directory=output_dir)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        with pytest.raises(StorageError):
            engine._render_variant(source, output_dir / "big-thumb.webp", 200)
        assert sorted(p.name for p in output_dir.iterdir()) == ["big.jpg"]

    def test_exif_orientation_is_applied(self, engine, output_dir):
        # Stored landscape, displayed portrait (rotate 90 degrees clockwise)
        source = output_dir / "portrait.jpg"
        exif = Image.Exif()
        exif[0x0112] = 6
        Image.new("RGB", (800, 400), (10, 120, 200)).save(source, "JPEG", exif=exif)

        engine.generate(source, "portrait.jpg", output_dir)

        with Image.open(output_dir / "portrait-thumb.webp") as img:
            assert img.size == (100, 200)
        with Image.open(output_dir / "portrait-medium.webp") as img:
            assert img.size == (400, 800)

    def test_busy_lock_blocks_generation(self, engine, make_image, output_dir):
        source = make_image(name="abc123.jpg", directory=output_dir)
        (output_dir / "abc123.lock").write_text("someone-else\n1\nnow\n")

        with pytest.raises(ThumbnailLockBusyError):
            engine.generate(source, "abc123.jpg", output_dir)
        assert (output_dir / "abc123.lock").exists()
        assert not engine.variants_exist("abc123.jpg", output_dir)

    def test_stale_lock_is_taken_over(self, engine, make_image, output_dir, age_path):
        source = make_image(name="abc123.jpg", directory=output_dir)
        lock = output_dir / "abc123.lock"
        lock.write_text("crashed-worker\n1\nlong ago\n")
        age_path(lock, 3600)

        engine.generate(source, "abc123.jpg", output_dir)

        assert engine.variants_exist("abc123.jpg", output_dir)
        assert not lock.exists()

    def test_delete_removes_variants_and_preview(self, engine, make_image, output_dir):
        source = make_image(name="abc123.jpg", size=(300, 300), directory=output_dir)
        engine.generate(source, "abc123.jpg", output_dir)
        (output_dir / "abc123-og.jpg").write_bytes(b"preview")

        assert engine.delete("abc123.jpg", output_dir) == 4
        assert sorted(p.name for p in output_dir.iterdir()) == ["abc123.jpg"]
        assert engine.delete("abc123.jpg", output_dir) == 0


@pytest.mark.unit
@pytest.mark.thumbnail
class TestThumbnailLock:
    def test_lock_file_lifecycle(self, tmp_path):
        lock_path = tmp_path / "x.lock"
        with ThumbnailLock(lock_path, timeout_seconds=60) as lock:
            assert lock_path.read_text().split("\n")[0] == lock.token
        assert not lock_path.exists()

    def test_second_holder_is_refused(self, tmp_path):
        lock_path = tmp_path / "x.lock"
        with ThumbnailLock(lock_path, timeout_seconds=60):
            with pytest.raises(ThumbnailLockBusyError):
                ThumbnailLock(lock_path, timeout_seconds=60).acquire()
        assert not lock_path.exists()

    def test_release_keeps_a_lock_owned_by_someone_else(self, tmp_path):
        lock_path = tmp_path / "x.lock"
        lock = ThumbnailLock(lock_path, timeout_seconds=60)
        lock.acquire()
        lock_path.write_text("new-owner\n2\nnow\n")

        lock.release()

        assert lock_path.read_text().startswith("new-owner")
