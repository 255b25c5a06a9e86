#!/usr/bin/env python3
"""
Unit tests for upload validation, including the decompression bomb guard.
"""

import struct
import zlib
from unittest.mock import patch

import pytest

from gallery.enums import ImageFormat
from gallery.exceptions import ValidationError
from gallery.models.upload_model import UploadedFile
from gallery.services.file_validator import (
    FileValidator,
    detect_format_from_magic,
    read_image_dimensions,
)


def _png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def write_png_header_only(path, width: int, height: int) -> None:
    """A PNG whose header claims width x height but carries almost no pixel data."""
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    idat = zlib.compress(b"\x00" * 16)
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", ihdr)
        + _png_chunk(b"IDAT", idat)
        + _png_chunk(b"IEND", b"")
    )


@pytest.mark.unit
class TestMagicNumbers:
    @pytest.mark.parametrize(
        "header,expected",
        [
            (b"\xff\xd8\xff\xe0" + b"\x00" * 8, ImageFormat.JPEG),
            (b"\x89PNG\r\n\x1a\n\x00\x00\x00\x00", ImageFormat.PNG),
            (b"RIFF\x00\x00\x00\x00WEBP", ImageFormat.WEBP),
            (b"GIF89a" + b"\x00" * 6, ImageFormat.GIF),
            (b"GIF87a" + b"\x00" * 6, ImageFormat.GIF),
            (b"RIFF\x00\x00\x00\x00WAVE", None),
            (b"%PDF-1.7\n\x00\x00\x00", None),
        ],
    )
    def test_detect_format(self, header, expected):
        assert detect_format_from_magic(header) == expected


@pytest.mark.unit
class TestFileValidator:
    @pytest.fixture
    def validator(self):
        return FileValidator(
            max_file_size_mb=1,
            max_files_per_upload=3,
            max_image_width=1000,
            max_image_height=1000,
            max_image_pixels=500_000,
        )

    @pytest.mark.parametrize("fmt", ["JPEG", "PNG", "WEBP", "GIF"])
    def test_accepts_supported_formats(self, validator, make_upload, fmt):
        extension = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp", "GIF": ".gif"}[fmt]
        upload = make_upload(filename=f"photo{extension}", fmt=fmt)
        assert validator.validate(upload) == ImageFormat[fmt]

    @pytest.mark.parametrize(
        "filename,message",
        [
            ("", "Invalid file name"),
            ("../escape.jpg", "invalid characters"),
            ("a" * 256 + ".jpg", "too long"),
            ("photo", "no extension"),
            ("photo.bmp", "not allowed"),
        ],
    )
    def test_rejects_bad_file_names(self, validator, make_upload, filename, message):
        upload = make_upload(filename=filename)
        with pytest.raises(ValidationError, match=message):
            validator.validate(upload)

    def test_rejects_disallowed_mime_type(self, validator, make_upload):
        upload = make_upload(content_type="application/pdf")
        with pytest.raises(ValidationError, match="MIME type"):
            validator.validate(upload)

    def test_rejects_empty_file(self, validator, tmp_path):
        path = tmp_path / "empty.jpg"
        path.write_bytes(b"")
        upload = UploadedFile(filename="empty.jpg", content_type="image/jpeg", path=path)
        with pytest.raises(ValidationError, match="empty"):
            validator.validate(upload)

    def test_rejects_oversized_file(self, validator, tmp_path):
        path = tmp_path / "big.jpg"
        path.write_bytes(b"\xff\xd8\xff" + b"\x00" * (1024 * 1024 + 1))
        upload = UploadedFile(filename="big.jpg", content_type="image/jpeg", path=path)
        with pytest.raises(ValidationError, match="exceeds maximum allowed size"):
            validator.validate(upload)

    def test_rejects_content_that_is_not_an_image(self, validator, tmp_path):
        path = tmp_path / "fake.jpg"
        path.write_bytes(b"this is plain text, not a jpeg")
        upload = UploadedFile(filename="fake.jpg", content_type="image/jpeg", path=path)
        with pytest.raises(ValidationError, match="magic number"):
            validator.validate(upload)

    def test_rejects_oversized_dimensions(self, validator, make_upload):
        upload = make_upload(size=(1200, 10))
        with pytest.raises(ValidationError, match="exceed maximum"):
            validator.validate(upload)

    def test_rejects_pixel_bomb_without_decoding(self, validator, tmp_path):
        path = tmp_path / "bomb.png"
        write_png_header_only(path, 900, 900)
        upload = UploadedFile(filename="bomb.png", content_type="image/png", path=path)

        with patch("PIL.ImageFile.ImageFile.load") as load:
            with pytest.raises(ValidationError, match="pixels"):
                validator.validate(upload)
        load.assert_not_called()

    def test_rejects_huge_bomb_header(self, tmp_path):
        path = tmp_path / "bomb.png"
        write_png_header_only(path, 60_000, 60_000)
        upload = UploadedFile(filename="bomb.png", content_type="image/png", path=path)
        with pytest.raises(ValidationError):
            FileValidator().validate(upload)

    def test_batch_reports_every_failing_file(self, validator, make_upload):
        uploads = [
            make_upload(filename="ok.jpg"),
            make_upload(filename="bad.bmp"),
            make_upload(filename="ok2.jpg"),
        ]
        uploads.append(make_upload(filename="also-bad.jpg", content_type="text/plain"))
        validator.max_files_per_upload = 10

        with pytest.raises(ValidationError) as exc_info:
            validator.validate_batch(uploads)

        errors = exc_info.value.errors
        assert len(errors) == 2
        assert errors[0].startswith("File 2 (bad.bmp)")
        assert errors[1].startswith("File 4 (also-bad.jpg)")

    @pytest.mark.parametrize("count", [0, 4])
    def test_batch_count_limits(self, validator, make_upload, count):
        uploads = [make_upload() for _ in range(count)]
        with pytest.raises(ValidationError):
            validator.validate_batch(uploads)

    def test_read_image_dimensions(self, make_image, tmp_path):
        assert read_image_dimensions(make_image(size=(30, 20))) == (30, 20)
        junk = tmp_path / "junk.jpg"
        junk.write_bytes(b"junk")
        assert read_image_dimensions(junk) is None
