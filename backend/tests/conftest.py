#!/usr/bin/env python3
# backend/tests/conftest.py
"""
Pytest configuration and shared fixtures for gallery tests.

Every database test gets its own SQLite file under tmp_path, created with
the same initialization code the CLI uses, and every blob test gets its
own places root.
"""

import os
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

import pytest
from PIL import Image

from gallery.database.core import SyncDatabase, sql
from gallery.database.migrations import initialize_database
from gallery.database.photo_operations import SyncPhotoOperations
from gallery.database.place_operations import SyncPlaceOperations
from gallery.database.thumbnail_job_operations import SyncThumbnailJobOperations
from gallery.models.place_model import Place, PlaceCreate
from gallery.models.upload_model import UploadedFile
from gallery.services.path_resolver import PathResolver
from gallery.utils.time_utils import utc_now

MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}
EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp", "GIF": ".gif"}


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'gallery.db'}"


@pytest.fixture
def db(database_url):
    """Initialized SQLite database, closed after the test."""
    initialize_database(database_url)
    database = SyncDatabase(database_url)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def places_root(tmp_path) -> Path:
    root = tmp_path / "static" / "images" / "places"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def path_resolver(places_root) -> PathResolver:
    return PathResolver(places_root)


@pytest.fixture
def place_ops(db) -> SyncPlaceOperations:
    return SyncPlaceOperations(db)


@pytest.fixture
def photo_ops(db) -> SyncPhotoOperations:
    return SyncPhotoOperations(db, backoff_base_ms=1)


@pytest.fixture
def job_ops(db) -> SyncThumbnailJobOperations:
    return SyncThumbnailJobOperations(db)


@pytest.fixture
def make_place(db, place_ops) -> Callable[..., Place]:
    """
    Factory creating places. With an explicit place_id the row is inserted
    directly so tests can use fixed ids such as 42.
    """

    def _make(
        name: str = "Lisbon",
        location: str = "Lisbon",
        country: str = "Portugal",
        place_id: Optional[int] = None,
    ) -> Place:
        if place_id is None:
            return place_ops.create_place(
                PlaceCreate(name=name, location=location, country=country)
            )
        with db.get_connection() as conn:
            conn.execute(
                sql(
                    """
                    INSERT INTO places (id, name, location, country, slug,
                                        favorites, sort_order, created_at, updated_at)
                    VALUES (:id, :name, :location, :country, :slug, 0, :id, :now, :now)
                    """
                ),
                {
                    "id": place_id,
                    "name": name,
                    "location": location,
                    "country": country,
                    "slug": f"place-{place_id}",
                    "now": utc_now(),
                },
            )
        place = place_ops.get_place(place_id)
        assert place is not None
        return place

    return _make


@pytest.fixture
def make_image(tmp_path) -> Callable[..., Path]:
    """Factory writing a real image file and returning its path."""
    counter = {"n": 0}

    def _make(
        name: Optional[str] = None,
        size: Tuple[int, int] = (64, 48),
        fmt: str = "JPEG",
        color: Tuple[int, int, int] = (200, 120, 40),
        directory: Optional[Path] = None,
    ) -> Path:
        counter["n"] += 1
        target_dir = directory or tmp_path / "spool"
        target_dir.mkdir(parents=True, exist_ok=True)
        file_name = name or f"image_{counter['n']}{EXTENSIONS[fmt]}"
        path = target_dir / file_name
        mode = "P" if fmt == "GIF" else "RGB"
        img = Image.new("RGB", size, color)
        if mode == "P":
            img = img.convert("P")
        img.save(path, fmt)
        return path

    return _make


@pytest.fixture
def make_upload(make_image) -> Callable[..., UploadedFile]:
    """Factory building an UploadedFile backed by a real image."""

    def _make(
        filename: str = "holiday.jpg",
        fmt: str = "JPEG",
        size: Tuple[int, int] = (64, 48),
        content_type: Optional[str] = None,
    ) -> UploadedFile:
        path = make_image(size=size, fmt=fmt)
        return UploadedFile(
            filename=filename,
            content_type=content_type or MIME_TYPES[fmt],
            path=path,
        )

    return _make


def set_age(path: Path, seconds: float) -> None:
    """Backdate a file or directory's mtime by `seconds`."""
    then = time.time() - seconds
    os.utime(path, (then, then))


@pytest.fixture
def age_path() -> Callable[[Path, float], None]:
    return set_age
