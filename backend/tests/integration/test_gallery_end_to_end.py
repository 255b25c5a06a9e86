#!/usr/bin/env python3
"""
End to end: upload to place 42, run the worker until the queue drains,
then delete a photo and reconcile.
"""

import pytest

from gallery.enums import JobOutcome, ThumbnailStatus
from gallery.services.file_validator import FileValidator
from gallery.services.orphan_reconciler import OrphanReconciler
from gallery.services.thumbnail_pipeline import OgImageGenerator, ThumbnailEngine
from gallery.services.upload_pipeline import UploadPipeline
from gallery.workers.thumbnail_worker import ThumbnailWorker


@pytest.fixture
def worker(db, path_resolver):
    engine = ThumbnailEngine(variant_attempts=1, backoff_seconds=0)
    worker = ThumbnailWorker(
        db,
        path_resolver=path_resolver,
        engine=engine,
        og_generator=OgImageGenerator(font_path=None),
        batch_size=10,
        worker_interval=1,
    )
    yield worker
    engine.close()


def drain(worker, max_cycles=5):
    outcomes = []
    for _ in range(max_cycles):
        batch = worker.process_pending_batch()
        if not batch:
            break
        outcomes.extend(batch)
    return outcomes


@pytest.mark.integration
def test_place_42_lifecycle(db, path_resolver, make_place, make_upload, photo_ops, worker, age_path):
    place = make_place(name="Reykjavik", location="Capital Region", country="Iceland", place_id=42)
    pipeline = UploadPipeline(db, path_resolver, FileValidator())

    result = pipeline.upload_photos(
        42,
        [
            make_upload(filename="aurora.jpg", size=(1600, 900)),
            make_upload(filename="glacier.png", fmt="PNG", size=(600, 800)),
        ],
    )
    assert result.uploaded == 2

    outcomes = drain(worker)
    # Two thumbnail jobs, then two preview jobs
    assert outcomes == [JobOutcome.COMPLETED] * 4

    directory = path_resolver.resolve_directory(place.id)
    photos = photo_ops.get_photos_for_place(42)
    assert all(p.thumbnail_status == ThumbnailStatus.COMPLETED for p in photos)
    for photo in photos:
        stem = photo.file_name.rsplit(".", 1)[0]
        for suffix in ("-thumb.webp", "-small.webp", "-medium.webp", "-og.jpg"):
            assert (directory / f"{stem}{suffix}").is_file()
    assert len(list(directory.iterdir())) == 2 * 5

    removed = pipeline.delete_photo(42, 1)
    remaining = photo_ops.get_photos_for_place(42)
    assert [p.photo_num for p in remaining] == [1]
    assert len(list(directory.iterdir())) == 5

    # Leftovers a crash could have produced
    stray = directory / f"{removed.file_name.rsplit('.', 1)[0]}-thumb.webp"
    stray.write_bytes(b"stale")
    age_path(stray, 7200)
    reconciler = OrphanReconciler(db, path_resolver, min_age_minutes=60, dry_run=False)
    assert reconciler.run().orphan_files_deleted == 1
    assert reconciler.run().total_deleted == 0
    assert len(list(directory.iterdir())) == 5
