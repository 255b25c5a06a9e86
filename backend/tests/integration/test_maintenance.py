#!/usr/bin/env python3
"""
Integration tests for maintenance sweeps and the maintenance CLI.
"""

import json

import pytest

import maintenance
from gallery.enums import GalleryJobType, ThumbnailStatus
from gallery.models.thumbnail_job_model import ThumbnailJobPayload
from gallery.services.maintenance_service import MaintenanceService


@pytest.fixture
def service(db, path_resolver):
    return MaintenanceService(db, path_resolver)


@pytest.fixture
def place_with_photos(make_place, photo_ops, path_resolver, make_image):
    place = make_place()
    directory = path_resolver.create_directory(place.id)
    ids = []
    for i in range(3):
        name = f"photo{i}.jpg"
        make_image(name=name, size=(50 + i, 40), directory=directory)
        ids.append(photo_ops.insert_photo(place.id, name).photo_id)
    return place, ids


@pytest.mark.integration
class TestRetryThumbnails:
    def test_requeues_failed_photos(self, service, photo_ops, job_ops, place_with_photos):
        _, ids = place_with_photos
        photo_ops.mark_thumbnail_failed(ids[0])

        result = service.retry_thumbnails()

        assert result["found"] == 1
        assert result["queued"] == 1
        assert photo_ops.get_photo_by_id(ids[0]).thumbnail_status == ThumbnailStatus.PENDING
        assert len(job_ops.get_jobs_for_photo(ids[0])) == 1

    def test_include_pending(self, service, place_with_photos):
        result = service.retry_thumbnails(include_pending=True)
        assert result["found"] == 3

    def test_include_processing_requeues_orphaned_photos(
        self, service, photo_ops, job_ops, place_with_photos
    ):
        place, ids = place_with_photos
        orphaned, running = ids[0], ids[1]
        photo_ops.mark_thumbnail_processing(orphaned)
        photo_ops.mark_thumbnail_processing(running)
        # Only the running photo still has a live job
        job_ops.enqueue(
            ThumbnailJobPayload(
                photo_id=running, place_id=place.id, file_name="photo1.jpg"
            )
        )
        job_ops.claim_pending_jobs()

        result = service.retry_thumbnails(include_processing=True)

        assert result["found"] == 2
        assert result["skipped_active"] == 1
        assert result["photo_ids"] == [orphaned]
        assert photo_ops.get_photo_by_id(orphaned).thumbnail_status == ThumbnailStatus.PENDING
        assert photo_ops.get_photo_by_id(running).thumbnail_status == ThumbnailStatus.PROCESSING
        assert job_ops.has_active_job(orphaned, GalleryJobType.THUMBNAIL)

    def test_processing_photos_are_left_alone_by_default(
        self, service, photo_ops, place_with_photos
    ):
        _, ids = place_with_photos
        photo_ops.mark_thumbnail_processing(ids[2])

        assert service.retry_thumbnails()["found"] == 0
        assert photo_ops.get_photo_by_id(ids[2]).thumbnail_status == ThumbnailStatus.PROCESSING

    def test_dry_run_changes_nothing(self, service, photo_ops, job_ops, place_with_photos):
        _, ids = place_with_photos
        photo_ops.mark_thumbnail_failed(ids[1])

        result = service.retry_thumbnails(dry_run=True)

        assert result["found"] == 1
        assert result["queued"] == 0
        assert photo_ops.get_photo_by_id(ids[1]).thumbnail_status == ThumbnailStatus.FAILED
        assert job_ops.get_jobs_for_photo(ids[1]) == []


@pytest.mark.integration
class TestBackfillDimensions:
    def test_fills_missing_dimensions(self, service, photo_ops, place_with_photos):
        _, ids = place_with_photos

        result = service.backfill_dimensions()

        assert result == {"found": 3, "updated": 3, "failed": 0, "dry_run": False}
        assert (photo_ops.get_photo_by_id(ids[2]).width, photo_ops.get_photo_by_id(ids[2]).height) == (52, 40)
        assert service.backfill_dimensions()["found"] == 0

    def test_missing_blob_is_counted(self, service, path_resolver, place_with_photos):
        place, _ = place_with_photos
        path_resolver.resolve_path(place.id, "photo0.jpg").unlink()

        result = service.backfill_dimensions(dry_run=True)

        assert result["failed"] == 1
        assert result["updated"] == 2


@pytest.mark.integration
class TestGenerateOgImages:
    def test_queues_only_missing_previews(self, service, job_ops, path_resolver, place_with_photos):
        place, ids = place_with_photos
        (path_resolver.resolve_directory(place.id) / "photo0-og.jpg").write_bytes(b"og")

        result = service.generate_og_images()

        assert result["needed"] == 2
        assert result["queued"] == 2
        assert job_ops.get_jobs_for_photo(ids[0]) == []
        assert job_ops.get_jobs_for_photo(ids[1])[0].job_type == GalleryJobType.OG_IMAGE

    def test_force_queues_everything(self, service, place_with_photos):
        place, _ = place_with_photos
        assert service.generate_og_images(place_id=place.id, force=True)["queued"] == 3


@pytest.mark.integration
class TestMaintenanceCli:
    def test_retry_thumbnails_json(self, db, database_url, photo_ops, make_place, capsys):
        place = make_place()
        photo_id = photo_ops.insert_photo(place.id, "x.jpg").photo_id
        photo_ops.mark_thumbnail_failed(photo_id)

        exit_code = maintenance.main(
            ["--json", "--database-url", database_url, "retry-thumbnails"]
        )

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["queued"] == 1
        assert output["photo_ids"] == [photo_id]

    def test_retry_thumbnails_include_processing(
        self, db, database_url, photo_ops, make_place, capsys
    ):
        place = make_place()
        photo_id = photo_ops.insert_photo(place.id, "stuck.jpg").photo_id
        photo_ops.mark_thumbnail_processing(photo_id)

        exit_code = maintenance.main(
            [
                "--json",
                "--database-url",
                database_url,
                "retry-thumbnails",
                "--include-processing",
            ]
        )

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["photo_ids"] == [photo_id]
        assert photo_ops.get_photo_by_id(photo_id).thumbnail_status == ThumbnailStatus.PENDING

    def test_reconcile_dry_run_text_output(self, db, database_url, capsys):
        exit_code = maintenance.main(
            ["--database-url", database_url, "reconcile", "--dry-run"]
        )

        assert exit_code == 0
        assert "[DRY RUN] reconcile" in capsys.readouterr().out

    def test_database_error_exits_non_zero(self, tmp_path, capsys):
        # Schema was never created
        url = f"sqlite:///{tmp_path / 'empty.db'}"
        assert maintenance.main(["--json", "--database-url", url, "backfill-dimensions"]) == 1
        assert json.loads(capsys.readouterr().out)["success"] is False
