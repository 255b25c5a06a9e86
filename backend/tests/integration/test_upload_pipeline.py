#!/usr/bin/env python3
"""
Integration tests for the upload pipeline: validation, blob storage,
sequencing and job queueing against SQLite and a temp blob root.
"""

import threading
from unittest.mock import MagicMock

import pytest

from gallery.database.exceptions import PhotoOperationError, ThumbnailJobOperationError
from gallery.enums import GalleryJobType, JobStatus
from gallery.exceptions import NotFoundError, UploadFailedError, ValidationError
from gallery.services.file_validator import FileValidator
from gallery.services.upload_pipeline import UploadPipeline, stored_file_name


@pytest.fixture
def pipeline(db, path_resolver):
    return UploadPipeline(db, path_resolver, FileValidator(max_files_per_upload=10))


@pytest.fixture
def place(make_place):
    return make_place()


def blob_names(path_resolver, place_id):
    directory = path_resolver.resolve_directory(place_id)
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir())


@pytest.mark.integration
class TestStoredFileName:
    @pytest.mark.parametrize(
        "original,extension",
        [("a.JPEG", ".jpg"), ("b.jpeg", ".jpg"), ("c.PNG", ".png"), ("d.webp", ".webp")],
    )
    def test_uuid_name_with_normalized_extension(self, original, extension):
        name = stored_file_name(original)
        stem, _, suffix = name.partition(".")
        assert "." + suffix == extension
        assert len(stem) == 32
        assert stem != stored_file_name(original).partition(".")[0]


@pytest.mark.integration
class TestUploadPhotos:
    def test_uploads_in_order_and_queues_jobs(
        self, pipeline, place, make_upload, photo_ops, job_ops, path_resolver
    ):
        uploads = [
            make_upload(filename="one.jpg"),
            make_upload(filename="two.PNG", fmt="PNG", size=(30, 40)),
            make_upload(filename="three.jpeg"),
        ]

        result = pipeline.upload_photos(place.id, uploads)

        assert result.uploaded == 3
        assert result.errors == []
        photos = photo_ops.get_photos_for_place(place.id)
        assert [p.photo_num for p in photos] == [1, 2, 3]
        assert [p.id for p in photos] == result.photo_ids
        assert photos[1].file_name.endswith(".png")
        assert (photos[1].width, photos[1].height) == (30, 40)
        assert photos[2].file_name.endswith(".jpg")
        assert blob_names(path_resolver, place.id) == sorted(p.file_name for p in photos)

        for photo in photos:
            jobs = job_ops.get_jobs_for_photo(photo.id)
            assert [(j.job_type, j.status) for j in jobs] == [
                (GalleryJobType.THUMBNAIL, JobStatus.PENDING)
            ]

    def test_invalid_batch_stores_nothing(
        self, pipeline, place, make_upload, photo_ops, path_resolver
    ):
        uploads = [make_upload(filename="good.jpg"), make_upload(filename="bad.exe")]

        with pytest.raises(ValidationError) as exc_info:
            pipeline.upload_photos(place.id, uploads)

        assert len(exc_info.value.errors) == 1
        assert photo_ops.count_photos(place.id) == 0
        assert blob_names(path_resolver, place.id) == []

    def test_unknown_place(self, pipeline, make_upload):
        with pytest.raises(NotFoundError):
            pipeline.upload_photos(31337, [make_upload()])

    def test_failed_insert_removes_blob_and_others_continue(
        self, pipeline, place, make_upload, photo_ops, path_resolver, monkeypatch
    ):
        real_insert = pipeline.photo_ops.insert_photo
        calls = {"n": 0}

        def flaky_insert(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise PhotoOperationError("disk I/O error", operation="insert_photo")
            return real_insert(*args, **kwargs)

        monkeypatch.setattr(pipeline.photo_ops, "insert_photo", flaky_insert)
        uploads = [make_upload(filename=f"f{i}.jpg") for i in range(3)]

        result = pipeline.upload_photos(place.id, uploads)

        assert result.uploaded == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("f1.jpg:")
        photos = photo_ops.get_photos_for_place(place.id)
        assert [p.photo_num for p in photos] == [1, 2]
        # Only blobs with rows remain
        assert blob_names(path_resolver, place.id) == sorted(p.file_name for p in photos)

    def test_all_failures_raise(self, pipeline, place, make_upload, path_resolver, monkeypatch):
        monkeypatch.setattr(
            pipeline.photo_ops,
            "insert_photo",
            MagicMock(side_effect=PhotoOperationError("locked", operation="insert_photo")),
        )

        with pytest.raises(UploadFailedError) as exc_info:
            pipeline.upload_photos(place.id, [make_upload(), make_upload()])

        assert len(exc_info.value.errors) == 2
        assert blob_names(path_resolver, place.id) == []

    def test_queue_failure_does_not_fail_upload(
        self, pipeline, place, make_upload, photo_ops, monkeypatch
    ):
        monkeypatch.setattr(
            pipeline.job_service.job_ops,
            "enqueue",
            MagicMock(side_effect=ThumbnailJobOperationError("down", operation="enqueue")),
        )

        result = pipeline.upload_photos(place.id, [make_upload()])

        assert result.uploaded == 1
        assert photo_ops.count_photos(place.id) == 1

    def test_spool_file_is_left_to_caller(self, pipeline, place, make_upload):
        upload = make_upload()
        pipeline.upload_photos(place.id, [upload])
        assert upload.path.exists()


@pytest.mark.integration
class TestConcurrentUploads:
    @pytest.mark.parametrize("uploaders", [2, 5, 20])
    def test_concurrent_uploads_stay_dense(
        self, db, path_resolver, place, make_upload, photo_ops, job_ops, uploaders
    ):
        # Default validator and insert retry budget
        pipeline = UploadPipeline(db, path_resolver)
        uploads = [make_upload(filename=f"shot{i}.jpg") for i in range(uploaders)]
        results = []
        errors = []
        barrier = threading.Barrier(uploaders)

        def upload(item):
            barrier.wait()
            try:
                results.append(pipeline.upload_photos(place.id, [item]))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=upload, args=(u,)) for u in uploads]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert all(r.uploaded == 1 and r.errors == [] for r in results)
        photos = photo_ops.get_photos_for_place(place.id)
        assert [p.photo_num for p in photos] == list(range(1, uploaders + 1))
        assert len({p.slug for p in photos}) == uploaders
        assert blob_names(path_resolver, place.id) == sorted(p.file_name for p in photos)
        for photo in photos:
            assert job_ops.has_active_job(photo.id, GalleryJobType.THUMBNAIL)


@pytest.mark.integration
class TestPhotoMutations:
    @pytest.fixture
    def three_photos(self, pipeline, place, make_upload):
        pipeline.upload_photos(place.id, [make_upload(filename=f"p{i}.jpg") for i in range(3)])
        return place

    def test_delete_photo_removes_blob_derivatives_and_jobs(
        self, pipeline, three_photos, photo_ops, job_ops, path_resolver
    ):
        victim = photo_ops.get_photo(three_photos.id, 2)
        directory = path_resolver.resolve_directory(three_photos.id)
        stem = victim.file_name.rsplit(".", 1)[0]
        for derived in (f"{stem}-thumb.webp", f"{stem}-og.jpg"):
            (directory / derived).write_bytes(b"derived")

        deleted = pipeline.delete_photo(three_photos.id, 2)

        assert deleted.id == victim.id
        assert [p.photo_num for p in photo_ops.get_photos_for_place(three_photos.id)] == [1, 2]
        assert not any(name.startswith(stem) for name in blob_names(path_resolver, three_photos.id))
        assert [j.status for j in job_ops.get_jobs_for_photo(victim.id)] == [JobStatus.CANCELLED]

    def test_delete_missing_photo(self, pipeline, three_photos):
        with pytest.raises(NotFoundError):
            pipeline.delete_photo(three_photos.id, 9)

    def test_reorder_and_favorite(self, pipeline, three_photos, photo_ops):
        before = [p.id for p in photo_ops.get_photos_for_place(three_photos.id)]
        pipeline.reorder_photos(three_photos.id, [3, 2, 1])
        after = [p.id for p in photo_ops.get_photos_for_place(three_photos.id)]
        assert after == list(reversed(before))

        assert pipeline.set_favorite(three_photos.id, 1, True) is True
        assert pipeline.set_favorite(three_photos.id, 7, True) is False
        assert photo_ops.get_photo(three_photos.id, 1).is_favorite
