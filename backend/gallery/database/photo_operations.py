# backend/gallery/database/photo_operations.py
"""
Photo database operations: the per-place photo sequence.

photo_num is dense within a place: after every committed transaction the
numbers of a place's photos are exactly 1..N. Every public method that
changes numbering runs in one transaction:

- insert appends at MAX(photo_num)+1 inside a single INSERT ... SELECT and
  retries with jittered exponential backoff when a concurrent insert wins
  the same number or slug
- delete and reorder take the exclusive place lock and shift rows in two
  phases through negative numbers so the (place_id, photo_num) constraint
  holds after every statement
- set_favorite clears and sets within one transaction so a place never has
  two favorites
"""

import random
import time
from typing import List, Optional, Sequence, Set

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import settings
from ..enums import LogEmoji, LoggerName, LogSource, ThumbnailStatus
from ..exceptions import NotFoundError, ValidationError
from ..models.photo_model import Photo, PhotoInsertResult
from ..services.logger import get_service_logger
from ..services.slug_generator import unique_slug
from ..utils.time_utils import utc_now
from .core import SyncDatabase, row_to_dict, sql
from .exceptions import PhotoOperationError, SequenceConflictError

logger = get_service_logger(LoggerName.PHOTO_OPERATIONS, LogSource.DATABASE)

PHOTO_COLUMNS = """
    id, place_id, photo_num, slug, file_name, is_favorite, width, height,
    thumbnail_status, created_at, updated_at
"""


class PhotoQueryBuilder:
    """Centralized query builder for photo operations."""

    @staticmethod
    def build_select(where: Optional[str], order_by: str = "photo_num ASC") -> str:
        where_clause = f"WHERE {where}" if where else ""
        return f"SELECT {PHOTO_COLUMNS} FROM photos {where_clause} ORDER BY {order_by}"

    @staticmethod
    def build_append_insert() -> str:
        # Numbering and insertion in one statement: the MAX read and the new
        # row share a snapshot, and the unique constraint catches the race.
        return """
            INSERT INTO photos (
                place_id, photo_num, slug, file_name, is_favorite,
                width, height, thumbnail_status, created_at, updated_at
            )
            SELECT
                :place_id, COALESCE(MAX(photo_num), 0) + 1, :slug, :file_name,
                :is_favorite, :width, :height, :thumbnail_status, :now, :now
            FROM photos
            WHERE place_id = :place_id
            RETURNING id, photo_num
        """


class SyncPhotoOperations:
    """
    Photo sequence store.

    Args:
        db: Database used for every operation
        max_attempts: Insert attempts before SequenceConflictError
        backoff_base_ms: Base of the insert retry jitter
    """

    def __init__(
        self,
        db: SyncDatabase,
        max_attempts: Optional[int] = None,
        backoff_base_ms: Optional[int] = None,
    ) -> None:
        self.db = db
        self.max_attempts = max_attempts or settings.insert_max_attempts
        self.backoff_base_ms = backoff_base_ms or settings.insert_backoff_base_ms

    # ------------------------------------------------------------------
    # Sequence mutations
    # ------------------------------------------------------------------

    def insert_photo(
        self,
        place_id: int,
        file_name: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> PhotoInsertResult:
        """
        Append a photo to the end of a place's sequence.

        Args:
            place_id: Owning place
            file_name: Stored blob name (globally unique)
            width: Intrinsic width in pixels, if known
            height: Intrinsic height in pixels, if known

        Returns:
            The assigned id, photo_num and slug

        Raises:
            NotFoundError: Place does not exist (not retried)
            SequenceConflictError: Every attempt collided with a concurrent insert
            PhotoOperationError: Any other database failure
        """
        last_error: Optional[IntegrityError] = None
        for attempt in range(self.max_attempts):
            try:
                return self._insert_once(place_id, file_name, width, height)
            except IntegrityError as e:
                last_error = e
                if attempt + 1 >= self.max_attempts:
                    break
                delay_ms = (
                    self.backoff_base_ms * (2**attempt) * random.uniform(0.5, 1.5)
                )
                logger.debug(
                    f"Photo insert collided for place {place_id} "
                    f"(attempt {attempt + 1}/{self.max_attempts}), retrying in "
                    f"{delay_ms:.0f}ms",
                    emoji=LogEmoji.RETRY,
                    extra_context={"place_id": place_id, "file_name": file_name},
                )
                time.sleep(delay_ms / 1000)
            except SQLAlchemyError as e:
                raise PhotoOperationError(
                    f"Failed to insert photo: {e}", operation="insert_photo"
                ) from e

        logger.warning(
            f"Photo insert for place {place_id} exhausted {self.max_attempts} attempts",
            emoji=LogEmoji.WARNING,
            extra_context={"place_id": place_id, "file_name": file_name},
        )
        raise SequenceConflictError(
            f"Could not assign a photo number after {self.max_attempts} attempts",
            operation="insert_photo",
            details={"place_id": place_id, "error": str(last_error)},
        ) from last_error

    def _insert_once(
        self,
        place_id: int,
        file_name: str,
        width: Optional[int],
        height: Optional[int],
    ) -> PhotoInsertResult:
        with self.db.get_connection() as conn:
            # Shared lock: waits for an in-flight delete/reorder on this place
            if not self.db.lock_place(conn, place_id, exclusive=False):
                raise NotFoundError(f"Place {place_id} not found")

            slug = unique_slug(lambda s: self._slug_exists(conn, place_id, s))
            row = conn.execute(
                sql(PhotoQueryBuilder.build_append_insert()),
                {
                    "place_id": place_id,
                    "slug": slug,
                    "file_name": file_name,
                    "is_favorite": False,
                    "width": width,
                    "height": height,
                    "thumbnail_status": ThumbnailStatus.PENDING.value,
                    "now": utc_now(),
                },
            ).first()
            if row is None:
                raise PhotoOperationError(
                    "Insert returned no row", operation="insert_photo"
                )
            return PhotoInsertResult(photo_id=row.id, photo_num=row.photo_num, slug=slug)

    def delete_photo(self, place_id: int, photo_num: int) -> Photo:
        """
        Delete the photo at photo_num and close the gap.

        Photos after the deleted one move down by one. Only the row is
        removed here; blobs are the caller's responsibility.

        Returns:
            The deleted photo as it was before deletion

        Raises:
            NotFoundError: No photo at that position
        """
        try:
            with self.db.get_connection() as conn:
                self.db.lock_place(conn, place_id, exclusive=True)
                photo = self._fetch_one(
                    conn,
                    "place_id = :place_id AND photo_num = :photo_num",
                    {"place_id": place_id, "photo_num": photo_num},
                )
                if photo is None:
                    raise NotFoundError(
                        f"Photo {photo_num} not found in place {place_id}"
                    )

                conn.execute(
                    sql("DELETE FROM photos WHERE id = :id"), {"id": photo.id}
                )
                # Phase 1: park every following row on its negated new number
                conn.execute(
                    sql(
                        """
                        UPDATE photos SET photo_num = -(photo_num - 1), updated_at = :now
                        WHERE place_id = :place_id AND photo_num > :photo_num
                        """
                    ),
                    {"place_id": place_id, "photo_num": photo_num, "now": utc_now()},
                )
                # Phase 2: flip back to positive
                conn.execute(
                    sql(
                        """
                        UPDATE photos SET photo_num = -photo_num
                        WHERE place_id = :place_id AND photo_num < 0
                        """
                    ),
                    {"place_id": place_id},
                )
                return photo
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to delete photo: {e}", operation="delete_photo"
            ) from e

    def reorder_photos(self, place_id: int, permutation: Sequence[int]) -> None:
        """
        Reorder a place's photos.

        Args:
            place_id: Place to reorder
            permutation: Current photo_nums in their new order; the photo
                currently at permutation[i] moves to position i+1

        Raises:
            ValidationError: permutation is not exactly a permutation of the
                current numbers (store left unchanged)
        """
        try:
            with self.db.get_connection() as conn:
                self.db.lock_place(conn, place_id, exclusive=True)
                current = self._photo_nums(conn, place_id)
                self._validate_permutation(place_id, current, permutation)

                now = utc_now()
                for new_position, old_num in enumerate(permutation, start=1):
                    conn.execute(
                        sql(
                            """
                            UPDATE photos SET photo_num = :target, updated_at = :now
                            WHERE place_id = :place_id AND photo_num = :old_num
                            """
                        ),
                        {
                            "target": -new_position,
                            "place_id": place_id,
                            "old_num": old_num,
                            "now": now,
                        },
                    )
                conn.execute(
                    sql(
                        """
                        UPDATE photos SET photo_num = -photo_num
                        WHERE place_id = :place_id AND photo_num < 0
                        """
                    ),
                    {"place_id": place_id},
                )
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to reorder photos: {e}", operation="reorder_photos"
            ) from e

    @staticmethod
    def _validate_permutation(
        place_id: int, current: Set[int], permutation: Sequence[int]
    ) -> None:
        if len(permutation) != len(current):
            raise ValidationError(
                f"Photo count mismatch for place {place_id}: expected "
                f"{len(current)}, got {len(permutation)}"
            )
        if len(set(permutation)) != len(permutation):
            raise ValidationError("Photo order contains duplicate photo numbers")
        unknown = set(permutation) - current
        if unknown:
            raise ValidationError(
                f"Photo order contains unknown photo numbers: {sorted(unknown)}"
            )

    def set_favorite(self, place_id: int, photo_num: int, is_favorite: bool) -> bool:
        """
        Mark or unmark a photo as the place's favorite.

        Marking clears any other favorite in the same transaction.

        Returns:
            False if the photo does not exist (nothing changed)
        """
        try:
            with self.db.get_connection() as conn:
                self.db.lock_place(conn, place_id, exclusive=True)
                target = conn.execute(
                    sql(
                        "SELECT id FROM photos "
                        "WHERE place_id = :place_id AND photo_num = :photo_num"
                    ),
                    {"place_id": place_id, "photo_num": photo_num},
                ).first()
                if target is None:
                    return False

                now = utc_now()
                if is_favorite:
                    conn.execute(
                        sql(
                            """
                            UPDATE photos SET is_favorite = :off, updated_at = :now
                            WHERE place_id = :place_id AND is_favorite = :on
                              AND id != :id
                            """
                        ),
                        {
                            "off": False,
                            "on": True,
                            "now": now,
                            "place_id": place_id,
                            "id": target.id,
                        },
                    )
                conn.execute(
                    sql(
                        "UPDATE photos SET is_favorite = :flag, updated_at = :now "
                        "WHERE id = :id"
                    ),
                    {"flag": bool(is_favorite), "now": now, "id": target.id},
                )
                return True
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to set favorite: {e}", operation="set_favorite"
            ) from e

    # ------------------------------------------------------------------
    # Thumbnail status
    # ------------------------------------------------------------------

    def mark_thumbnail_processing(self, photo_id: int) -> bool:
        """pending -> processing. Returns False if the photo was not pending."""
        return self._transition_thumbnail_status(
            photo_id, ThumbnailStatus.PROCESSING, only_from=ThumbnailStatus.PENDING
        )

    def mark_thumbnail_completed(self, photo_id: int) -> bool:
        return self._transition_thumbnail_status(photo_id, ThumbnailStatus.COMPLETED)

    def mark_thumbnail_failed(self, photo_id: int) -> bool:
        return self._transition_thumbnail_status(photo_id, ThumbnailStatus.FAILED)

    def reset_thumbnail_status(self, photo_id: int) -> bool:
        return self._transition_thumbnail_status(photo_id, ThumbnailStatus.PENDING)

    def _transition_thumbnail_status(
        self,
        photo_id: int,
        status: ThumbnailStatus,
        only_from: Optional[ThumbnailStatus] = None,
    ) -> bool:
        query = "UPDATE photos SET thumbnail_status = :status, updated_at = :now WHERE id = :id"
        params = {"status": status.value, "now": utc_now(), "id": photo_id}
        if only_from is not None:
            query += " AND thumbnail_status = :only_from"
            params["only_from"] = only_from.value
        try:
            with self.db.get_connection() as conn:
                return conn.execute(sql(query), params).rowcount > 0
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to set thumbnail status: {e}",
                operation="update_thumbnail_status",
            ) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_photo_by_id(self, photo_id: int) -> Optional[Photo]:
        return self._read_one("id = :id", {"id": photo_id}, "get_photo_by_id")

    def get_photo(self, place_id: int, photo_num: int) -> Optional[Photo]:
        return self._read_one(
            "place_id = :place_id AND photo_num = :photo_num",
            {"place_id": place_id, "photo_num": photo_num},
            "get_photo",
        )

    def get_photo_by_slug(self, place_id: int, slug: str) -> Optional[Photo]:
        return self._read_one(
            "place_id = :place_id AND slug = :slug",
            {"place_id": place_id, "slug": slug},
            "get_photo_by_slug",
        )

    def get_photos_for_place(self, place_id: int) -> List[Photo]:
        """All photos of a place ordered by photo_num."""
        return self._read_many(
            PhotoQueryBuilder.build_select("place_id = :place_id"),
            {"place_id": place_id},
            "get_photos_for_place",
        )

    def get_photos_by_thumbnail_status(
        self,
        statuses: Sequence[ThumbnailStatus],
        place_id: Optional[int] = None,
    ) -> List[Photo]:
        if not statuses:
            return []
        names = [f"s{i}" for i in range(len(statuses))]
        where = f"thumbnail_status IN ({', '.join(':' + n for n in names)})"
        params = {n: ThumbnailStatus(s).value for n, s in zip(names, statuses)}
        if place_id is not None:
            where += " AND place_id = :place_id"
            params["place_id"] = place_id
        return self._read_many(
            PhotoQueryBuilder.build_select(where, "place_id ASC, photo_num ASC"),
            params,
            "get_photos_by_thumbnail_status",
        )

    def get_all_photos(self, place_id: Optional[int] = None) -> List[Photo]:
        if place_id is not None:
            return self.get_photos_for_place(place_id)
        return self._read_many(
            PhotoQueryBuilder.build_select(None, "place_id ASC, photo_num ASC"),
            {},
            "get_all_photos",
        )

    def get_photos_missing_dimensions(self) -> List[Photo]:
        return self._read_many(
            PhotoQueryBuilder.build_select(
                "width IS NULL OR height IS NULL", "place_id ASC, photo_num ASC"
            ),
            {},
            "get_photos_missing_dimensions",
        )

    def get_file_names_for_place(self, place_id: int) -> List[str]:
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    sql("SELECT file_name FROM photos WHERE place_id = :place_id"),
                    {"place_id": place_id},
                ).all()
                return [row.file_name for row in rows]
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to load file names: {e}", operation="get_file_names_for_place"
            ) from e

    def count_photos(self, place_id: int) -> int:
        try:
            with self.db.get_connection() as conn:
                return conn.execute(
                    sql("SELECT COUNT(*) FROM photos WHERE place_id = :place_id"),
                    {"place_id": place_id},
                ).scalar_one()
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to count photos: {e}", operation="count_photos"
            ) from e

    def update_dimensions(self, photo_id: int, width: int, height: int) -> bool:
        try:
            with self.db.get_connection() as conn:
                result = conn.execute(
                    sql(
                        "UPDATE photos SET width = :width, height = :height, "
                        "updated_at = :now WHERE id = :id"
                    ),
                    {"width": width, "height": height, "now": utc_now(), "id": photo_id},
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to update dimensions: {e}", operation="update_dimensions"
            ) from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _slug_exists(conn: Connection, place_id: int, slug: str) -> bool:
        row = conn.execute(
            sql("SELECT 1 FROM photos WHERE place_id = :place_id AND slug = :slug"),
            {"place_id": place_id, "slug": slug},
        ).first()
        return row is not None

    @staticmethod
    def _photo_nums(conn: Connection, place_id: int) -> Set[int]:
        rows = conn.execute(
            sql("SELECT photo_num FROM photos WHERE place_id = :place_id"),
            {"place_id": place_id},
        ).all()
        return {row.photo_num for row in rows}

    @staticmethod
    def _fetch_one(conn: Connection, where: str, params: dict) -> Optional[Photo]:
        row = conn.execute(
            sql(PhotoQueryBuilder.build_select(where)), params
        ).first()
        return Photo(**row_to_dict(row)) if row else None

    def _read_one(self, where: str, params: dict, operation: str) -> Optional[Photo]:
        try:
            with self.db.get_connection() as conn:
                return self._fetch_one(conn, where, params)
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to load photo: {e}", operation=operation
            ) from e

    def _read_many(self, query: str, params: dict, operation: str) -> List[Photo]:
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(sql(query), params).all()
                return [Photo(**row_to_dict(row)) for row in rows]
        except SQLAlchemyError as e:
            raise PhotoOperationError(
                f"Failed to load photos: {e}", operation=operation
            ) from e

