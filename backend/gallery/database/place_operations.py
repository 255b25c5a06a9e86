# backend/gallery/database/place_operations.py
"""
Place database operations.

Places own a directory in the blob store named by their id and a URL slug
derived from their name, location and country.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..models.place_model import Place, PlaceCreate
from ..services.slug_generator import unique_text_slug
from ..utils.time_utils import utc_now
from .core import SyncDatabase, row_to_dict, sql
from .exceptions import PlaceOperationError

PLACE_COLUMNS = """
    id, name, location, country, start_date, end_date, slug, favorites,
    sort_order, created_at, updated_at
"""

# Columns update_place may change
UPDATABLE_FIELDS = ("name", "location", "country", "start_date", "end_date", "sort_order")


def place_slug_source(place: PlaceCreate) -> str:
    """Text the place slug is derived from: "name location country"."""
    return " ".join(part for part in (place.name, place.location, place.country) if part)


class SyncPlaceOperations:
    """Sync place database operations for services, workers and CLI tools."""

    def __init__(self, db: SyncDatabase) -> None:
        self.db = db

    def create_place(self, place_data: PlaceCreate) -> Place:
        """
        Insert a place with a unique text slug at the end of the sort order.

        Raises:
            ValidationError: No free slug could be derived
            PlaceOperationError: Database failure
        """
        try:
            with self.db.get_connection() as conn:
                slug = unique_text_slug(
                    place_slug_source(place_data),
                    lambda s: self._slug_exists(conn, s),
                )
                now = utc_now()
                row = conn.execute(
                    sql(
                        f"""
                        INSERT INTO places (
                            name, location, country, start_date, end_date, slug,
                            favorites, sort_order, created_at, updated_at
                        )
                        SELECT
                            :name, :location, :country, :start_date, :end_date, :slug,
                            0, COALESCE(MAX(sort_order), 0) + 1, :now, :now
                        FROM places
                        RETURNING {PLACE_COLUMNS}
                        """
                    ),
                    {
                        "name": place_data.name,
                        "location": place_data.location,
                        "country": place_data.country,
                        "start_date": place_data.start_date,
                        "end_date": place_data.end_date,
                        "slug": slug,
                        "now": now,
                    },
                ).first()
                return Place(**row_to_dict(row))
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to create place: {e}", operation="create_place"
            ) from e

    def get_place(self, place_id: int) -> Optional[Place]:
        return self._read_one("id = :id", {"id": place_id}, "get_place")

    def get_place_by_slug(self, slug: str) -> Optional[Place]:
        return self._read_one("slug = :slug", {"slug": slug}, "get_place_by_slug")

    def place_exists(self, place_id: int) -> bool:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    sql("SELECT 1 FROM places WHERE id = :id"), {"id": place_id}
                ).first()
                return row is not None
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to check place: {e}", operation="place_exists"
            ) from e

    def get_all_place_ids(self) -> List[int]:
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(sql("SELECT id FROM places ORDER BY id")).all()
                return [row.id for row in rows]
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to load place ids: {e}", operation="get_all_place_ids"
            ) from e

    def get_places(self) -> List[Place]:
        """All places in display order."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    sql(f"SELECT {PLACE_COLUMNS} FROM places ORDER BY sort_order, id")
                ).all()
                return [Place(**row_to_dict(row)) for row in rows]
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to load places: {e}", operation="get_places"
            ) from e

    def update_place(self, place_id: int, **fields: Any) -> Optional[Place]:
        """
        Update the given columns of a place. The slug never changes.

        Returns:
            The updated place, or None if it does not exist

        Raises:
            ValueError: For columns that cannot be updated
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update place fields: {sorted(unknown)}")
        if not fields:
            return self.get_place(place_id)

        assignments = ", ".join(f"{name} = :{name}" for name in fields)
        params: Dict[str, Any] = dict(fields, id=place_id, now=utc_now())
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    sql(
                        f"UPDATE places SET {assignments}, updated_at = :now "
                        f"WHERE id = :id RETURNING {PLACE_COLUMNS}"
                    ),
                    params,
                ).first()
                return Place(**row_to_dict(row)) if row else None
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to update place: {e}", operation="update_place"
            ) from e

    def delete_place(self, place_id: int) -> bool:
        """
        Delete a place, its photos (cascade) and its queued jobs.

        Returns:
            True if the place existed
        """
        try:
            with self.db.get_connection() as conn:
                self.db.lock_place(conn, place_id, exclusive=True)
                conn.execute(
                    sql("DELETE FROM thumbnail_jobs WHERE place_id = :id"),
                    {"id": place_id},
                )
                result = conn.execute(
                    sql("DELETE FROM places WHERE id = :id"), {"id": place_id}
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to delete place: {e}", operation="delete_place"
            ) from e

    @staticmethod
    def _slug_exists(conn: Connection, slug: str) -> bool:
        row = conn.execute(
            sql("SELECT 1 FROM places WHERE slug = :slug"), {"slug": slug}
        ).first()
        return row is not None

    def _read_one(
        self, where: str, params: Dict[str, Any], operation: str
    ) -> Optional[Place]:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    sql(f"SELECT {PLACE_COLUMNS} FROM places WHERE {where}"), params
                ).first()
                return Place(**row_to_dict(row)) if row else None
        except SQLAlchemyError as e:
            raise PlaceOperationError(
                f"Failed to load place: {e}", operation=operation
            ) from e
