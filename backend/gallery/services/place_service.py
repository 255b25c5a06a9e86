# backend/gallery/services/place_service.py
"""
Place Service - place lifecycle together with its blob directory.
"""

from typing import List, Optional

from ..database.core import SyncDatabase
from ..database.place_operations import SyncPlaceOperations
from ..enums import LogEmoji, LoggerName
from ..models.place_model import Place, PlaceCreate
from .logger import get_service_logger
from .path_resolver import PathResolver

logger = get_service_logger(LoggerName.PLACE_SERVICE)


class PlaceService:
    """
    Creates and deletes places and their directories.

    Args:
        db: Database holding places and photos
        path_resolver: Resolver for the blob root
    """

    def __init__(self, db: SyncDatabase, path_resolver: Optional[PathResolver] = None):
        self.db = db
        self.place_ops = SyncPlaceOperations(db)
        self.path_resolver = path_resolver or PathResolver()

    def create_place(self, place_data: PlaceCreate) -> Place:
        """Insert the place and create its (empty) directory."""
        place = self.place_ops.create_place(place_data)
        self.path_resolver.create_directory(place.id)
        logger.info(
            f"Created place {place.id} ({place.slug})",
            emoji=LogEmoji.SUCCESS,
            extra_context={"place_id": place.id, "slug": place.slug},
        )
        return place

    def get_place(self, place_id: int) -> Optional[Place]:
        return self.place_ops.get_place(place_id)

    def get_places(self) -> List[Place]:
        return self.place_ops.get_places()

    def delete_place_with_photos(self, place_id: int) -> bool:
        """
        Delete a place row (photos and jobs with it), then its directory.

        A directory that cannot be removed is logged and left to the orphan
        reconciler, which deletes directories of unknown places.

        Returns:
            False if the place did not exist
        """
        if not self.place_ops.delete_place(place_id):
            logger.warning(f"Place {place_id} not found for deletion")
            return False

        try:
            self.path_resolver.delete_directory(place_id)
        except OSError as e:
            logger.warning(
                f"Failed to delete directory for place {place_id}, leaving it "
                f"for the orphan reconciler: {e}",
                emoji=LogEmoji.FOLDER,
                extra_context={"place_id": place_id},
            )

        logger.info(
            f"Deleted place {place_id} with all photos",
            emoji=LogEmoji.DELETE,
            extra_context={"place_id": place_id},
        )
        return True
