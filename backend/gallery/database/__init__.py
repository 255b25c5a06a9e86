"""
Database package for the gallery pipeline.

Usage:
    from gallery.database import SyncDatabase
    from gallery.database.photo_operations import SyncPhotoOperations

    db = SyncDatabase()
    photo_ops = SyncPhotoOperations(db)
"""

from .core import SyncDatabase

__all__ = ["SyncDatabase"]
