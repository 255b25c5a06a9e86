"""
Worker module for the gallery pipeline.

- ThumbnailWorker: background processor for the thumbnail/preview job queue
- ReconcilerWorker: scheduled orphan reconciliation of the blob store
"""

from .base_worker import BaseWorker
from .reconciler_worker import ReconcilerWorker
from .thumbnail_worker import ThumbnailWorker

__all__ = [
    "BaseWorker",
    "ReconcilerWorker",
    "ThumbnailWorker",
]
