# backend/gallery/workers/mixins/__init__.py
"""
Shared job processing components for gallery workers.
"""

from .job_processing_mixin import JobProcessingMixin
from .retry_manager import RetryManager

__all__ = [
    "JobProcessingMixin",
    "RetryManager",
]
