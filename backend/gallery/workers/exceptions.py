# backend/gallery/workers/exceptions.py
"""
Worker-specific exceptions.

These replace generic Exception catching at worker boundaries with error
types that name the failure mode.
"""


class WorkerInitializationError(Exception):
    """Raised when a worker fails to initialize required services."""

    pass
