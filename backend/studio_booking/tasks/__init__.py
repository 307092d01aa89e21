# backend/studio_booking/tasks/__init__.py
"""
Celery tasks package.

Importing this package exposes the configured Celery app so workers can be
started with ``celery -A studio_booking.tasks worker``.
"""

from .celery_app import celery_app

__all__ = ["celery_app"]
