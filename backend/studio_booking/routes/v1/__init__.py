# backend/studio_booking/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import bookings, classes, comps, coupons

__all__ = [
    "bookings",
    "classes",
    "comps",
    "coupons",
]
