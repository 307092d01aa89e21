"""
Repository layer: all SQL lives here, services own the transactions.
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .class_instance_repository import ClassInstanceRepository
from .coupon_repository import CouponRepository
from .entitlement_repository import EntitlementRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .studio_repository import StudioRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ClassInstanceRepository",
    "CouponRepository",
    "EntitlementRepository",
    "EventOutboxRepository",
    "RepositoryFactory",
    "StudioRepository",
]
