# backend/studio_booking/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from sqlalchemy.orm import Session

from .booking_repository import BookingRepository
from .class_instance_repository import ClassInstanceRepository
from .coupon_repository import CouponRepository
from .entitlement_repository import EntitlementRepository
from .event_outbox_repository import EventOutboxRepository
from .studio_repository import StudioRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation so services share one construction path
    and tests can patch a single seam.
    """

    @staticmethod
    def create_booking_repository(db: Session) -> BookingRepository:
        return BookingRepository(db)

    @staticmethod
    def create_class_instance_repository(db: Session) -> ClassInstanceRepository:
        return ClassInstanceRepository(db)

    @staticmethod
    def create_entitlement_repository(db: Session) -> EntitlementRepository:
        return EntitlementRepository(db)

    @staticmethod
    def create_coupon_repository(db: Session) -> CouponRepository:
        return CouponRepository(db)

    @staticmethod
    def create_studio_repository(db: Session) -> StudioRepository:
        return StudioRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> EventOutboxRepository:
        return EventOutboxRepository(db)
