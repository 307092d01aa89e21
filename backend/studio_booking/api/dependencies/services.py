# backend/studio_booking/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_service import BookingService
from ...services.cancellation_service import CancellationService
from ...services.coupon_service import CouponService
from ...services.credit_service import CreditService
from ...services.notification_service import NotificationService
from ...services.payment_gateway import PaymentGateway, get_payment_gateway
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_payment_gateway_singleton() -> PaymentGateway:
    """Get singleton payment gateway instance."""
    return get_payment_gateway()


def get_payment_gateway_dep() -> PaymentGateway:
    return get_payment_gateway_singleton()


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_credit_service(db: Session = Depends(get_db)) -> CreditService:
    return CreditService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BookingService:
    """
    Get booking service instance with all dependencies.

    Args:
        db: Database session
        notification_service: Outbox writer for booking events

    Returns:
        BookingService instance
    """
    return BookingService(db, notification_service=notification_service)


def get_cancellation_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CancellationService:
    return CancellationService(db, notification_service=notification_service)


def get_coupon_service(
    db: Session = Depends(get_db),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway_dep),
) -> CouponService:
    return CouponService(db, payment_gateway=payment_gateway)
