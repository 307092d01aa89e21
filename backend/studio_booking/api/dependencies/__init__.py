# backend/studio_booking/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import get_current_user_id
from .database import get_db
from .services import (
    get_booking_service,
    get_cancellation_service,
    get_coupon_service,
    get_credit_service,
    get_notification_service,
    get_payment_gateway_dep,
)

__all__ = [
    # Auth
    "get_current_user_id",
    # Database
    "get_db",
    # Services
    "get_booking_service",
    "get_cancellation_service",
    "get_coupon_service",
    "get_credit_service",
    "get_notification_service",
    "get_payment_gateway_dep",
]
