"""
Database models for the studio booking engine.

- Studio, StudioMembership: read-only platform records (timezone, policy, roles)
- ClassInstance: scheduled occurrence with its seat ledger
- Booking: reservations and waitlist entries
- CompClass, MembershipPlan, Subscription, ClassPack: credit ledger
- Coupon, CouponRedemption: promotions and their audit trail
- EventOutbox: pending notifier deliveries
"""

from .booking import SEAT_HOLDING_STATUSES, Booking, BookingStatus
from .class_instance import ClassInstance, ClassStatus
from .coupon import AppliedToType, Coupon, CouponRedemption, CouponScope, CouponType
from .entitlement import (
    ClassPack,
    CompClass,
    CreditSource,
    MembershipPlan,
    PlanType,
    Subscription,
    SubscriptionStatus,
)
from .event_outbox import EventOutbox, EventOutboxStatus
from .studio import Studio, StudioMembership

__all__ = [
    "AppliedToType",
    "Booking",
    "BookingStatus",
    "ClassInstance",
    "ClassPack",
    "ClassStatus",
    "CompClass",
    "Coupon",
    "CouponRedemption",
    "CouponScope",
    "CouponType",
    "CreditSource",
    "EventOutbox",
    "EventOutboxStatus",
    "MembershipPlan",
    "PlanType",
    "SEAT_HOLDING_STATUSES",
    "Studio",
    "StudioMembership",
    "Subscription",
    "SubscriptionStatus",
]
