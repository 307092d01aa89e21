# backend/studio_booking/models/entitlement.py
"""
Credit ledger tables.

Each entitlement kind lives in its own table. Exhausted comp grants and
class packs keep their rows with ``remaining_classes = 0`` for audit; the
per-period usage counter on subscriptions is reset by billing.
"""

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class CreditSource(str, Enum):
    """Entitlement variant that paid for a booking."""

    COMP_CLASS = "comp_class"
    SUBSCRIPTION_UNLIMITED = "subscription_unlimited"
    SUBSCRIPTION_LIMITED = "subscription_limited"
    CLASS_PACK = "class_pack"


class PlanType(str, Enum):
    UNLIMITED = "unlimited"
    LIMITED = "limited"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class CompClass(Base):
    """Free classes granted by staff or by a free-classes coupon."""

    __tablename__ = "comp_classes"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    user_id = Column(String(26), nullable=False)
    total_classes = Column(Integer, nullable=False)
    remaining_classes = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    granted_by_id = Column(String(26), nullable=True)
    reason = Column(Text, nullable=True)
    # Revoked grants keep their row for audit and never take refunds
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_classes > 0", name="ck_comp_classes_total_positive"),
        CheckConstraint(
            "remaining_classes >= 0 AND remaining_classes <= total_classes",
            name="ck_comp_classes_remaining_bounds",
        ),
        Index("ix_comp_classes_member", "user_id", "studio_id"),
    )


class MembershipPlan(Base):
    __tablename__ = "membership_plans"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    plan_type = Column(String(20), nullable=False)
    # Required for limited plans
    class_limit = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("plan_type IN ('unlimited', 'limited')", name="ck_membership_plans_type"),
        CheckConstraint(
            "class_limit IS NULL OR class_limit > 0",
            name="ck_membership_plans_class_limit_positive",
        ),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    user_id = Column(String(26), nullable=False)
    plan_id = Column(String(26), ForeignKey("membership_plans.id"), nullable=False)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    classes_used_this_period = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    plan = relationship("MembershipPlan", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "classes_used_this_period >= 0",
            name="ck_subscriptions_used_non_negative",
        ),
        Index("ix_subscriptions_member", "user_id", "studio_id", "status"),
    )


class ClassPack(Base):
    """A purchased bundle of classes."""

    __tablename__ = "class_packs"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    user_id = Column(String(26), nullable=False)
    total_classes = Column(Integer, nullable=False)
    remaining_classes = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_classes > 0", name="ck_class_packs_total_positive"),
        CheckConstraint(
            "remaining_classes >= 0 AND remaining_classes <= total_classes",
            name="ck_class_packs_remaining_bounds",
        ),
        Index("ix_class_packs_member", "user_id", "studio_id"),
    )
