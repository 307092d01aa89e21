# backend/studio_booking/models/coupon.py
"""
Coupon and redemption audit models.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from ..core.ulid_helper import generate_ulid
from ..database import Base


class CouponType(str, Enum):
    PERCENT_OFF = "percent_off"
    AMOUNT_OFF = "amount_off"
    FREE_CLASSES = "free_classes"


class CouponScope(str, Enum):
    ANY = "any"
    PLAN = "plan"
    NEW_MEMBER = "new_member"


class AppliedToType(str, Enum):
    SUBSCRIPTION = "subscription"
    CLASS_PACK = "class_pack"
    DROP_IN = "drop_in"


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False, index=True)
    # Stored upper-case
    code = Column(String(64), nullable=False)
    coupon_type = Column(String(20), nullable=False)
    # percent (1-100), cents, or class count depending on coupon_type
    value = Column(Integer, nullable=False)
    applies_to = Column(String(20), nullable=False, default=CouponScope.ANY.value)
    plan_ids = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=list,
    )
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    max_redemptions = Column(Integer, nullable=True)
    current_redemptions = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    gateway_coupon_id = Column(String(255), nullable=True)
    created_by_id = Column(String(26), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("studio_id", "code", name="uq_coupons_studio_code"),
        CheckConstraint("value > 0", name="ck_coupons_value_positive"),
        CheckConstraint(
            "coupon_type <> 'percent_off' OR value <= 100",
            name="ck_coupons_percent_bounds",
        ),
        CheckConstraint(
            "max_redemptions IS NULL OR current_redemptions <= max_redemptions",
            name="ck_coupons_redemptions_within_cap",
        ),
        CheckConstraint("current_redemptions >= 0", name="ck_coupons_redemptions_non_negative"),
    )


class CouponRedemption(Base):
    """Immutable audit row written once per successful redemption."""

    __tablename__ = "coupon_redemptions"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    coupon_id = Column(String(26), ForeignKey("coupons.id"), nullable=False, index=True)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    user_id = Column(String(26), nullable=False, index=True)
    applied_to_type = Column(String(20), nullable=False)
    applied_to_id = Column(String(64), nullable=True)
    discount_amount_cents = Column(Integer, nullable=False, default=0)
    comp_class_id = Column(String(26), ForeignKey("comp_classes.id"), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "applied_to_type IN ('subscription', 'class_pack', 'drop_in')",
            name="ck_coupon_redemptions_applied_to_type",
        ),
    )
