# backend/studio_booking/schemas/coupon.py
"""
Coupon and comp-class schemas.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from ..models.coupon import Coupon
from ..models.entitlement import CompClass
from .base import StandardizedModel, StrictRequestModel


class CouponValidateRequest(StrictRequestModel):
    code: str = Field(..., min_length=1, max_length=64)
    plan_id: Optional[str] = None


class DiscountResponse(StandardizedModel):
    coupon_id: str
    coupon_type: str = Field(..., alias="type")
    value: int
    description: str
    applies_to: str


class CouponValidateResponse(StandardizedModel):
    valid: bool
    discount: Optional[DiscountResponse] = None
    reason: Optional[str] = None


class CouponRedeemRequest(StrictRequestModel):
    code: str = Field(..., min_length=1, max_length=64)
    applied_to_type: Literal["subscription", "class_pack", "drop_in"]
    applied_to_id: Optional[str] = None
    discount_amount_cents: int = Field(default=0, ge=0)
    plan_id: Optional[str] = None


class CompClassResponse(StandardizedModel):
    id: str
    user_id: str
    total_classes: int
    remaining_classes: int
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None
    granted_by_id: Optional[str] = None
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_comp(cls, comp: CompClass) -> "CompClassResponse":
        return cls(
            id=comp.id,
            user_id=comp.user_id,
            total_classes=comp.total_classes,
            remaining_classes=comp.remaining_classes,
            expires_at=comp.expires_at,
            reason=comp.reason,
            granted_by_id=comp.granted_by_id,
            revoked_at=comp.revoked_at,
            created_at=comp.created_at,
        )


class CouponRedeemResponse(StandardizedModel):
    redemption_id: str
    coupon_type: str
    value: int
    comp_grant: Optional[CompClassResponse] = None
    discount_handle: Optional[str] = None


class CouponCreateRequest(StrictRequestModel):
    code: str
    coupon_type: str = Field(..., alias="type")
    value: int
    applies_to: str = "any"
    plan_ids: List[str] = Field(default_factory=list)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_redemptions: Optional[int] = None
    active: bool = True

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class CouponUpdateRequest(StrictRequestModel):
    """Partial edit; only the fields present in the body are changed."""

    code: Optional[str] = None
    coupon_type: Optional[str] = Field(default=None, alias="type")
    value: Optional[int] = None
    applies_to: Optional[str] = None
    plan_ids: Optional[List[str]] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_redemptions: Optional[int] = None
    active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class CouponResponse(StandardizedModel):
    id: str
    code: str
    coupon_type: str = Field(..., alias="type")
    value: int
    applies_to: str
    plan_ids: List[str] = Field(default_factory=list)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_redemptions: Optional[int] = None
    current_redemptions: int
    active: bool

    @classmethod
    def from_coupon(cls, coupon: Coupon) -> "CouponResponse":
        return cls(
            id=coupon.id,
            code=coupon.code,
            coupon_type=coupon.coupon_type,
            value=coupon.value,
            applies_to=coupon.applies_to,
            plan_ids=list(coupon.plan_ids or []),
            valid_from=coupon.valid_from,
            valid_until=coupon.valid_until,
            max_redemptions=coupon.max_redemptions,
            current_redemptions=coupon.current_redemptions,
            active=coupon.active,
        )


class CouponListResponse(StandardizedModel):
    coupons: List[CouponResponse]


class CouponDeactivateResponse(StandardizedModel):
    coupon_id: str
    deactivated: bool = True


class CompGrantRequest(StrictRequestModel):
    classes: int = Field(..., ge=1, description="Number of free classes to grant")
    reason: Optional[str] = Field(default=None, max_length=500)
    expires_at: Optional[datetime] = None


class CompListResponse(StandardizedModel):
    comps: List[CompClassResponse]
