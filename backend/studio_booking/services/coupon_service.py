# backend/studio_booking/services/coupon_service.py
"""
Coupon Validator & Redeemer.

Validation runs an ordered list of checks and reports the first failure as a
human-readable reason. Redemption re-validates, then takes a slot with a
compare-and-increment on the coupon counter so a capped coupon can never be
redeemed past its cap, whatever the concurrency.

``free_classes`` coupons grant comp classes directly; percent and amount
coupons produce a payment-gateway discount handle for checkout instead.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import (
    ConflictException,
    CouponInvalidException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_aware, utc_now
from ..models.coupon import AppliedToType, Coupon, CouponRedemption, CouponScope, CouponType
from ..models.entitlement import CompClass
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.coupon_repository import CouponRepository
from ..repositories.entitlement_repository import EntitlementRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.studio_repository import StudioRepository
from .base import BaseService
from .payment_gateway import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")

EDITABLE_COUPON_FIELDS = frozenset(
    {
        "code",
        "coupon_type",
        "value",
        "applies_to",
        "plan_ids",
        "valid_from",
        "valid_until",
        "max_redemptions",
        "active",
    }
)

REASON_NOT_FOUND = "Coupon code not found"
REASON_INACTIVE = "Coupon is inactive"
REASON_NOT_YET_VALID = "Coupon is not yet valid"
REASON_EXPIRED = "Coupon has expired"
REASON_EXHAUSTED = "Coupon redemption limit reached"
REASON_PLAN_REQUIRED = "Coupon requires a plan to be selected"
REASON_PLAN_MISMATCH = "Coupon does not apply to the selected plan"
REASON_NEW_MEMBERS_ONLY = "Coupon is only valid for new members"


def describe_discount(coupon_type: str, value: int) -> str:
    if coupon_type == CouponType.PERCENT_OFF.value:
        return f"{value}% off"
    if coupon_type == CouponType.AMOUNT_OFF.value:
        return f"${value / 100:.2f} off"
    return f"{value} free class{'es' if value > 1 else ''}"


@dataclass
class Discount:
    coupon_id: str
    coupon_type: str
    value: int
    description: str
    applies_to: str


@dataclass
class CouponValidation:
    valid: bool
    discount: Optional[Discount] = None
    reason: Optional[str] = None


@dataclass
class RedemptionResult:
    redemption: CouponRedemption
    coupon: Coupon
    comp_grant: Optional[CompClass] = None
    discount_handle: Optional[str] = None


class CouponService(BaseService):
    def __init__(
        self,
        db: Session,
        payment_gateway: Optional[PaymentGateway] = None,
        coupon_repository: Optional[CouponRepository] = None,
        entitlement_repository: Optional[EntitlementRepository] = None,
        studio_repository: Optional[StudioRepository] = None,
    ):
        super().__init__(db)
        self.coupon_repository = coupon_repository or RepositoryFactory.create_coupon_repository(db)
        self.entitlement_repository = (
            entitlement_repository or RepositoryFactory.create_entitlement_repository(db)
        )
        self.studio_repository = studio_repository or RepositoryFactory.create_studio_repository(db)
        self._payment_gateway = payment_gateway

    @property
    def payment_gateway(self) -> PaymentGateway:
        if self._payment_gateway is None:
            self._payment_gateway = get_payment_gateway()
        return self._payment_gateway

    # ------------------------------------------------------------- validation
    def _failure_reason(
        self,
        coupon: Coupon,
        member_id: str,
        plan_id: Optional[str],
        now: datetime,
    ) -> Optional[str]:
        if not coupon.active:
            return REASON_INACTIVE
        if coupon.valid_from is not None and ensure_aware(coupon.valid_from) > now:
            return REASON_NOT_YET_VALID
        if coupon.valid_until is not None and ensure_aware(coupon.valid_until) < now:
            return REASON_EXPIRED
        if (
            coupon.max_redemptions is not None
            and coupon.current_redemptions >= coupon.max_redemptions
        ):
            return REASON_EXHAUSTED
        if coupon.applies_to == CouponScope.PLAN.value:
            if not plan_id:
                return REASON_PLAN_REQUIRED
            plan_ids = coupon.plan_ids or []
            if plan_ids and plan_id not in plan_ids:
                return REASON_PLAN_MISMATCH
        if coupon.applies_to == CouponScope.NEW_MEMBER.value:
            if self.entitlement_repository.count_subscriptions(member_id, coupon.studio_id) > 0:
                return REASON_NEW_MEMBERS_ONLY
        return None

    @BaseService.measure_operation("validate_coupon")
    def validate(
        self,
        code: str,
        studio_id: str,
        member_id: str,
        plan_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CouponValidation:
        """Check a code without consuming it; the first failing check wins."""
        if not code or not code.strip():
            raise ValidationException("code is required", code="CODE_REQUIRED")
        now = ensure_aware(now or utc_now())

        coupon = self.coupon_repository.get_by_code(studio_id, code)
        if coupon is None:
            return CouponValidation(valid=False, reason=REASON_NOT_FOUND)

        reason = self._failure_reason(coupon, member_id, plan_id, now)
        if reason is not None:
            return CouponValidation(valid=False, reason=reason)

        return CouponValidation(
            valid=True,
            discount=Discount(
                coupon_id=coupon.id,
                coupon_type=coupon.coupon_type,
                value=coupon.value,
                description=describe_discount(coupon.coupon_type, coupon.value),
                applies_to=coupon.applies_to,
            ),
        )

    # ------------------------------------------------------------- redemption
    @BaseService.measure_operation("redeem_coupon")
    def redeem(
        self,
        code: str,
        studio_id: str,
        member_id: str,
        applied_to_type: str,
        applied_to_id: Optional[str] = None,
        discount_amount_cents: int = 0,
        plan_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RedemptionResult:
        """
        Redeem a coupon for a member.

        Raises:
            NotFoundException: no coupon with that code in the studio
            CouponInvalidException: any validation failure, including a cap
                reached by a concurrent redemption
        """
        if not code or not code.strip():
            raise ValidationException("code is required", code="CODE_REQUIRED")
        if applied_to_type not in {t.value for t in AppliedToType}:
            raise ValidationException(
                "appliedToType must be one of: subscription, class_pack, drop_in",
                code="INVALID_APPLIED_TO",
            )
        now = ensure_aware(now or utc_now())

        result = self.run_with_retry(
            "redeem_coupon",
            lambda: self._redeem_once(
                code,
                studio_id,
                member_id,
                applied_to_type,
                applied_to_id,
                discount_amount_cents,
                plan_id,
                now,
            ),
        )
        prometheus_metrics.record_coupon_redemption(result.coupon.coupon_type)
        self.log_operation(
            "redeem_coupon",
            studio_id=studio_id,
            member_id=member_id,
            coupon_id=result.coupon.id,
            redemption_id=result.redemption.id,
        )
        return result

    def _redeem_once(
        self,
        code: str,
        studio_id: str,
        member_id: str,
        applied_to_type: str,
        applied_to_id: Optional[str],
        discount_amount_cents: int,
        plan_id: Optional[str],
        now: datetime,
    ) -> RedemptionResult:
        coupon = self.coupon_repository.get_by_code(studio_id, code)
        if coupon is None:
            raise NotFoundException("Coupon not found", code="COUPON_NOT_FOUND")

        reason = self._failure_reason(coupon, member_id, plan_id, now)
        if reason is not None:
            raise CouponInvalidException(reason)

        if not self.coupon_repository.try_increment_redemptions(coupon.id):
            raise CouponInvalidException(REASON_EXHAUSTED, code="COUPON_EXHAUSTED")
        self.coupon_repository.refresh(coupon)

        comp_grant: Optional[CompClass] = None
        discount_handle: Optional[str] = None
        if coupon.coupon_type == CouponType.FREE_CLASSES.value:
            comp_grant = self.entitlement_repository.create_comp(
                studio_id=studio_id,
                user_id=member_id,
                classes=coupon.value,
                reason=f"Coupon: {coupon.code}",
                expires_at=coupon.valid_until,
            )
        else:
            discount_handle = self.payment_gateway.create_discount(coupon)
            if self.payment_gateway.reusable_handles and not coupon.gateway_coupon_id:
                self.coupon_repository.set_gateway_coupon_id(coupon.id, discount_handle)

        redemption = self.coupon_repository.record_redemption(
            coupon_id=coupon.id,
            studio_id=studio_id,
            user_id=member_id,
            applied_to_type=applied_to_type,
            applied_to_id=applied_to_id,
            discount_amount_cents=discount_amount_cents or 0,
            comp_class_id=comp_grant.id if comp_grant is not None else None,
        )
        return RedemptionResult(
            redemption=redemption,
            coupon=coupon,
            comp_grant=comp_grant,
            discount_handle=discount_handle,
        )

    # ---------------------------------------------------------- administration
    def _require_admin(self, studio_id: str, actor_id: str) -> None:
        if not self.studio_repository.is_admin(studio_id, actor_id):
            raise ForbiddenException("Only studio admins can manage coupons")

    def _require_staff(self, studio_id: str, actor_id: str) -> None:
        if not self.studio_repository.is_staff(studio_id, actor_id):
            raise ForbiddenException("Only studio staff can view coupons")

    def _check_coupon_fields(
        self,
        *,
        code: Optional[str],
        coupon_type: Optional[str],
        value: Optional[int],
        applies_to: Optional[str],
        valid_from: Optional[datetime],
        valid_until: Optional[datetime],
        max_redemptions: Optional[int],
    ) -> None:
        if not code or len(code.strip()) < 2:
            raise ValidationException("code must be at least 2 characters", code="INVALID_CODE")
        if not COUPON_CODE_PATTERN.match(code):
            raise ValidationException(
                "code may only contain uppercase letters, digits, underscores, and hyphens",
                code="INVALID_CODE",
            )
        if coupon_type not in {t.value for t in CouponType}:
            raise ValidationException(
                "type must be one of: percent_off, amount_off, free_classes",
                code="INVALID_TYPE",
            )
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationException("value must be a positive integer", code="INVALID_VALUE")
        if coupon_type == CouponType.PERCENT_OFF.value and value > 100:
            raise ValidationException("percent_off value cannot exceed 100", code="INVALID_VALUE")
        if applies_to not in {s.value for s in CouponScope}:
            raise ValidationException(
                "appliesTo must be one of: any, plan, new_member", code="INVALID_SCOPE"
            )
        if valid_from and valid_until and ensure_aware(valid_from) >= ensure_aware(valid_until):
            raise ValidationException(
                "validFrom must be before validUntil", code="INVALID_WINDOW"
            )
        if max_redemptions is not None and max_redemptions < 1:
            raise ValidationException(
                "maxRedemptions must be a positive integer", code="INVALID_MAX_REDEMPTIONS"
            )

    @staticmethod
    def _code_taken(code: str) -> ConflictException:
        return ConflictException(
            f'Coupon code "{code}" already exists for this studio', code="COUPON_CODE_EXISTS"
        )

    @BaseService.measure_operation("create_coupon")
    def create_coupon(
        self,
        studio_id: str,
        actor_id: str,
        *,
        code: str,
        coupon_type: str,
        value: int,
        applies_to: str = CouponScope.ANY.value,
        plan_ids: Optional[Sequence[str]] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        max_redemptions: Optional[int] = None,
        active: bool = True,
    ) -> Coupon:
        self._require_admin(studio_id, actor_id)
        self._check_coupon_fields(
            code=code,
            coupon_type=coupon_type,
            value=value,
            applies_to=applies_to,
            valid_from=valid_from,
            valid_until=valid_until,
            max_redemptions=max_redemptions,
        )
        if self.coupon_repository.get_by_code(studio_id, code) is not None:
            raise self._code_taken(code)

        try:
            coupon = self.coupon_repository.create(
                studio_id=studio_id,
                code=code,
                coupon_type=coupon_type,
                value=value,
                applies_to=applies_to,
                plan_ids=list(plan_ids or []),
                valid_from=valid_from,
                valid_until=valid_until,
                max_redemptions=max_redemptions,
                current_redemptions=0,
                active=active,
                created_by_id=actor_id,
            )
            self.db.commit()
        except IntegrityError as e:
            # Lost a race with another create of the same code
            self.db.rollback()
            raise self._code_taken(code) from e

        self.log_operation("create_coupon", studio_id=studio_id, coupon_id=coupon.id)
        return coupon

    @BaseService.measure_operation("update_coupon")
    def update_coupon(
        self, studio_id: str, coupon_id: str, actor_id: str, changes: Dict[str, Any]
    ) -> Coupon:
        """
        Apply a partial edit to a coupon.

        ``changes`` holds only the fields the caller sent. The merged coupon
        must pass the same checks as a new one; the redemption counter is
        never editable.
        """
        self._require_admin(studio_id, actor_id)
        unknown = set(changes) - EDITABLE_COUPON_FIELDS
        if unknown:
            raise ValidationException(
                f"Cannot update coupon fields: {', '.join(sorted(unknown))}",
                code="INVALID_FIELDS",
            )
        if "active" in changes and changes["active"] is None:
            raise ValidationException("active must be true or false", code="INVALID_ACTIVE")

        coupon = self.coupon_repository.get_for_studio(coupon_id, studio_id)
        if coupon is None:
            raise NotFoundException("Coupon not found", code="COUPON_NOT_FOUND")

        merged = {
            field: changes.get(field, getattr(coupon, field))
            for field in EDITABLE_COUPON_FIELDS - {"active", "plan_ids"}
        }
        self._check_coupon_fields(**merged)
        new_code = changes.get("code")
        if new_code is not None and new_code != coupon.code:
            taken = self.coupon_repository.get_by_code(studio_id, new_code)
            if taken is not None and taken.id != coupon.id:
                raise self._code_taken(new_code)

        try:
            for field, value in changes.items():
                if field == "plan_ids":
                    value = list(value or [])
                setattr(coupon, field, value)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._code_taken(new_code or coupon.code) from e

        self.log_operation(
            "update_coupon",
            studio_id=studio_id,
            coupon_id=coupon.id,
            fields=sorted(changes),
        )
        return coupon

    @BaseService.measure_operation("deactivate_coupon")
    def deactivate_coupon(self, studio_id: str, coupon_id: str, actor_id: str) -> None:
        self._require_admin(studio_id, actor_id)
        with self.transaction():
            if not self.coupon_repository.deactivate(coupon_id, studio_id):
                raise NotFoundException("Coupon not found", code="COUPON_NOT_FOUND")
        self.log_operation("deactivate_coupon", studio_id=studio_id, coupon_id=coupon_id)

    def list_coupons(self, studio_id: str, actor_id: str) -> List[Coupon]:
        self._require_staff(studio_id, actor_id)
        return self.coupon_repository.list_for_studio(studio_id)
