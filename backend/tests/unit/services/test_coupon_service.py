from __future__ import annotations

from datetime import timedelta
from unittest.mock import Mock, patch

import pytest

from studio_booking.core.enums import StudioRole
from studio_booking.core.exceptions import (
    ConflictException,
    CouponInvalidException,
    ForbiddenException,
    NotFoundException,
    ServiceException,
    ValidationException,
)
from studio_booking.core.timezone_utils import ensure_aware, utc_now
from studio_booking.core.ulid_helper import generate_ulid
from studio_booking.models.coupon import CouponRedemption, CouponScope
from studio_booking.models.entitlement import PlanType
from studio_booking.services import coupon_service as coupon_module
from studio_booking.services.coupon_service import CouponService, describe_discount
from studio_booking.services.payment_gateway import LocalPaymentGateway
from tests.factories.studio_builders import (
    add_member,
    create_coupon,
    create_studio,
    create_subscription,
)


@pytest.fixture
def studio(unit_db):
    return create_studio(unit_db)


@pytest.fixture
def member_id(unit_db, studio):
    return add_member(unit_db, studio)


@pytest.fixture
def gateway() -> Mock:
    gateway = Mock()
    gateway.reusable_handles = True
    gateway.create_discount.return_value = "disc_123"
    return gateway


@pytest.fixture
def service(unit_db, gateway) -> CouponService:
    return CouponService(unit_db, payment_gateway=gateway)


@pytest.mark.parametrize(
    ("coupon_type", "value", "expected"),
    [
        ("percent_off", 20, "20% off"),
        ("amount_off", 500, "$5.00 off"),
        ("amount_off", 1250, "$12.50 off"),
        ("free_classes", 1, "1 free class"),
        ("free_classes", 3, "3 free classes"),
    ],
)
def test_describe_discount(coupon_type, value, expected):
    assert describe_discount(coupon_type, value) == expected


class TestValidate:
    def test_valid_coupon_reports_the_discount(self, unit_db, studio, member_id, service):
        coupon = create_coupon(unit_db, studio, code="SAVE20", value=20)

        result = service.validate("save20", studio.id, member_id)

        assert result.valid is True
        assert result.reason is None
        assert result.discount == coupon_module.Discount(
            coupon_id=coupon.id,
            coupon_type="percent_off",
            value=20,
            description="20% off",
            applies_to="any",
        )

    def test_unknown_code(self, studio, member_id, service):
        result = service.validate("NOPE", studio.id, member_id)

        assert result.valid is False
        assert result.reason == coupon_module.REASON_NOT_FOUND

    def test_code_from_another_studio_is_unknown(self, unit_db, studio, member_id, service):
        create_coupon(unit_db, create_studio(unit_db, name="Other"), code="ELSEWHERE")

        assert service.validate("ELSEWHERE", studio.id, member_id).valid is False

    def test_blank_code_is_a_bad_request(self, studio, member_id, service):
        with pytest.raises(ValidationException):
            service.validate("   ", studio.id, member_id)

    @pytest.mark.parametrize(
        ("overrides", "reason"),
        [
            ({"active": False}, coupon_module.REASON_INACTIVE),
            ({"valid_from": timedelta(days=1)}, coupon_module.REASON_NOT_YET_VALID),
            ({"valid_until": -timedelta(days=1)}, coupon_module.REASON_EXPIRED),
            (
                {"max_redemptions": 2, "current_redemptions": 2},
                coupon_module.REASON_EXHAUSTED,
            ),
            ({"applies_to": CouponScope.PLAN}, coupon_module.REASON_PLAN_REQUIRED),
        ],
    )
    def test_failure_reasons(self, unit_db, studio, member_id, service, overrides, reason):
        now = utc_now()
        kwargs = dict(overrides)
        for key in ("valid_from", "valid_until"):
            if key in kwargs:
                kwargs[key] = now + kwargs[key]
        create_coupon(unit_db, studio, code="CHECKME", **kwargs)

        result = service.validate("CHECKME", studio.id, member_id, now=now)

        assert result.valid is False
        assert result.reason == reason

    def test_inactive_is_reported_before_expiry(self, unit_db, studio, member_id, service):
        create_coupon(
            unit_db,
            studio,
            code="OLD",
            active=False,
            valid_until=utc_now() - timedelta(days=3),
        )

        assert service.validate("OLD", studio.id, member_id).reason == coupon_module.REASON_INACTIVE

    def test_coupon_is_usable_until_the_end_instant(self, unit_db, studio, member_id, service):
        until = utc_now().replace(microsecond=0) + timedelta(days=1)
        create_coupon(unit_db, studio, code="LASTDAY", valid_until=until)

        assert service.validate("LASTDAY", studio.id, member_id, now=until).valid is True

    def test_plan_scope_checks_the_selected_plan(self, unit_db, studio, member_id, service):
        create_coupon(
            unit_db, studio, code="GOLDONLY", applies_to=CouponScope.PLAN, plan_ids=["plan_gold"]
        )

        mismatch = service.validate("GOLDONLY", studio.id, member_id, plan_id="plan_silver")
        match = service.validate("GOLDONLY", studio.id, member_id, plan_id="plan_gold")

        assert mismatch.reason == coupon_module.REASON_PLAN_MISMATCH
        assert match.valid is True

    def test_plan_scope_without_plan_list_accepts_any_plan(
        self, unit_db, studio, member_id, service
    ):
        create_coupon(unit_db, studio, code="ANYPLAN", applies_to=CouponScope.PLAN)

        assert service.validate("ANYPLAN", studio.id, member_id, plan_id="plan_x").valid is True

    def test_new_member_scope(self, unit_db, studio, member_id, service):
        create_coupon(unit_db, studio, code="WELCOME", applies_to=CouponScope.NEW_MEMBER)
        returning = add_member(unit_db, studio)
        create_subscription(unit_db, studio, returning, plan_type=PlanType.UNLIMITED)

        assert service.validate("WELCOME", studio.id, member_id).valid is True
        assert (
            service.validate("WELCOME", studio.id, returning).reason
            == coupon_module.REASON_NEW_MEMBERS_ONLY
        )


class TestRedeem:
    def test_percent_coupon_produces_a_gateway_handle(
        self, unit_db, studio, member_id, service, gateway
    ):
        coupon = create_coupon(unit_db, studio, code="SAVE20", max_redemptions=10)

        result = service.redeem(
            "SAVE20",
            studio.id,
            member_id,
            "subscription",
            applied_to_id="sub_1",
            discount_amount_cents=1500,
        )

        assert result.discount_handle == "disc_123"
        assert result.comp_grant is None
        assert result.redemption.applied_to_type == "subscription"
        assert result.redemption.discount_amount_cents == 1500
        gateway.create_discount.assert_called_once()
        unit_db.refresh(coupon)
        assert coupon.current_redemptions == 1
        assert coupon.gateway_coupon_id == "disc_123"

    def test_local_gateway_handles_are_not_stored(self, unit_db, studio, member_id):
        coupon = create_coupon(unit_db, studio, code="TENOFF", coupon_type="amount_off", value=1000)
        service = CouponService(unit_db, payment_gateway=LocalPaymentGateway())

        result = service.redeem("TENOFF", studio.id, member_id, "drop_in")

        assert result.discount_handle == f"local_{coupon.id}"
        unit_db.refresh(coupon)
        assert coupon.gateway_coupon_id is None

    def test_free_classes_coupon_grants_comp_classes(
        self, unit_db, studio, member_id, service, gateway
    ):
        until = utc_now().replace(microsecond=0) + timedelta(days=30)
        coupon = create_coupon(
            unit_db,
            studio,
            code="TRY3",
            coupon_type="free_classes",
            value=3,
            valid_until=until,
        )

        result = service.redeem("TRY3", studio.id, member_id, "class_pack")

        comp = result.comp_grant
        assert comp is not None
        assert comp.user_id == member_id
        assert comp.total_classes == 3
        assert comp.remaining_classes == 3
        assert comp.reason == "Coupon: TRY3"
        assert ensure_aware(comp.expires_at) == until
        assert result.redemption.comp_class_id == comp.id
        assert result.discount_handle is None
        gateway.create_discount.assert_not_called()
        unit_db.refresh(coupon)
        assert coupon.current_redemptions == 1

    def test_capped_coupon_stops_at_the_cap(self, unit_db, studio, member_id, service):
        coupon = create_coupon(unit_db, studio, code="ONCE", max_redemptions=1)
        service.redeem("ONCE", studio.id, member_id, "subscription")

        with pytest.raises(CouponInvalidException) as exc_info:
            service.redeem("ONCE", studio.id, add_member(unit_db, studio), "subscription")

        assert exc_info.value.message == coupon_module.REASON_EXHAUSTED
        unit_db.refresh(coupon)
        assert coupon.current_redemptions == 1
        assert (
            unit_db.query(CouponRedemption)
            .filter(CouponRedemption.coupon_id == coupon.id)
            .count()
            == 1
        )

    def test_losing_the_counter_race_reports_exhaustion(
        self, unit_db, studio, member_id, service
    ):
        create_coupon(unit_db, studio, code="RACE", max_redemptions=5)

        with patch.object(
            service.coupon_repository, "try_increment_redemptions", return_value=False
        ):
            with pytest.raises(CouponInvalidException) as exc_info:
                service.redeem("RACE", studio.id, member_id, "subscription")

        assert exc_info.value.code == "COUPON_EXHAUSTED"

    def test_gateway_failure_rolls_back_the_counter(
        self, unit_db, studio, member_id, service, gateway
    ):
        coupon = create_coupon(unit_db, studio, code="FLAKY", max_redemptions=5)
        gateway.create_discount.side_effect = ServiceException(
            "Failed to create checkout discount", code="PAYMENT_GATEWAY_ERROR"
        )

        with pytest.raises(ServiceException):
            service.redeem("FLAKY", studio.id, member_id, "subscription")

        unit_db.refresh(coupon)
        assert coupon.current_redemptions == 0

    def test_invalid_coupon_is_rejected(self, unit_db, studio, member_id, service):
        create_coupon(unit_db, studio, code="OFF", active=False)

        with pytest.raises(CouponInvalidException) as exc_info:
            service.redeem("OFF", studio.id, member_id, "subscription")
        assert exc_info.value.details == {"reason": coupon_module.REASON_INACTIVE}

    def test_unknown_code_is_not_found(self, studio, member_id, service):
        with pytest.raises(NotFoundException):
            service.redeem("MISSING", studio.id, member_id, "subscription")

    def test_applied_to_type_is_checked(self, unit_db, studio, member_id, service):
        create_coupon(unit_db, studio, code="SAVE20")

        with pytest.raises(ValidationException) as exc_info:
            service.redeem("SAVE20", studio.id, member_id, "gift_card")
        assert exc_info.value.code == "INVALID_APPLIED_TO"


class TestAdministration:
    @pytest.fixture
    def admin_id(self, unit_db, studio):
        return add_member(unit_db, studio, role=StudioRole.ADMIN)

    def test_admin_creates_coupon(self, unit_db, studio, service, admin_id):
        coupon = service.create_coupon(
            studio.id,
            admin_id,
            code="SPRING25",
            coupon_type="percent_off",
            value=25,
            max_redemptions=100,
        )

        assert coupon.id
        assert coupon.current_redemptions == 0
        assert coupon.created_by_id == admin_id
        assert coupon.code == "SPRING25"
        assert service.validate("SPRING25", studio.id, admin_id).valid is True

    def test_teachers_cannot_create_coupons(self, unit_db, studio, service):
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)

        with pytest.raises(ForbiddenException):
            service.create_coupon(
                studio.id, teacher_id, code="NOPE", coupon_type="percent_off", value=10
            )

    @pytest.mark.parametrize(
        ("kwargs", "error_code"),
        [
            ({"code": "X"}, "INVALID_CODE"),
            ({"code": "lower"}, "INVALID_CODE"),
            ({"code": "HAS SPACE"}, "INVALID_CODE"),
            ({"coupon_type": "bogo"}, "INVALID_TYPE"),
            ({"value": 0}, "INVALID_VALUE"),
            ({"value": 101}, "INVALID_VALUE"),
            ({"applies_to": "drop_in"}, "INVALID_SCOPE"),
            ({"max_redemptions": 0}, "INVALID_MAX_REDEMPTIONS"),
        ],
    )
    def test_create_validation(self, studio, service, admin_id, kwargs, error_code):
        params = {"code": "GOOD_CODE-1", "coupon_type": "percent_off", "value": 10}
        params.update(kwargs)

        with pytest.raises(ValidationException) as exc_info:
            service.create_coupon(studio.id, admin_id, **params)
        assert exc_info.value.code == error_code

    def test_window_must_be_ordered(self, studio, service, admin_id):
        now = utc_now()

        with pytest.raises(ValidationException) as exc_info:
            service.create_coupon(
                studio.id,
                admin_id,
                code="BACKWARDS",
                coupon_type="amount_off",
                value=500,
                valid_from=now + timedelta(days=2),
                valid_until=now + timedelta(days=1),
            )
        assert exc_info.value.code == "INVALID_WINDOW"

    def test_duplicate_code_conflicts(self, unit_db, studio, service, admin_id):
        create_coupon(unit_db, studio, code="DUPE")

        with pytest.raises(ConflictException) as exc_info:
            service.create_coupon(
                studio.id, admin_id, code="DUPE", coupon_type="percent_off", value=5
            )
        assert exc_info.value.code == "COUPON_CODE_EXISTS"

    def test_same_code_in_another_studio_is_fine(self, unit_db, studio, service, admin_id):
        create_coupon(unit_db, create_studio(unit_db, name="Other"), code="SHARED")

        coupon = service.create_coupon(
            studio.id, admin_id, code="SHARED", coupon_type="percent_off", value=5
        )
        assert coupon.studio_id == studio.id

    def test_deactivate_then_validate(self, unit_db, studio, member_id, service, admin_id):
        coupon = create_coupon(unit_db, studio, code="SUMMER")

        service.deactivate_coupon(studio.id, coupon.id, admin_id)
        unit_db.expire_all()

        result = service.validate("SUMMER", studio.id, member_id)
        assert result.reason == coupon_module.REASON_INACTIVE

    def test_deactivate_unknown_coupon(self, studio, service, admin_id):
        with pytest.raises(NotFoundException):
            service.deactivate_coupon(studio.id, generate_ulid(), admin_id)

    def test_staff_list_coupons_but_members_cannot(
        self, unit_db, studio, member_id, service
    ):
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)
        create_coupon(unit_db, studio, code="ONE")
        create_coupon(unit_db, studio, code="TWO", active=False)

        assert {c.code for c in service.list_coupons(studio.id, teacher_id)} == {"ONE", "TWO"}
        with pytest.raises(ForbiddenException):
            service.list_coupons(studio.id, member_id)


class TestUpdateCoupon:
    @pytest.fixture
    def admin_id(self, unit_db, studio):
        return add_member(unit_db, studio, role=StudioRole.ADMIN)

    def test_partial_update_changes_only_sent_fields(self, unit_db, studio, service, admin_id):
        coupon = create_coupon(unit_db, studio, code="SAVE20", value=20, max_redemptions=10)

        updated = service.update_coupon(
            studio.id, coupon.id, admin_id, {"code": "SAVE30", "value": 30}
        )

        assert updated.id == coupon.id
        assert updated.code == "SAVE30"
        assert updated.value == 30
        assert updated.max_redemptions == 10
        assert service.validate("SAVE30", studio.id, admin_id).valid is True
        assert service.validate("SAVE20", studio.id, admin_id).valid is False

    def test_merged_fields_are_checked_together(self, unit_db, studio, service, admin_id):
        coupon = create_coupon(unit_db, studio, coupon_type="amount_off", value=500)

        with pytest.raises(ValidationException) as exc_info:
            service.update_coupon(studio.id, coupon.id, admin_id, {"coupon_type": "percent_off"})
        assert exc_info.value.code == "INVALID_VALUE"

    @pytest.mark.parametrize(
        ("changes", "error_code"),
        [
            ({"code": "bad code"}, "INVALID_CODE"),
            ({"value": 101}, "INVALID_VALUE"),
            ({"coupon_type": "bogo"}, "INVALID_TYPE"),
            ({"current_redemptions": 0}, "INVALID_FIELDS"),
            ({"active": None}, "INVALID_ACTIVE"),
        ],
    )
    def test_rejected_changes(self, unit_db, studio, service, admin_id, changes, error_code):
        coupon = create_coupon(unit_db, studio)

        with pytest.raises(ValidationException) as exc_info:
            service.update_coupon(studio.id, coupon.id, admin_id, changes)
        assert exc_info.value.code == error_code

    def test_code_taken_by_another_coupon_conflicts(self, unit_db, studio, service, admin_id):
        create_coupon(unit_db, studio, code="TAKEN")
        coupon = create_coupon(unit_db, studio, code="MINE")

        with pytest.raises(ConflictException) as exc_info:
            service.update_coupon(studio.id, coupon.id, admin_id, {"code": "TAKEN"})
        assert exc_info.value.code == "COUPON_CODE_EXISTS"

    def test_keeping_the_same_code_is_not_a_conflict(self, unit_db, studio, service, admin_id):
        coupon = create_coupon(unit_db, studio, code="SAME")

        updated = service.update_coupon(
            studio.id, coupon.id, admin_id, {"code": "SAME", "active": False}
        )

        assert updated.active is False

    def test_teachers_cannot_update(self, unit_db, studio, service):
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)
        coupon = create_coupon(unit_db, studio)

        with pytest.raises(ForbiddenException):
            service.update_coupon(studio.id, coupon.id, teacher_id, {"value": 5})

    def test_coupon_from_another_studio_is_not_found(self, unit_db, studio, service, admin_id):
        coupon = create_coupon(unit_db, create_studio(unit_db, name="Other"))

        with pytest.raises(NotFoundException):
            service.update_coupon(studio.id, coupon.id, admin_id, {"value": 5})
