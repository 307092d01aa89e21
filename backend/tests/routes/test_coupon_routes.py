from __future__ import annotations

from datetime import timedelta

from studio_booking.core.enums import StudioRole
from studio_booking.core.timezone_utils import utc_now
from studio_booking.core.ulid_helper import generate_ulid
from studio_booking.models.coupon import Coupon, CouponScope
from tests.factories.studio_builders import add_member, create_coupon, create_studio


def _headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


class TestValidateRoute:
    def test_valid_coupon_describes_the_discount(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        coupon = create_coupon(unit_db, studio, code="SAVE20", value=20)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/validate",
            json={"code": "SAVE20"},
            headers=_headers(member_id),
        )

        assert response.status_code == 200
        assert response.json() == {
            "valid": True,
            "discount": {
                "couponId": coupon.id,
                "type": "percent_off",
                "value": 20,
                "description": "20% off",
                "appliesTo": "any",
            },
        }

    def test_invalid_coupon_is_not_an_error(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_coupon(
            unit_db, studio, code="OLD", valid_until=utc_now() - timedelta(days=1)
        )

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/validate",
            json={"code": "OLD"},
            headers=_headers(member_id),
        )

        assert response.status_code == 200
        assert response.json() == {"valid": False, "reason": "Coupon has expired"}

    def test_plan_scoped_coupon_needs_the_plan(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_coupon(
            unit_db, studio, code="GOLD", applies_to=CouponScope.PLAN, plan_ids=["gold"]
        )
        url = f"/api/v1/studios/{studio.id}/coupons/validate"

        silver = client.post(
            url, json={"code": "GOLD", "planId": "silver"}, headers=_headers(member_id)
        )
        gold = client.post(
            url, json={"code": "GOLD", "planId": "gold"}, headers=_headers(member_id)
        )

        assert silver.json()["valid"] is False
        assert silver.json()["reason"] == "Coupon does not apply to the selected plan"
        assert gold.json()["valid"] is True

    def test_unknown_fields_are_rejected(self, client, unit_db):
        studio = create_studio(unit_db)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/validate",
            json={"code": "SAVE20", "discount": 100},
            headers=_headers(generate_ulid()),
        )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"
        assert response.json()["errors"]


class TestRedeemRoute:
    def test_percent_coupon_returns_a_discount_handle(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        coupon = create_coupon(unit_db, studio, code="SAVE20", max_redemptions=5)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/redeem",
            json={"code": "SAVE20", "appliedToType": "drop_in", "discountAmountCents": 500},
            headers=_headers(member_id),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["couponType"] == "percent_off"
        assert body["discountHandle"] == f"local_{coupon.id}"
        assert "compGrant" not in body
        unit_db.refresh(coupon)
        assert coupon.current_redemptions == 1

    def test_free_classes_coupon_grants_comps(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_coupon(unit_db, studio, code="TRYUS", coupon_type="free_classes", value=2)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/redeem",
            json={"code": "TRYUS", "appliedToType": "class_pack"},
            headers=_headers(member_id),
        )

        assert response.status_code == 201
        grant = response.json()["compGrant"]
        assert grant["userId"] == member_id
        assert grant["totalClasses"] == 2
        assert grant["remainingClasses"] == 2

    def test_exhausted_coupon_is_400(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_coupon(unit_db, studio, code="ONCE", max_redemptions=1, current_redemptions=1)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/redeem",
            json={"code": "ONCE", "appliedToType": "drop_in"},
            headers=_headers(member_id),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "COUPON_INVALID"
        assert response.json()["detail"] == "Coupon redemption limit reached"

    def test_unknown_code_is_404(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/redeem",
            json={"code": "NOPE", "appliedToType": "drop_in"},
            headers=_headers(member_id),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "COUPON_NOT_FOUND"

    def test_applied_to_type_is_validated_by_the_schema(self, client, unit_db):
        studio = create_studio(unit_db)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons/redeem",
            json={"code": "SAVE20", "appliedToType": "gift_card"},
            headers=_headers(generate_ulid()),
        )

        assert response.status_code == 422


class TestCouponAdminRoutes:
    def test_owner_creates_lists_and_deactivates(self, client, unit_db):
        studio = create_studio(unit_db)
        owner_id = add_member(unit_db, studio, role=StudioRole.OWNER)

        created = client.post(
            f"/api/v1/studios/{studio.id}/coupons",
            json={
                "code": "SPRING10",
                "type": "amount_off",
                "value": 1000,
                "maxRedemptions": 50,
            },
            headers=_headers(owner_id),
        )
        assert created.status_code == 201
        coupon_id = created.json()["id"]
        assert created.json()["currentRedemptions"] == 0
        assert created.json()["appliesTo"] == "any"

        listed = client.get(f"/api/v1/studios/{studio.id}/coupons", headers=_headers(owner_id))
        assert [c["code"] for c in listed.json()["coupons"]] == ["SPRING10"]

        deactivated = client.delete(
            f"/api/v1/studios/{studio.id}/coupons/{coupon_id}", headers=_headers(owner_id)
        )
        assert deactivated.status_code == 200
        assert deactivated.json() == {"couponId": coupon_id, "deactivated": True}
        unit_db.expire_all()
        assert unit_db.get(Coupon, coupon_id).active is False

    def test_members_cannot_create_coupons(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons",
            json={"code": "FREE", "type": "percent_off", "value": 100},
            headers=_headers(member_id),
        )

        assert response.status_code == 403

    def test_owner_edits_a_coupon(self, client, unit_db):
        studio = create_studio(unit_db)
        owner_id = add_member(unit_db, studio, role=StudioRole.OWNER)
        coupon = create_coupon(unit_db, studio, code="SAVE20", value=20)

        response = client.put(
            f"/api/v1/studios/{studio.id}/coupons/{coupon.id}",
            json={"code": "SAVE25", "value": 25, "maxRedemptions": 40},
            headers=_headers(owner_id),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == coupon.id
        assert body["code"] == "SAVE25"
        assert body["value"] == 25
        assert body["maxRedemptions"] == 40
        assert body["active"] is True

    def test_edit_to_a_taken_code_is_409(self, client, unit_db):
        studio = create_studio(unit_db)
        owner_id = add_member(unit_db, studio, role=StudioRole.OWNER)
        create_coupon(unit_db, studio, code="TAKEN")
        coupon = create_coupon(unit_db, studio, code="MINE")

        response = client.put(
            f"/api/v1/studios/{studio.id}/coupons/{coupon.id}",
            json={"code": "TAKEN"},
            headers=_headers(owner_id),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "COUPON_CODE_EXISTS"

    def test_members_cannot_edit_coupons(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        coupon = create_coupon(unit_db, studio)

        response = client.put(
            f"/api/v1/studios/{studio.id}/coupons/{coupon.id}",
            json={"value": 100},
            headers=_headers(member_id),
        )

        assert response.status_code == 403

    def test_redemption_counter_is_not_editable(self, client, unit_db):
        studio = create_studio(unit_db)
        owner_id = add_member(unit_db, studio, role=StudioRole.OWNER)
        coupon = create_coupon(unit_db, studio)

        response = client.put(
            f"/api/v1/studios/{studio.id}/coupons/{coupon.id}",
            json={"currentRedemptions": 0},
            headers=_headers(owner_id),
        )

        assert response.status_code == 422

    def test_business_rules_are_400(self, client, unit_db):
        studio = create_studio(unit_db)
        owner_id = add_member(unit_db, studio, role=StudioRole.OWNER)

        response = client.post(
            f"/api/v1/studios/{studio.id}/coupons",
            json={"code": "TOOMUCH", "type": "percent_off", "value": 150},
            headers=_headers(owner_id),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_VALUE"


class TestCompRoutes:
    def test_staff_grant_list_and_revoke(self, client, unit_db):
        studio = create_studio(unit_db)
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)
        member_id = add_member(unit_db, studio)
        base = f"/api/v1/studios/{studio.id}"

        granted = client.post(
            f"{base}/members/{member_id}/comp",
            json={"classes": 3, "reason": "Makeup for cancelled class"},
            headers=_headers(teacher_id),
        )
        assert granted.status_code == 201
        comp_id = granted.json()["id"]
        assert granted.json()["remainingClasses"] == 3

        own = client.get(f"{base}/members/{member_id}/comps", headers=_headers(member_id))
        assert [c["id"] for c in own.json()["comps"]] == [comp_id]

        revoked = client.delete(f"{base}/comps/{comp_id}", headers=_headers(teacher_id))
        assert revoked.status_code == 204
        assert revoked.content == b""

        after = client.get(f"{base}/members/{member_id}/comps", headers=_headers(teacher_id))
        assert after.json()["comps"] == []

    def test_members_cannot_grant_or_see_others(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        other_id = add_member(unit_db, studio)
        base = f"/api/v1/studios/{studio.id}"

        grant = client.post(
            f"{base}/members/{other_id}/comp", json={"classes": 1}, headers=_headers(member_id)
        )
        peek = client.get(f"{base}/members/{other_id}/comps", headers=_headers(member_id))

        assert grant.status_code == 403
        assert peek.status_code == 403

    def test_zero_classes_fails_schema_validation(self, client, unit_db):
        studio = create_studio(unit_db)
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)

        response = client.post(
            f"/api/v1/studios/{studio.id}/members/{generate_ulid()}/comp",
            json={"classes": 0},
            headers=_headers(teacher_id),
        )

        assert response.status_code == 422

    def test_unknown_member_is_404(self, client, unit_db):
        studio = create_studio(unit_db)
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)

        response = client.post(
            f"/api/v1/studios/{studio.id}/members/{generate_ulid()}/comp",
            json={"classes": 1},
            headers=_headers(teacher_id),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "MEMBER_NOT_FOUND"

    def test_staff_list_every_grant_including_revoked(self, client, unit_db):
        studio = create_studio(unit_db)
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)
        member_id = add_member(unit_db, studio)
        other_id = add_member(unit_db, studio)
        base = f"/api/v1/studios/{studio.id}"
        kept = client.post(
            f"{base}/members/{member_id}/comp", json={"classes": 2}, headers=_headers(teacher_id)
        ).json()
        revoked = client.post(
            f"{base}/members/{other_id}/comp", json={"classes": 1}, headers=_headers(teacher_id)
        ).json()
        client.delete(f"{base}/comps/{revoked['id']}", headers=_headers(teacher_id))

        response = client.get(f"{base}/comps", headers=_headers(teacher_id))

        assert response.status_code == 200
        comps = {c["id"]: c for c in response.json()["comps"]}
        assert set(comps) == {kept["id"], revoked["id"]}
        assert comps[kept["id"]]["revokedAt"] is None
        assert comps[kept["id"]]["grantedById"] == teacher_id
        assert comps[revoked["id"]]["revokedAt"] is not None
        assert comps[revoked["id"]]["remainingClasses"] == 0

    def test_members_cannot_list_studio_comps(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)

        response = client.get(f"/api/v1/studios/{studio.id}/comps", headers=_headers(member_id))

        assert response.status_code == 403
