from __future__ import annotations

from datetime import timedelta

from studio_booking.core.enums import StudioRole
from studio_booking.core.timezone_utils import utc_now
from studio_booking.core.ulid_helper import generate_ulid
from tests.factories.studio_builders import (
    add_member,
    create_class,
    create_pack,
    create_studio,
)


def _headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


def _book(client, studio_id: str, class_id: str, user_id: str):
    return client.post(
        f"/api/v1/studios/{studio_id}/classes/{class_id}/book", headers=_headers(user_id)
    )


class TestBookRoute:
    def test_book_returns_201_with_credit(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_pack(unit_db, studio, member_id, classes=5)
        class_instance = create_class(unit_db, studio)

        response = _book(client, studio.id, class_instance.id, member_id)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "booked"
        assert body["creditSource"] == "class_pack"
        assert body["remainingCredits"] == 4
        assert "waitlistPosition" not in body

    def test_full_class_returns_202_with_position(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        class_instance = create_class(unit_db, studio, capacity=1, booked_count=1)

        response = _book(client, studio.id, class_instance.id, member_id)

        assert response.status_code == 202
        assert response.json()["status"] == "waitlisted"
        assert response.json()["waitlistPosition"] == 1

        position = client.get(
            f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/waitlist/me",
            headers=_headers(member_id),
        )
        assert position.status_code == 200
        assert position.json() == {"classInstanceId": class_instance.id, "position": 1}

    def test_no_credits_is_a_problem_response(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        class_instance = create_class(unit_db, studio)

        response = _book(client, studio.id, class_instance.id, member_id)

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/problem+json")
        body = response.json()
        assert body["code"] == "NO_CREDITS"
        assert body["status"] == 400
        assert body["title"] == "Bad Request"

    def test_double_booking_is_409(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_pack(unit_db, studio, member_id)
        class_instance = create_class(unit_db, studio)
        _book(client, studio.id, class_instance.id, member_id)

        response = _book(client, studio.id, class_instance.id, member_id)

        assert response.status_code == 409
        assert response.json()["code"] == "BOOKING_CONFLICT"

    def test_non_member_is_403(self, client, unit_db):
        studio = create_studio(unit_db)
        class_instance = create_class(unit_db, studio)

        response = _book(client, studio.id, class_instance.id, generate_ulid())

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_A_MEMBER"

    def test_unknown_class_is_404(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)

        response = _book(client, studio.id, generate_ulid(), member_id)

        assert response.status_code == 404

    def test_missing_identity_is_401(self, client, unit_db):
        studio = create_studio(unit_db)
        class_instance = create_class(unit_db, studio)

        response = client.post(f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/book")

        assert response.status_code == 401

    def test_malformed_ids_are_rejected(self, client):
        response = client.post(
            "/api/v1/studios/not-a-ulid/classes/also-not/book",
            headers=_headers(generate_ulid()),
        )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"


class TestCancelRoutes:
    def test_member_cancel_reports_refund(self, client, unit_db):
        studio = create_studio(unit_db, cancellation_window_hours=12)
        member_id = add_member(unit_db, studio)
        create_pack(unit_db, studio, member_id)
        class_instance = create_class(unit_db, studio, starts_at=utc_now() + timedelta(days=2))
        booking_id = _book(client, studio.id, class_instance.id, member_id).json()["bookingId"]

        response = client.delete(f"/api/v1/bookings/{booking_id}", headers=_headers(member_id))

        assert response.status_code == 200
        assert response.json() == {
            "bookingId": booking_id,
            "status": "cancelled",
            "creditRefunded": True,
            "withinCancellationWindow": True,
        }

        again = client.delete(f"/api/v1/bookings/{booking_id}", headers=_headers(member_id))
        assert again.status_code == 400
        assert again.json()["code"] == "ALREADY_CANCELLED"

    def test_staff_cancel_always_refunds(self, client, unit_db):
        studio = create_studio(unit_db, cancellation_window_hours=24)
        member_id = add_member(unit_db, studio)
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)
        create_pack(unit_db, studio, member_id)
        class_instance = create_class(unit_db, studio, starts_at=utc_now() + timedelta(hours=2))
        booking_id = _book(client, studio.id, class_instance.id, member_id).json()["bookingId"]

        response = client.delete(
            f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/bookings/{booking_id}",
            headers=_headers(teacher_id),
        )

        assert response.status_code == 200
        assert response.json()["creditRefunded"] is True
        assert response.json()["withinCancellationWindow"] is False

    def test_staff_cancel_checks_the_class(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        teacher_id = add_member(unit_db, studio, role=StudioRole.TEACHER)
        create_pack(unit_db, studio, member_id)
        class_instance = create_class(unit_db, studio)
        other_class = create_class(unit_db, studio, name="Other")
        booking_id = _book(client, studio.id, class_instance.id, member_id).json()["bookingId"]

        response = client.delete(
            f"/api/v1/studios/{studio.id}/classes/{other_class.id}/bookings/{booking_id}",
            headers=_headers(teacher_id),
        )

        assert response.status_code == 404

    def test_other_members_cannot_cancel(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_pack(unit_db, studio, member_id)
        class_instance = create_class(unit_db, studio)
        booking_id = _book(client, studio.id, class_instance.id, member_id).json()["bookingId"]

        response = client.delete(
            f"/api/v1/bookings/{booking_id}", headers=_headers(add_member(unit_db, studio))
        )

        assert response.status_code == 403


class TestStaffRoutes:
    def test_staff_book_and_roster(self, client, unit_db):
        studio = create_studio(unit_db)
        owner_id = add_member(unit_db, studio, role=StudioRole.OWNER)
        member_id = add_member(unit_db, studio)
        class_instance = create_class(unit_db, studio, capacity=4)

        booked = client.post(
            f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/bookings",
            json={"memberId": member_id},
            headers=_headers(owner_id),
        )
        assert booked.status_code == 201
        assert "creditSource" not in booked.json()

        roster = client.get(
            f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/bookings",
            headers=_headers(owner_id),
        )
        assert roster.status_code == 200
        body = roster.json()
        assert body["bookedCount"] == 1
        assert body["spotsLeft"] == 3
        assert [b["userId"] for b in body["booked"]] == [member_id]
        assert body["waitlist"] == []

    def test_roster_is_staff_only(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        class_instance = create_class(unit_db, studio)

        response = client.get(
            f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/bookings",
            headers=_headers(member_id),
        )

        assert response.status_code == 403

    def test_confirm_route(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        create_pack(unit_db, studio, member_id)
        class_instance = create_class(unit_db, studio)
        booking_id = _book(client, studio.id, class_instance.id, member_id).json()["bookingId"]

        response = client.post(
            f"/api/v1/bookings/{booking_id}/confirm", headers=_headers(member_id)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert response.json()["confirmedAt"] is not None

    def test_not_waitlisted_is_404(self, client, unit_db):
        studio = create_studio(unit_db)
        member_id = add_member(unit_db, studio)
        class_instance = create_class(unit_db, studio)

        response = client.get(
            f"/api/v1/studios/{studio.id}/classes/{class_instance.id}/waitlist/me",
            headers=_headers(member_id),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_WAITLISTED"


def test_health_and_metrics(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    metrics = client.get("/metrics/prometheus?refresh=1")
    assert metrics.status_code == 200
    assert b"studio_booking_admission_decisions_total" in metrics.content
