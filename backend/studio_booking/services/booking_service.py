# backend/studio_booking/services/booking_service.py
"""
Booking Service for the studio booking engine.

Entry point for member and staff booking flows. Each write runs under the
per-class advisory lock and in one database transaction that is retried once
on a write conflict:

- book: member books with a credit, or joins the waitlist when full
- staff_book: staff seat a member without consuming a credit
- confirm: member confirms a booked seat
- roster / waitlist_position: read views
"""

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.class_lock import class_lock
from ..core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import utc_now
from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassInstance
from ..repositories.booking_repository import BookingRepository
from ..repositories.class_instance_repository import ClassInstanceRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.studio_repository import StudioRepository
from .admission_service import AdmissionDecision, AdmissionOutcome, AdmissionService, Occupancy
from .base import BaseService
from .credit_service import CreditService
from .notification_service import NotificationService
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


@dataclass
class BookingOutcome:
    status: str
    booking: Booking
    credit_source: Optional[str] = None
    remaining_credits: Optional[int] = None
    waitlist_position: Optional[int] = None

    @classmethod
    def from_decision(cls, decision: AdmissionDecision) -> "BookingOutcome":
        credit = decision.credit
        return cls(
            status=decision.outcome.value,
            booking=decision.booking,
            credit_source=credit.source.value if credit else None,
            remaining_credits=credit.remaining_after if credit else None,
            waitlist_position=decision.waitlist_position,
        )


@dataclass
class WaitlistEntry:
    booking: Booking
    position: int


@dataclass
class Roster:
    class_instance: ClassInstance
    occupancy: Occupancy
    booked: List[Booking] = field(default_factory=list)
    waitlist: List[WaitlistEntry] = field(default_factory=list)
    cancelled: List[Booking] = field(default_factory=list)


class BookingService(BaseService):
    def __init__(
        self,
        db: Session,
        admission_service: Optional[AdmissionService] = None,
        notification_service: Optional[NotificationService] = None,
        booking_repository: Optional[BookingRepository] = None,
        class_instance_repository: Optional[ClassInstanceRepository] = None,
        studio_repository: Optional[StudioRepository] = None,
    ):
        super().__init__(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.class_instance_repository = (
            class_instance_repository or RepositoryFactory.create_class_instance_repository(db)
        )
        self.studio_repository = studio_repository or RepositoryFactory.create_studio_repository(db)
        if admission_service is None:
            credit_service = CreditService(db, studio_repository=self.studio_repository)
            waitlist_service = WaitlistService(
                db,
                credit_service=credit_service,
                booking_repository=self.booking_repository,
                class_instance_repository=self.class_instance_repository,
            )
            admission_service = AdmissionService(
                db,
                credit_service=credit_service,
                waitlist_service=waitlist_service,
                booking_repository=self.booking_repository,
                class_instance_repository=self.class_instance_repository,
            )
        self.admission_service = admission_service
        self.waitlist_service = admission_service.waitlist_service
        self.notification_service = notification_service or NotificationService(db)

    def _get_class(self, studio_id: str, class_instance_id: str) -> ClassInstance:
        class_instance = self.class_instance_repository.get_for_studio(class_instance_id, studio_id)
        if class_instance is None:
            raise NotFoundException("Class not found", code="CLASS_NOT_FOUND")
        return class_instance

    def _admit(
        self,
        studio_id: str,
        class_instance_id: str,
        member_id: str,
        now: datetime,
        *,
        consume_credit: bool,
        actor_id: str,
    ) -> AdmissionDecision:
        # Fresh read on every attempt; a retry starts from a rolled-back session
        class_instance = self._get_class(studio_id, class_instance_id)
        decision = self.admission_service.admit(
            class_instance,
            member_id,
            now,
            consume_credit=consume_credit,
            actor_id=actor_id,
        )
        if decision.outcome == AdmissionOutcome.BOOKED:
            self.notification_service.booking_confirmed(decision.booking)
        else:
            self.notification_service.booking_waitlisted(
                decision.booking, decision.waitlist_position or 0
            )
        return decision

    # ------------------------------------------------------------------ writes
    @BaseService.measure_operation("book_class")
    def book(
        self,
        studio_id: str,
        class_instance_id: str,
        member_id: str,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        """
        Book a class for a member, paying with their best available credit.

        Returns a booked outcome with the credit used, or a waitlisted outcome
        with the member's position when the class is full.
        """
        now = now or utc_now()
        if not self.studio_repository.is_active_member(studio_id, member_id):
            raise ForbiddenException(
                "You must be an active member of this studio to book", code="NOT_A_MEMBER"
            )
        self._get_class(studio_id, class_instance_id)

        with class_lock(class_instance_id):
            decision = self.run_with_retry(
                "book_class",
                lambda: self._admit(
                    studio_id,
                    class_instance_id,
                    member_id,
                    now,
                    consume_credit=True,
                    actor_id=member_id,
                ),
            )

        outcome = BookingOutcome.from_decision(decision)
        self.log_operation(
            "book_class",
            studio_id=studio_id,
            class_instance_id=class_instance_id,
            member_id=member_id,
            status=outcome.status,
            booking_id=outcome.booking.id,
        )
        return outcome

    @BaseService.measure_operation("staff_book")
    def staff_book(
        self,
        studio_id: str,
        class_instance_id: str,
        member_id: str,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        """Staff seat a member without consuming a credit; a full class still waitlists."""
        now = now or utc_now()
        if not self.studio_repository.is_staff(studio_id, actor_id):
            raise ForbiddenException("Only studio staff can book on behalf of members")
        if not self.studio_repository.is_active_member(studio_id, member_id):
            raise NotFoundException("Member not found in this studio", code="MEMBER_NOT_FOUND")
        self._get_class(studio_id, class_instance_id)

        with class_lock(class_instance_id):
            decision = self.run_with_retry(
                "staff_book",
                lambda: self._admit(
                    studio_id,
                    class_instance_id,
                    member_id,
                    now,
                    consume_credit=False,
                    actor_id=actor_id,
                ),
            )

        outcome = BookingOutcome.from_decision(decision)
        self.log_operation(
            "staff_book",
            studio_id=studio_id,
            class_instance_id=class_instance_id,
            member_id=member_id,
            actor_id=actor_id,
            status=outcome.status,
        )
        return outcome

    @BaseService.measure_operation("confirm_booking")
    def confirm(
        self, booking_id: str, actor_id: str, now: Optional[datetime] = None
    ) -> Booking:
        """Mark a booked seat as confirmed. Confirming twice is a no-op."""
        now = now or utc_now()
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        if booking.user_id != actor_id:
            raise ForbiddenException("You can only confirm your own bookings")
        if booking.status == BookingStatus.CONFIRMED.value:
            return booking
        if booking.status != BookingStatus.BOOKED.value:
            raise ValidationException(
                f"Cannot confirm a {booking.status} booking", code="INVALID_BOOKING_STATUS"
            )

        with self.transaction():
            if not self.booking_repository.transition(
                booking.id,
                [BookingStatus.BOOKED.value],
                status=BookingStatus.CONFIRMED.value,
                confirmed_at=now,
            ):
                raise ValidationException(
                    "Booking changed before it could be confirmed",
                    code="INVALID_BOOKING_STATUS",
                )
        self.booking_repository.refresh(booking)
        self.log_operation("confirm_booking", booking_id=booking_id)
        return booking

    # ------------------------------------------------------------------- reads
    def roster(self, studio_id: str, class_instance_id: str, actor_id: str) -> Roster:
        if not self.studio_repository.is_staff(studio_id, actor_id):
            raise ForbiddenException("Only studio staff can view the class roster")
        class_instance = self._get_class(studio_id, class_instance_id)

        roster = Roster(
            class_instance=class_instance,
            occupancy=self.admission_service.occupancy(class_instance),
        )
        for booking in self.booking_repository.list_for_class(class_instance.id):
            if booking.holds_seat:
                roster.booked.append(booking)
            elif booking.is_cancelled:
                roster.cancelled.append(booking)
        roster.waitlist = [
            WaitlistEntry(booking=entry, position=index)
            for index, entry in enumerate(
                self.booking_repository.list_waitlist(class_instance.id), start=1
            )
        ]
        return roster

    def waitlist_position(
        self, studio_id: str, class_instance_id: str, member_id: str
    ) -> Optional[int]:
        self._get_class(studio_id, class_instance_id)
        return self.waitlist_service.position_of(class_instance_id, member_id)
