# backend/studio_booking/services/admission_service.py
"""
Capacity Admission Gate.

Decides whether a member gets a seat or a waitlist entry. The seat claim is a
single conditional UPDATE on the class row; credit deduction and the booking
insert follow in the same transaction, so any failure after the claim rolls
the seat back with everything else. Nothing here commits.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    BookingConflictException,
    ClassNotAvailableException,
    NoCreditsException,
)
from ..core.timezone_utils import ensure_aware, utc_now
from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassInstance, ClassStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.class_instance_repository import ClassInstanceRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .credit_service import CreditService
from .credits import ResolvedCredit
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


class AdmissionOutcome(str, Enum):
    BOOKED = "booked"
    WAITLISTED = "waitlisted"


@dataclass
class AdmissionDecision:
    outcome: AdmissionOutcome
    booking: Booking
    credit: Optional[ResolvedCredit] = None
    waitlist_position: Optional[int] = None


@dataclass
class Occupancy:
    class_instance_id: str
    capacity: int
    booked_count: int
    spots_left: int
    waitlist_length: int


class AdmissionService(BaseService):
    def __init__(
        self,
        db: Session,
        credit_service: Optional[CreditService] = None,
        waitlist_service: Optional[WaitlistService] = None,
        booking_repository: Optional[BookingRepository] = None,
        class_instance_repository: Optional[ClassInstanceRepository] = None,
    ):
        super().__init__(db)
        self.credit_service = credit_service or CreditService(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.class_instance_repository = (
            class_instance_repository or RepositoryFactory.create_class_instance_repository(db)
        )
        self.waitlist_service = waitlist_service or WaitlistService(
            db,
            credit_service=self.credit_service,
            booking_repository=self.booking_repository,
            class_instance_repository=self.class_instance_repository,
        )

    @staticmethod
    def ensure_bookable(class_instance: ClassInstance, now: datetime) -> None:
        if class_instance.status != ClassStatus.SCHEDULED.value:
            raise ClassNotAvailableException(class_instance.id, reason=class_instance.status)
        if ensure_aware(now) >= class_instance.starts_at_utc():
            raise ClassNotAvailableException(class_instance.id, reason="started")

    def admit(
        self,
        class_instance: ClassInstance,
        member_id: str,
        now: Optional[datetime] = None,
        *,
        consume_credit: bool = True,
        actor_id: Optional[str] = None,
    ) -> AdmissionDecision:
        """
        Seat the member, or put them on the waitlist when the class is full.

        Raises:
            ClassNotAvailableException: class not scheduled or already started
            BookingConflictException: member already booked or waitlisted
            NoCreditsException: a seat was free but nothing can pay for it
        """
        now = now or utc_now()
        try:
            self.ensure_bookable(class_instance, now)

            existing = self.booking_repository.get_active_for_member(class_instance.id, member_id)
            if existing is not None:
                if existing.status == BookingStatus.WAITLISTED.value:
                    raise BookingConflictException(
                        "You are already on the waitlist for this class",
                        details={"booking_id": existing.id},
                    )
                raise BookingConflictException(details={"booking_id": existing.id})

            if not self.class_instance_repository.claim_seat(class_instance.id):
                booking, position = self.waitlist_service.enqueue(
                    class_instance, member_id, now, created_by_id=actor_id
                )
                prometheus_metrics.record_admission(AdmissionOutcome.WAITLISTED.value)
                return AdmissionDecision(
                    outcome=AdmissionOutcome.WAITLISTED,
                    booking=booking,
                    waitlist_position=position,
                )

            credit: Optional[ResolvedCredit] = None
            if consume_credit:
                credit = self.credit_service.resolve(member_id, class_instance.studio_id, now)
                if credit is None:
                    # The caller's rollback returns the claimed seat
                    raise NoCreditsException(member_id, class_instance.studio_id)
                self.credit_service.deduct(credit)

            booking = self.booking_repository.create(
                studio_id=class_instance.studio_id,
                class_instance_id=class_instance.id,
                user_id=member_id,
                status=BookingStatus.BOOKED.value,
                booked_at=now,
                credit_source=credit.source.value if credit else None,
                credit_source_id=credit.source_id if credit else None,
                credit_remaining_after=credit.remaining_after if credit else None,
                created_by_id=actor_id or member_id,
            )
        except (ClassNotAvailableException, BookingConflictException, NoCreditsException):
            prometheus_metrics.record_admission("rejected")
            raise

        prometheus_metrics.record_admission(AdmissionOutcome.BOOKED.value)
        self.logger.info(
            "Seat admitted",
            extra={
                "class_instance_id": class_instance.id,
                "member_id": member_id,
                "booking_id": booking.id,
                "credit_source": credit.source.value if credit else None,
            },
        )
        return AdmissionDecision(outcome=AdmissionOutcome.BOOKED, booking=booking, credit=credit)

    def release_seat(self, class_instance_id: str) -> bool:
        return self.class_instance_repository.release_seat(class_instance_id)

    def occupancy(self, class_instance: ClassInstance) -> Occupancy:
        booked = self.class_instance_repository.get_booked_count(class_instance.id)
        return Occupancy(
            class_instance_id=class_instance.id,
            capacity=class_instance.capacity,
            booked_count=booked,
            spots_left=max(class_instance.capacity - booked, 0),
            waitlist_length=self.booking_repository.count_waitlisted(class_instance.id),
        )
