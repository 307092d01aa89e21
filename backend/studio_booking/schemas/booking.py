# backend/studio_booking/schemas/booking.py
"""
Booking schemas.

Response field names follow the stable camelCase booking shape consumed by
billing and notifications (creditSource, waitlistPosition, bookedAt, ...).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..models.booking import Booking
from .base import StandardizedModel, StrictRequestModel


class BookingResponse(StandardizedModel):
    id: str
    user_id: str
    class_instance_id: str
    status: str
    credit_source: Optional[str] = None
    credit_source_id: Optional[str] = None
    waitlist_position: Optional[int] = None
    booked_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_booking(
        cls, booking: Booking, waitlist_position: Optional[int] = None
    ) -> "BookingResponse":
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            class_instance_id=booking.class_instance_id,
            status=booking.status,
            credit_source=booking.credit_source,
            credit_source_id=booking.credit_source_id,
            waitlist_position=(
                waitlist_position if waitlist_position is not None else booking.waitlist_position
            ),
            booked_at=booking.booked_at,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at,
        )


class BookClassResponse(StandardizedModel):
    """Outcome of a booking attempt: a seat, or a place on the waitlist."""

    status: str
    booking_id: str
    credit_source: Optional[str] = None
    remaining_credits: Optional[int] = None
    waitlist_position: Optional[int] = None


class StaffBookRequest(StrictRequestModel):
    member_id: str = Field(..., min_length=1, description="Member to seat")


class CancelBookingResponse(StandardizedModel):
    booking_id: str
    status: str
    credit_refunded: bool
    within_cancellation_window: bool


class WaitlistPositionResponse(StandardizedModel):
    class_instance_id: str
    position: int


class RosterResponse(StandardizedModel):
    class_instance_id: str
    capacity: int
    booked_count: int
    spots_left: int
    waitlist_length: int
    booked: List[BookingResponse] = Field(default_factory=list)
    waitlist: List[BookingResponse] = Field(default_factory=list)
    cancelled: List[BookingResponse] = Field(default_factory=list)
