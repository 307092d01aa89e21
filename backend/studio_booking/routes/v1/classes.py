# backend/studio_booking/routes/v1/classes.py
"""
Class booking routes - API v1

Mounted under /api/v1/studios. All business logic delegated to
BookingService and CancellationService.

Endpoints:
    POST /{studio_id}/classes/{class_id}/book - Member books (or joins the waitlist)
    POST /{studio_id}/classes/{class_id}/bookings - Staff book on behalf of a member
    GET /{studio_id}/classes/{class_id}/bookings - Staff roster view
    GET /{studio_id}/classes/{class_id}/waitlist/me - Caller's waitlist position
    DELETE /{studio_id}/classes/{class_id}/bookings/{booking_id} - Staff cancel with refund
"""

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from fastapi.params import Path

from ...api.dependencies import (
    get_booking_service,
    get_cancellation_service,
    get_current_user_id,
)
from ...core.exceptions import DomainException, NotFoundException
from ...schemas.booking import (
    BookClassResponse,
    BookingResponse,
    CancelBookingResponse,
    RosterResponse,
    StaffBookRequest,
    WaitlistPositionResponse,
)
from ...services.booking_service import BookingOutcome, BookingService
from ...services.cancellation_service import CancellationService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["classes-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _outcome_response(outcome: BookingOutcome, response: Response) -> BookClassResponse:
    if outcome.status == "waitlisted":
        response.status_code = status.HTTP_202_ACCEPTED
    return BookClassResponse(
        status=outcome.status,
        booking_id=outcome.booking.id,
        credit_source=outcome.credit_source,
        remaining_credits=outcome.remaining_credits,
        waitlist_position=outcome.waitlist_position,
    )


@router.post(
    "/{studio_id}/classes/{class_id}/book",
    response_model=BookClassResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses={
        202: {"description": "Class full; member added to the waitlist"},
        400: {"description": "Class not bookable or no credits available"},
        403: {"description": "Not an active member of the studio"},
        404: {"description": "Class not found"},
        409: {"description": "Already booked or waitlisted"},
    },
)
async def book_class(
    response: Response,
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    class_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookClassResponse:
    """
    Book a class using the member's best available credit.

    Returns 201 with the credit used, or 202 with a waitlist position when
    the class is full.
    """
    try:
        outcome = await asyncio.to_thread(
            booking_service.book, studio_id, class_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _outcome_response(outcome, response)


@router.post(
    "/{studio_id}/classes/{class_id}/bookings",
    response_model=BookClassResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def staff_book_class(
    response: Response,
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    class_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: StaffBookRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookClassResponse:
    """Staff seat a member without consuming a credit."""
    try:
        outcome = await asyncio.to_thread(
            booking_service.staff_book,
            studio_id,
            class_id,
            payload.member_id,
            current_user_id,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _outcome_response(outcome, response)


@router.get(
    "/{studio_id}/classes/{class_id}/bookings",
    response_model=RosterResponse,
)
async def get_class_roster(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    class_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> RosterResponse:
    """Booked, waitlisted (with live positions) and cancelled bookings for a class."""
    try:
        roster = await asyncio.to_thread(
            booking_service.roster, studio_id, class_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)

    occupancy = roster.occupancy
    return RosterResponse(
        class_instance_id=roster.class_instance.id,
        capacity=occupancy.capacity,
        booked_count=occupancy.booked_count,
        spots_left=occupancy.spots_left,
        waitlist_length=occupancy.waitlist_length,
        booked=[BookingResponse.from_booking(b) for b in roster.booked],
        waitlist=[
            BookingResponse.from_booking(entry.booking, waitlist_position=entry.position)
            for entry in roster.waitlist
        ],
        cancelled=[BookingResponse.from_booking(b) for b in roster.cancelled],
    )


@router.get(
    "/{studio_id}/classes/{class_id}/waitlist/me",
    response_model=WaitlistPositionResponse,
)
async def get_my_waitlist_position(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    class_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> WaitlistPositionResponse:
    try:
        position = await asyncio.to_thread(
            booking_service.waitlist_position, studio_id, class_id, current_user_id
        )
        if position is None:
            raise NotFoundException(
                "You are not on the waitlist for this class", code="NOT_WAITLISTED"
            )
    except DomainException as e:
        handle_domain_exception(e)
    return WaitlistPositionResponse(class_instance_id=class_id, position=position)


@router.delete(
    "/{studio_id}/classes/{class_id}/bookings/{booking_id}",
    response_model=CancelBookingResponse,
)
async def staff_cancel_booking(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    class_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    cancellation_service: CancellationService = Depends(get_cancellation_service),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancelBookingResponse:
    """Staff cancel a member's booking; the credit is always refunded."""
    try:
        booking = await asyncio.to_thread(booking_service.booking_repository.get_by_id, booking_id)
        if (
            booking is None
            or booking.studio_id != studio_id
            or booking.class_instance_id != class_id
        ):
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        result = await asyncio.to_thread(
            lambda: cancellation_service.cancel(booking_id, current_user_id, force_refund=True)
        )
    except DomainException as e:
        handle_domain_exception(e)

    return CancelBookingResponse(
        booking_id=result.booking.id,
        status=result.booking.status,
        credit_refunded=result.refunded,
        within_cancellation_window=result.within_window,
    )
