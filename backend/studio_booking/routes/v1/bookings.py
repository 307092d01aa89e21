# backend/studio_booking/routes/v1/bookings.py
"""
Member booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.

Endpoints:
    DELETE /{booking_id} - Cancel a booking (refund only inside the window)
    POST /{booking_id}/confirm - Confirm a booked seat
"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.params import Path

from ...api.dependencies import (
    get_booking_service,
    get_cancellation_service,
    get_current_user_id,
)
from ...core.exceptions import DomainException
from ...schemas.booking import BookingResponse, CancelBookingResponse
from ...services.booking_service import BookingService
from ...services.cancellation_service import CancellationService
from .classes import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])


@router.delete(
    "/{booking_id}",
    response_model=CancelBookingResponse,
    responses={
        400: {"description": "Booking already cancelled"},
        403: {"description": "Not the booking owner or studio staff"},
        404: {"description": "Booking not found"},
    },
)
async def cancel_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    cancellation_service: CancellationService = Depends(get_cancellation_service),
) -> CancelBookingResponse:
    """
    Cancel a booking or leave a waitlist.

    The credit is refunded only when cancelling at or before the studio's
    cancellation deadline. A freed seat goes to the next eligible member on
    the waitlist.
    """
    try:
        result = await asyncio.to_thread(
            cancellation_service.cancel, booking_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)

    return CancelBookingResponse(
        booking_id=result.booking.id,
        status=result.booking.status,
        credit_refunded=result.refunded,
        within_cancellation_window=result.within_window,
    )


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.confirm, booking_id, current_user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.from_booking(booking)
