# backend/studio_booking/core/exceptions.py
"""
Domain-specific exceptions for the studio booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying message, code and details."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails (BadRequest)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ForbiddenException(DomainException):
    """Raised when the actor lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class ClassNotAvailableException(ValidationException):
    """Raised when a class is not open for booking (not scheduled or already started)."""

    def __init__(self, class_instance_id: str, reason: str):
        super().__init__(
            message="Class is not available for booking",
            code="CLASS_NOT_AVAILABLE",
            details={"class_instance_id": class_instance_id, "reason": reason},
        )


class BookingConflictException(ConflictException):
    """Raised when a member already holds an active booking or waitlist entry."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "You already have a booking for this class",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class NoCreditsException(ValidationException):
    """Raised when no entitlement can pay for a seat."""

    def __init__(self, member_id: str, studio_id: str):
        super().__init__(
            message="No class credits available. Purchase a class pack or membership to book.",
            code="NO_CREDITS",
            details={"member_id": member_id, "studio_id": studio_id},
        )


class AlreadyCancelledException(ValidationException):
    """Raised on a second cancellation of the same booking."""

    def __init__(self, booking_id: str):
        super().__init__(
            message="Booking is already cancelled",
            code="ALREADY_CANCELLED",
            details={"booking_id": booking_id},
        )


class CouponInvalidException(ValidationException):
    """Raised when a coupon fails validation at redemption time."""

    def __init__(self, reason: str, *, code: str = "COUPON_INVALID"):
        super().__init__(message=reason, code=code, details={"reason": reason})


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class StaleCreditError(RepositoryException):
    """
    A conditional ledger update matched no rows.

    Raised when the entitlement changed between resolution and deduction;
    callers retry with a fresh read.
    """
