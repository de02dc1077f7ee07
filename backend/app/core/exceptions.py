# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the ThoughtCloud platform.

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
        """Convert to an HTTPException carrying the error envelope."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ForbiddenException(DomainException):
    """Raised when the caller is not allowed to act on a resource."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


class ExternalServiceException(ServiceException):
    """
    Raised when the payment processor (or another remote dependency) fails.

    ``processor_code`` keeps the processor's own error code (e.g. Stripe's
    ``card_declined``) so callers can surface it verbatim.
    """

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        processor_code: Optional[str] = None,
        http_status: Optional[int] = None,
    ) -> None:
        merged = dict(details or {})
        if processor_code:
            merged.setdefault("processor_code", processor_code)
        if http_status is not None:
            merged.setdefault("processor_http_status", http_status)
        super().__init__(message, code or "EXTERNAL_SERVICE_ERROR", merged)
        self.processor_code = processor_code
        self.http_status = http_status


# Specific business exceptions


class InvalidRangeException(ValidationException):
    """Raised when a slot's end time is not after its start time."""

    def __init__(self, start: str, end: str):
        super().__init__(
            message=f"End time {end} must be after start time {start}",
            code="INVALID_RANGE",
            details={"start_time": start, "end_time": end},
        )


class PastDateException(ValidationException):
    """Raised when a slot or booking targets a date in the past."""

    def __init__(self, specific_date: str):
        super().__init__(
            message=f"Date {specific_date} is in the past",
            code="PAST_DATE",
            details={"date": specific_date},
        )


class AvailabilityOverlapException(ConflictException):
    """Raised when an availability slot overlaps with an existing slot."""

    def __init__(
        self,
        specific_date: str,
        new_range: str,
        conflicting_range: str,
    ):
        super().__init__(
            message=(
                f"Overlapping slot on {specific_date}: {new_range} conflicts with {conflicting_range}"
            ),
            code="AVAILABILITY_OVERLAP",
            details={
                "date": specific_date,
                "new_slot": new_range,
                "conflicting_slot": conflicting_range,
            },
        )


class SlotUnavailableException(ConflictException):
    """Raised when a slot is already reserved by another session."""

    def __init__(self, slot_id: str):
        super().__init__(
            message="slot unavailable",
            code="SLOT_UNAVAILABLE",
            details={"slot_id": slot_id},
        )


class SlotBookedException(ConflictException):
    """Raised when deleting a slot that a session still holds."""

    def __init__(self, slot_id: str):
        super().__init__(
            message="Cannot delete a booked slot",
            code="SLOT_BOOKED",
            details={"slot_id": slot_id},
        )


class DuplicatePaymentException(ConflictException):
    """Raised when a session already has an active payment record."""

    def __init__(self, session_id: str):
        super().__init__(
            message="An active payment already exists for this session",
            code="DUPLICATE_PAYMENT",
            details={"session_id": session_id},
        )


class InsufficientBalanceException(ValidationException):
    """Raised when a payout exceeds the mentor's available balance."""

    def __init__(self, requested: int, available: int, currency: str):
        super().__init__(
            message="Insufficient balance",
            code="INSUFFICIENT_BALANCE",
            details={"requested": requested, "available": available, "currency": currency},
        )


class AuthorizationError(ForbiddenException):
    """Raised when the caller is not a party allowed to perform the action."""

    def __init__(self, message: str = "Not authorized for this session", **details: Any):
        super().__init__(message=message, code="NOT_AUTHORIZED", details=details)


class InvalidTransitionException(ConflictException):
    """Raised when a state change is not permitted from the current state."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move {entity} from {current} to {target}",
            code="INVALID_TRANSITION",
            details={"entity": entity, "current": current, "target": target},
        )


class AlreadyFinalizedException(ConflictException):
    """Raised when a terminal session is transitioned again."""

    def __init__(self, session_id: str, message: Optional[str] = None):
        super().__init__(
            message=message or "Session is already finalized",
            code="ALREADY_FINALIZED",
            details={"session_id": session_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
