# backend/mentorline/core/exceptions.py
"""
Domain-specific exceptions for the Mentorline scheduling core.

Every scheduling failure is an expected, typed outcome. Services raise these
and the API layer converts them with ``to_http_exception()``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


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


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# Availability setup errors


class InvalidRangeException(ValidationException):
    """Raised when a time or date range is empty or inverted."""

    def __init__(self, message: str = "Start must be before end", **details: Any):
        super().__init__(message=message, code="INVALID_RANGE", details=details)


class AvailabilityOverlapException(ConflictException):
    """Raised when an availability slot overlaps with an existing slot."""

    def __init__(self, day_of_week: int, new_range: str, conflicting_range: str):
        super().__init__(
            message=(
                f"Overlapping slot on day {day_of_week}: {new_range} conflicts with "
                f"{conflicting_range}"
            ),
            code="AVAILABILITY_OVERLAP",
            details={
                "day_of_week": day_of_week,
                "new_slot": new_range,
                "conflicting_slot": conflicting_range,
            },
        )


class OutOfWindowException(ValidationException):
    """Raised when a blocked date falls outside the allowed future window."""

    def __init__(self, requested: str, earliest: str, latest: str):
        super().__init__(
            message=f"Blocked dates must fall between {earliest} and {latest}",
            code="OUT_OF_WINDOW",
            details={"date": requested, "earliest": earliest, "latest": latest},
        )


class AlreadyBlockedException(ConflictException):
    """Raised when a date is already blocked for the mentor."""

    def __init__(self, requested: str):
        super().__init__(
            message="This date is already blocked",
            code="ALREADY_BLOCKED",
            details={"date": requested},
        )


# Booking race / staleness errors


class SlotUnavailableException(ConflictException):
    """Raised when the requested start is not an offered slot."""

    def __init__(
        self,
        message: str = "The requested time is not available",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="SLOT_UNAVAILABLE", details=details)


class SlotTakenException(ConflictException):
    """Raised when another booking claimed the window first."""

    def __init__(
        self,
        message: str = "This time slot was just booked by someone else",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="SLOT_TAKEN", details=details)


class InvalidStateException(BusinessRuleException):
    """Raised for a transition from a terminal or incompatible state."""

    def __init__(self, entity: str, current: str, action: str):
        super().__init__(
            message=f"Cannot {action} a {entity} that is {current}",
            code="INVALID_STATE",
            details={"entity": entity, "current_status": current, "action": action},
        )


# Group session errors


class SessionFullException(ConflictException):
    """Raised when a group session has no free seat."""

    def __init__(self, session_id: str, *, open_sessions: Optional[list[str]] = None):
        super().__init__(
            message="This session is full",
            code="SESSION_FULL",
            details={"session_id": session_id, "open_sessions": open_sessions or []},
        )


class AlreadyJoinedException(ConflictException):
    """Raised when a consumer already holds a seat."""

    def __init__(self, session_id: str, consumer_id: str):
        super().__init__(
            message="You have already joined this session",
            code="ALREADY_JOINED",
            details={"session_id": session_id, "consumer_id": consumer_id},
        )


class HasParticipantsException(BusinessRuleException):
    """Raised when editing date or duration of a session with participants."""

    def __init__(self, session_id: str, participant_count: int):
        super().__init__(
            message="Cannot change date or duration when participants are signed up",
            code="HAS_PARTICIPANTS",
            details={"session_id": session_id, "participant_count": participant_count},
        )


class LeadTimeTooShortException(BusinessRuleException):
    """Raised when a session is scheduled closer than the minimum lead time."""

    def __init__(self, required_hours: int, provided_hours: float):
        super().__init__(
            message=f"Sessions must be scheduled at least {required_hours} hours in advance",
            code="LEAD_TIME_TOO_SHORT",
            details={
                "required_hours": required_hours,
                "provided_hours": round(provided_hours, 2),
            },
        )


class InvalidCapacityException(ValidationException):
    """Raised when capacity or quorum settings are out of bounds."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message=message, code="INVALID_CAPACITY", details=details)


class SchedulingBusyException(ConflictException):
    """Raised when the per-key scheduling lock could not be acquired in time."""

    def __init__(self, key: str):
        super().__init__(
            message="Another change is in progress, please retry",
            code="SCHEDULING_BUSY",
            details={"lock_key": key},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
