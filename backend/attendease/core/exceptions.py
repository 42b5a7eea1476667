"""
Domain error taxonomy.

Services raise these instead of HTTPException so lifecycle rules can be
exercised without a request context. Each error carries the HTTP status the
API layer should answer with, plus optional structured details for callers.
"""

from typing import Any, Optional


class DomainError(Exception):
    status_code: int = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


# 401
class AuthenticationError(DomainError):
    status_code = 401


# 403
class ForbiddenError(DomainError):
    status_code = 403


# 404
class NotFoundError(DomainError):
    status_code = 404


class SeatNotFound(NotFoundError):
    def __init__(self, seat_id: int):
        super().__init__(f"Seat {seat_id} not found")


class BookingNotFound(NotFoundError):
    def __init__(self, booking_id: int):
        super().__init__(f"Booking {booking_id} not found")


class UserNotFound(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")


# 409 / business-rule conflicts
class ConflictError(DomainError):
    status_code = 409


class SeatConflict(ConflictError):
    pass


class DuplicateSeat(ConflictError):
    pass


class DuplicateUser(ConflictError):
    pass


class UserAlreadyBooked(ConflictError):
    # Reported as a bad request, matching the public API contract
    status_code = 400


# Lifecycle guard failures
class InvalidStateError(DomainError):
    status_code = 400


class SeatInactive(InvalidStateError):
    pass


class HasActiveBookings(InvalidStateError):
    pass


class CheckInNotAllowed(InvalidStateError):
    pass


class CheckOutNotAllowed(InvalidStateError):
    pass


class CannotCancel(InvalidStateError):
    pass


class InvalidBookingState(InvalidStateError):
    pass


# Malformed input
class MalformedError(DomainError):
    status_code = 400


class InvalidBookingWindow(MalformedError):
    pass


class MalformedToken(MalformedError):
    pass


class WrongTokenType(MalformedError):
    pass


# Infrastructure
class UnavailableError(DomainError):
    status_code = 503
