"""
Pure booking rules: window validation, overlap test and lifecycle guards.

Nothing here touches the database, so the state machine can be checked
directly with plain Booking instances and explicit timestamps.

State machine:
    active ──check-in──> checked-in ──check-out──> completed
    active ──cancel────> cancelled
    no-show is reserved; no transition sets it.
"""

from datetime import datetime, timedelta
from typing import Optional

from attendease.core.clock import ensure_utc
from attendease.core.config import get_settings
from attendease.core.exceptions import InvalidBookingWindow
from attendease.models.booking import (
    Booking,
    STATUS_ACTIVE,
    STATUS_CHECKED_IN,
)

settings = get_settings()


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """
    Half-open interval test on [start, end).
    Touching windows (end_a == start_b) do not overlap, so back-to-back
    bookings of one seat are allowed.
    """
    return start_a < end_b and end_a > start_b


def validate_window(start_time: datetime, end_time: datetime, now: datetime) -> tuple[datetime, datetime]:
    """Normalise a requested window to UTC and enforce the booking limits."""
    start_time = ensure_utc(start_time)
    end_time = ensure_utc(end_time)

    if start_time <= now:
        raise InvalidBookingWindow("Start time must be in the future")
    if end_time <= start_time:
        raise InvalidBookingWindow("End time must be after start time")

    duration = end_time - start_time
    if duration > timedelta(minutes=settings.BOOKING_MAX_MINUTES):
        raise InvalidBookingWindow(
            f"Booking duration cannot exceed {settings.BOOKING_MAX_MINUTES // 60} hours"
        )
    if duration < timedelta(minutes=settings.BOOKING_MIN_MINUTES):
        raise InvalidBookingWindow(
            f"Booking duration must be at least {settings.BOOKING_MIN_MINUTES} minutes"
        )
    return start_time, end_time


def check_in_opens_at(booking: Booking) -> datetime:
    return booking.start_time - timedelta(minutes=settings.CHECK_IN_LEAD_MINUTES)


def can_check_in(booking: Booking, now: datetime) -> bool:
    return (
        booking.status == STATUS_ACTIVE
        and booking.check_in_time is None
        and check_in_opens_at(booking) <= now <= booking.end_time
    )


def can_check_out(booking: Booking) -> bool:
    return (
        booking.status == STATUS_CHECKED_IN
        and booking.check_in_time is not None
        and booking.check_out_time is None
    )


def can_cancel(booking: Booking, now: datetime) -> bool:
    return booking.status == STATUS_ACTIVE and booking.start_time > now


def cancel_refusal_reason(booking: Booking, now: datetime) -> Optional[str]:
    if booking.status != STATUS_ACTIVE:
        return f"Cannot cancel booking with status: {booking.status}"
    if booking.start_time <= now:
        return "Cannot cancel booking that has already started"
    return None


def actual_duration_minutes(check_in_time: datetime, check_out_time: datetime) -> int:
    """Whole minutes between check-in and check-out, never negative."""
    minutes = round((check_out_time - check_in_time).total_seconds() / 60)
    return max(0, minutes)


def check_in_details(booking: Booking) -> dict:
    return {
        "status": booking.status,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "already_checked_in": booking.check_in_time is not None,
    }


def check_out_details(booking: Booking) -> dict:
    return {
        "status": booking.status,
        "checked_in": booking.check_in_time is not None,
        "already_checked_out": booking.check_out_time is not None,
    }
