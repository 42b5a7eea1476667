"""
Tests for the pure booking rules: window validation, overlap and lifecycle guards.
No database needed.
"""

from datetime import datetime, timedelta, timezone

import pytest

from attendease.core.exceptions import InvalidBookingWindow
from attendease.models.booking import Booking
from attendease.services import booking_rules
from conftest import NOW, at


def _booking(status="active", start=None, end=None, check_in=None, check_out=None) -> Booking:
    return Booking(
        user_id=1,
        seat_id=1,
        status=status,
        start_time=start or at(10),
        end_time=end or at(12),
        check_in_time=check_in,
        check_out_time=check_out,
    )


class TestWindowsOverlap:
    def test_overlapping_windows(self):
        assert booking_rules.windows_overlap(at(10), at(11), at(10, 30), at(11, 30))

    def test_contained_window(self):
        assert booking_rules.windows_overlap(at(10), at(12), at(10, 30), at(11))

    def test_back_to_back_windows_do_not_overlap(self):
        assert not booking_rules.windows_overlap(at(10), at(11), at(11), at(12))
        assert not booking_rules.windows_overlap(at(11), at(12), at(10), at(11))

    def test_disjoint_windows(self):
        assert not booking_rules.windows_overlap(at(9), at(10), at(14), at(15))


class TestValidateWindow:
    def test_valid_window_passes(self):
        start, end = booking_rules.validate_window(at(10), at(11), NOW)
        assert (start, end) == (at(10), at(11))

    def test_naive_datetimes_are_treated_as_utc(self):
        start, end = booking_rules.validate_window(
            at(10).replace(tzinfo=None), at(11).replace(tzinfo=None), NOW
        )
        assert start.tzinfo is not None
        assert start == at(10)

    def test_other_offsets_are_converted(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        start, _ = booking_rules.validate_window(at(10).astimezone(ist), at(11).astimezone(ist), NOW)
        assert start.utcoffset() == timedelta(0)
        assert start == at(10)

    def test_start_in_past_rejected(self):
        with pytest.raises(InvalidBookingWindow, match="future"):
            booking_rules.validate_window(at(7), at(9), NOW)

    def test_start_equal_to_now_rejected(self):
        with pytest.raises(InvalidBookingWindow):
            booking_rules.validate_window(NOW, NOW + timedelta(hours=1), NOW)

    def test_end_before_start_rejected(self):
        with pytest.raises(InvalidBookingWindow, match="after start"):
            booking_rules.validate_window(at(11), at(10), NOW)

    def test_too_short_rejected(self):
        with pytest.raises(InvalidBookingWindow, match="at least 30 minutes"):
            booking_rules.validate_window(at(10), at(10, 29), NOW)

    def test_too_long_rejected(self):
        with pytest.raises(InvalidBookingWindow, match="8 hours"):
            booking_rules.validate_window(at(9), at(17, 1), NOW)

    def test_boundary_durations_accepted(self):
        booking_rules.validate_window(at(10), at(10, 30), NOW)
        booking_rules.validate_window(at(9), at(17), NOW)


class TestCheckInGuard:
    def test_window_opens_thirty_minutes_early(self):
        booking = _booking(start=at(9), end=at(11))
        assert booking_rules.check_in_opens_at(booking) == at(8, 30)

    def test_too_early(self):
        booking = _booking(start=at(9), end=at(11))
        assert not booking_rules.can_check_in(booking, at(8, 25))

    def test_inside_lead_window(self):
        booking = _booking(start=at(9), end=at(11))
        assert booking_rules.can_check_in(booking, at(8, 35))
        assert booking_rules.can_check_in(booking, at(8, 30))

    def test_until_end_of_window(self):
        booking = _booking(start=at(9), end=at(11))
        assert booking_rules.can_check_in(booking, at(11))
        assert not booking_rules.can_check_in(booking, at(11, 1))

    def test_only_active_bookings(self):
        for status in ("checked-in", "completed", "cancelled", "no-show"):
            assert not booking_rules.can_check_in(_booking(status=status, start=at(9)), at(9))

    def test_not_twice(self):
        booking = _booking(start=at(9), check_in=at(8, 40))
        assert not booking_rules.can_check_in(booking, at(9))
        assert booking_rules.check_in_details(booking)["already_checked_in"] is True


class TestCheckOutGuard:
    def test_checked_in_booking(self):
        assert booking_rules.can_check_out(_booking(status="checked-in", check_in=at(9)))

    def test_active_booking(self):
        booking = _booking(status="active")
        assert not booking_rules.can_check_out(booking)
        assert booking_rules.check_out_details(booking) == {
            "status": "active",
            "checked_in": False,
            "already_checked_out": False,
        }

    def test_already_checked_out(self):
        booking = _booking(status="completed", check_in=at(9), check_out=at(10))
        assert not booking_rules.can_check_out(booking)


class TestCancelGuard:
    def test_future_active_booking(self):
        booking = _booking(start=at(10))
        assert booking_rules.can_cancel(booking, NOW)
        assert booking_rules.cancel_refusal_reason(booking, NOW) is None

    def test_started_booking(self):
        booking = _booking(start=NOW - timedelta(minutes=1), end=at(10))
        assert not booking_rules.can_cancel(booking, NOW)
        assert booking_rules.cancel_refusal_reason(booking, NOW) == (
            "Cannot cancel booking that has already started"
        )

    def test_non_active_booking(self):
        booking = _booking(status="checked-in", check_in=at(9, 45))
        assert booking_rules.cancel_refusal_reason(booking, NOW) == (
            "Cannot cancel booking with status: checked-in"
        )


class TestActualDuration:
    def test_ninety_minutes(self):
        assert booking_rules.actual_duration_minutes(at(8, 35), at(10, 5)) == 90

    def test_rounds_to_nearest_minute(self):
        assert booking_rules.actual_duration_minutes(at(9), at(9, 1) + timedelta(seconds=31)) == 2

    def test_never_negative(self):
        assert booking_rules.actual_duration_minutes(at(10), at(9)) == 0

    def test_accepts_plain_utc_datetimes(self):
        start = datetime(2030, 1, 7, 9, tzinfo=timezone.utc)
        assert booking_rules.actual_duration_minutes(start, start + timedelta(hours=2)) == 120
