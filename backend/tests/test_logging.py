"""
Tests for log redaction and the booking context bound around lifecycle events.
"""

import pytest
import structlog

from attendease.core.exceptions import CheckOutNotAllowed
from attendease.core.logging import booking_context, redact_secrets
from attendease.services import booking_service
from conftest import at, insert_booking


class RecordingLogger:
    """Stands in for a module logger and keeps each event with the context bound at call time."""

    def __init__(self):
        self.events = []

    def _record(self, event, **kwargs):
        self.events.append((event, {**structlog.contextvars.get_contextvars(), **kwargs}))

    debug = info = warning = error = _record

    def named(self, event):
        return [fields for name, fields in self.events if name == event]


@pytest.fixture
def recorded(monkeypatch):
    structlog.contextvars.clear_contextvars()
    recorder = RecordingLogger()
    monkeypatch.setattr(booking_service, "logger", recorder)
    yield recorder
    structlog.contextvars.clear_contextvars()


def test_booking_context_binds_only_given_ids():
    structlog.contextvars.clear_contextvars()

    with booking_context(booking_id=7, seat_id=3):
        assert structlog.contextvars.get_contextvars() == {"booking_id": 7, "seat_id": 3}

    assert structlog.contextvars.get_contextvars() == {}


def test_booking_context_keeps_request_context():
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id="abc123")

    with booking_context(user_id=5):
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc123", "user_id": 5}

    assert structlog.contextvars.get_contextvars() == {"request_id": "abc123"}
    structlog.contextvars.clear_contextvars()


def test_secrets_are_redacted():
    event = redact_secrets(None, "info", {"event": "qr_issued", "qr_data": "{...}", "password": "hunter2", "seat_id": 1})
    assert event == {"event": "qr_issued", "qr_data": "***", "password": "***", "seat_id": 1}


@pytest.mark.asyncio
async def test_check_in_events_carry_booking_ids(db_session, student, seat, recorded):
    booking = await insert_booking(db_session, student.id, seat.id, at(9), at(11))
    ids = {"booking_id": booking.id, "seat_id": seat.id, "user_id": student.id}

    await booking_service.check_in(db_session, booking.id, student.id, now=at(8, 45))

    [checked_in] = recorded.named("booking_checked_in")
    assert ids.items() <= checked_in.items()
    [synced] = recorded.named("occupancy_synced")
    assert synced["booking_id"] == booking.id
    # Nothing leaks once the operation returns
    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.asyncio
async def test_refused_check_out_is_logged_with_booking_ids(db_session, student, seat, recorded):
    booking = await insert_booking(db_session, student.id, seat.id, at(9), at(11))

    with pytest.raises(CheckOutNotAllowed):
        await booking_service.check_out(db_session, booking.id, student.id, now=at(10))

    [refused] = recorded.named("check_out_refused")
    assert refused["booking_id"] == booking.id
    assert refused["status"] == "active"
