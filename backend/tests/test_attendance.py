"""
Tests for QR issuance and the check-in/check-out lifecycle.
"""

import json

import pytest
from httpx import AsyncClient

from attendease.core.exceptions import CheckInNotAllowed, CheckOutNotAllowed, ForbiddenError, InvalidBookingState
from attendease.services import booking_service, seat_service
from attendease.services.qr_service import decode_token
from conftest import NOW, at, insert_booking


@pytest.mark.asyncio
async def test_check_in_opens_thirty_minutes_before_start(db_session, student, seat):
    booking = await insert_booking(db_session, student.id, seat.id, at(9), at(11))
    booking_id, student_id = booking.id, student.id

    with pytest.raises(CheckInNotAllowed) as exc_info:
        await booking_service.check_in(db_session, booking_id, student_id, now=at(8, 25))
    assert exc_info.value.details["already_checked_in"] is False

    checked_in = await booking_service.check_in(db_session, booking_id, student_id, now=at(8, 35))
    assert checked_in.status == "checked-in"
    assert checked_in.check_in_time == at(8, 35)


@pytest.mark.asyncio
async def test_check_out_records_duration_and_frees_seat(db_session, student, seat):
    seat_id, student_id = seat.id, student.id
    booking = await booking_service.create_booking(db_session, student_id, seat_id, at(9), at(11), now=NOW)
    await booking_service.check_in(db_session, booking.id, student_id, now=at(8, 35))
    assert (await seat_service.get_seat(db_session, seat_id)).is_occupied is True

    completed = await booking_service.check_out(
        db_session, booking.id, student_id, notes="Finished chapter 4", now=at(10, 5)
    )
    assert completed.status == "completed"
    assert completed.actual_duration == 90
    assert completed.check_out_time == at(10, 5)
    assert completed.attendance_notes == "Finished chapter 4"
    assert (await seat_service.get_seat(db_session, seat_id)).is_occupied is False


@pytest.mark.asyncio
async def test_second_check_out_fails(db_session, student, seat):
    booking = await insert_booking(
        db_session, student.id, seat.id, at(9), at(11), status="checked-in", check_in_time=at(8, 50)
    )
    booking_id, student_id = booking.id, student.id
    await booking_service.check_out(db_session, booking_id, student_id, now=at(10))

    with pytest.raises(CheckOutNotAllowed) as exc_info:
        await booking_service.check_out(db_session, booking_id, student_id, now=at(10, 30))
    assert exc_info.value.details["already_checked_out"] is True

    booking = await booking_service.get_booking(db_session, booking_id, student_id)
    assert booking.check_out_time == at(10)


@pytest.mark.asyncio
async def test_check_in_is_owner_only(db_session, student, other_student, seat):
    booking = await insert_booking(db_session, student.id, seat.id, at(9), at(11))

    with pytest.raises(ForbiddenError):
        await booking_service.check_in(db_session, booking.id, other_student.id, now=at(9))


@pytest.mark.asyncio
async def test_check_in_cancelled_booking(db_session, student, seat):
    booking = await insert_booking(db_session, student.id, seat.id, at(9), at(11), status="cancelled")

    with pytest.raises(CheckInNotAllowed):
        await booking_service.check_in(db_session, booking.id, student.id, now=at(9))


@pytest.mark.asyncio
async def test_issue_token_keeps_status(db_session, student, seat):
    booking = await insert_booking(db_session, student.id, seat.id, at(9), at(11))

    issued = await booking_service.issue_token(db_session, booking.id, student.id, now=NOW)
    assert issued.status == "active"
    assert decode_token(issued.qr_data) == booking.id
    assert issued.qr_code.startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_issue_token_for_completed_booking(db_session, student, seat):
    booking = await insert_booking(
        db_session, student.id, seat.id, at(9, days=-1), at(11, days=-1), status="completed",
        check_in_time=at(9, days=-1), check_out_time=at(10, days=-1), actual_duration=60,
    )

    with pytest.raises(InvalidBookingState, match="Cannot generate QR for completed booking"):
        await booking_service.issue_token(db_session, booking.id, student.id, now=NOW)


# --- HTTP ---------------------------------------------------------------------


async def _book(client: AsyncClient, headers: dict, seat_id: int, start, end) -> int:
    response = await client.post(
        "/api/v1/bookings/",
        json={"seat_id": seat_id, "start_time": start.isoformat(), "end_time": end.isoformat()},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


async def _qr(client: AsyncClient, headers: dict, booking_id: int) -> str:
    response = await client.post(f"/api/v1/attendance/qr/{booking_id}", headers=headers)
    assert response.status_code == 200
    return response.json()["qr_data"]


@pytest.mark.asyncio
async def test_full_attendance_flow(client: AsyncClient, auth_headers, clock, seat):
    booking_id = await _book(client, auth_headers, seat.id, at(9), at(11))

    response = await client.post(f"/api/v1/attendance/qr/{booking_id}", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["booking_id"] == booking_id
    assert data["qr_code"].startswith("data:image/png;base64,")
    assert data["booking"]["status"] == "active"
    qr_data = data["qr_data"]

    clock.set(at(8, 25))
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": qr_data}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Booking cannot be checked in at this time"

    clock.set(at(8, 35))
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": qr_data}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "checked-in"

    # Second scan is refused
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": qr_data}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["details"]["already_checked_in"] is True

    clock.set(at(10, 5))
    response = await client.post(
        "/api/v1/attendance/checkout",
        json={"qr_data": qr_data, "notes": "Good session"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["actual_duration"] == 90
    assert data["attendance_notes"] == "Good session"

    seat_response = await client.get(f"/api/v1/seats/{seat.id}")
    assert seat_response.json()["is_occupied"] is False

    response = await client.post("/api/v1/attendance/checkout", json={"qr_data": qr_data}, headers=auth_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_check_out_before_check_in(client: AsyncClient, auth_headers, seat):
    booking_id = await _book(client, auth_headers, seat.id, at(9), at(11))
    qr_data = await _qr(client, auth_headers, booking_id)

    response = await client.post("/api/v1/attendance/checkout", json={"qr_data": qr_data}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["details"]["checked_in"] is False


@pytest.mark.asyncio
async def test_scan_someone_elses_code(client: AsyncClient, auth_headers, other_headers, clock, seat):
    booking_id = await _book(client, auth_headers, seat.id, at(9), at(11))
    qr_data = await _qr(client, auth_headers, booking_id)

    clock.set(at(9))
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": qr_data}, headers=other_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_qr_for_someone_elses_booking(client: AsyncClient, auth_headers, other_headers, seat):
    booking_id = await _book(client, auth_headers, seat.id, at(9), at(11))

    response = await client.post(f"/api/v1/attendance/qr/{booking_id}", headers=other_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_qr_for_cancelled_booking(client: AsyncClient, auth_headers, seat):
    booking_id = await _book(client, auth_headers, seat.id, at(9), at(11))
    await client.patch(f"/api/v1/bookings/{booking_id}/cancel", headers=auth_headers)

    response = await client.post(f"/api/v1/attendance/qr/{booking_id}", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot generate QR for cancelled booking"


@pytest.mark.asyncio
async def test_check_in_with_wrong_token_type(client: AsyncClient, auth_headers, seat):
    token = json.dumps({"type": "library-card", "booking_id": 1})
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": token}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "QR code is not for a booking"


@pytest.mark.asyncio
async def test_check_in_with_garbage_token(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": "{{nope"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid QR code"


@pytest.mark.asyncio
async def test_check_in_unknown_booking(client: AsyncClient, auth_headers):
    token = json.dumps({"type": "booking", "booking_id": 424242})
    response = await client.post("/api/v1/attendance/checkin", json={"qr_data": token}, headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_attendance_history(client: AsyncClient, db_session, student, auth_headers, seat, second_seat):
    await insert_booking(
        db_session, student.id, seat.id, at(9, days=-2), at(11, days=-2), status="completed",
        check_in_time=at(9, days=-2), check_out_time=at(10, days=-2), actual_duration=60,
    )
    await insert_booking(
        db_session, student.id, second_seat.id, at(9, days=-1), at(12, days=-1), status="completed",
        check_in_time=at(9, days=-1), check_out_time=at(11, days=-1), actual_duration=120,
    )
    await insert_booking(db_session, student.id, seat.id, at(7, 30), at(9), status="checked-in", check_in_time=at(7, 30))
    # Never attended: excluded
    await insert_booking(db_session, student.id, seat.id, at(9, days=-3), at(10, days=-3), status="cancelled")

    response = await client.get("/api/v1/attendance/history", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["statistics"] == {
        "total_sessions": 3,
        "total_duration": 180,
        "avg_duration": 60.0,
        "completed_sessions": 2,
    }
    # Latest check-in first
    assert data["records"][0]["status"] == "checked-in"

    response = await client.get("/api/v1/attendance/history?status=completed&page_size=1", headers=auth_headers)
    data = response.json()
    assert data["total"] == 2
    assert len(data["records"]) == 1
    assert data["records"][0]["actual_duration"] == 120


@pytest.mark.asyncio
async def test_attendance_history_empty(client: AsyncClient, auth_headers):
    response = await client.get("/api/v1/attendance/history", headers=auth_headers)
    data = response.json()
    assert data["total"] == 0
    assert data["records"] == []
    assert data["statistics"]["avg_duration"] == 0.0
