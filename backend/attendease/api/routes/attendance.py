"""
Attendance endpoints: QR issuance and scan-based check-in/check-out.

The scanned token only identifies the booking. Ownership and the lifecycle
guards are checked again by the booking service on every scan.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.api.deps import Principal, get_current_principal
from attendease.db.session import get_db
from attendease.schemas.attendance import (
    QRCodeResponse,
    CheckInRequest,
    CheckOutRequest,
    AttendanceHistoryResponse,
    AttendanceStatistics,
)
from attendease.schemas.booking import BookingResponse
from attendease.services import booking_service
from attendease.services.qr_service import decode_token
from attendease.services.cache_service import invalidate_seat_cache
from attendease.core.clock import Clock, get_clock

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("/qr/{booking_id}", response_model=QRCodeResponse)
async def generate_qr_code(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Generate (or regenerate) the QR code for one of your bookings."""
    booking = await booking_service.issue_token(db, booking_id, principal.user_id, now=clock.now())
    return QRCodeResponse(
        booking_id=booking.id,
        qr_code=booking.qr_code,
        qr_data=booking.qr_data,
        booking=BookingResponse.model_validate(booking),
    )


@router.post("/checkin", response_model=BookingResponse)
async def check_in(
    body: CheckInRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Check in by scanning the booking's QR code."""
    booking_id = decode_token(body.qr_data)
    return await booking_service.check_in(db, booking_id, principal.user_id, now=clock.now())


@router.post("/checkout", response_model=BookingResponse)
async def check_out(
    body: CheckOutRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Check out by scanning the booking's QR code. Frees the seat."""
    booking_id = decode_token(body.qr_data)
    booking = await booking_service.check_out(
        db, booking_id, principal.user_id, notes=body.notes, now=clock.now()
    )
    await invalidate_seat_cache()
    return booking


@router.get("/history", response_model=AttendanceHistoryResponse)
async def attendance_history(
    status_filter: Optional[Literal["checked-in", "completed"]] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Sessions the user attended, with totals across all of them."""
    records, total, statistics = await booking_service.get_attendance_history(
        db, principal.user_id, status_filter, page, page_size
    )
    return AttendanceHistoryResponse(
        records=[BookingResponse.model_validate(b) for b in records],
        statistics=AttendanceStatistics(**statistics),
        total=total,
        page=page,
        page_size=page_size,
        generated_at=clock.now(),
    )
