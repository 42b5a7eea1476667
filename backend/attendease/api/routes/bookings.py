"""
Booking endpoints with concurrency-safe seat reservation.
"""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.api.deps import Principal, get_current_principal, require_admin
from attendease.db.session import get_db
from attendease.schemas.booking import BookingCreate, BookingResponse, BookingListResponse
from attendease.services import booking_service
from attendease.services.cache_service import invalidate_seat_cache
from attendease.core.clock import Clock, get_clock

router = APIRouter(prefix="/bookings", tags=["Bookings"])

StatusFilter = Literal["active", "checked-in", "completed", "cancelled", "no-show"]


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Reserve a seat for a time window.

    Rejected with 409 when the seat already has an overlapping booking and
    with 400 when the caller still holds an upcoming active booking.
    Concurrent requests for the same seat are serialised on the seat's
    version column; a request that keeps losing the race gets a 409.
    """
    booking = await booking_service.create_booking(
        db,
        user_id=principal.user_id,
        seat_id=booking_data.seat_id,
        start_time=booking_data.start_time,
        end_time=booking_data.end_time,
        notes=booking_data.notes,
        now=clock.now(),
    )
    # Seat occupancy changed
    await invalidate_seat_cache()
    return booking


@router.get("/me", response_model=BookingListResponse)
async def list_my_bookings(
    status_filter: Optional[StatusFilter] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's bookings, newest first."""
    bookings, total = await booking_service.list_user_bookings(
        db, principal.user_id, status_filter, page, page_size
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/", response_model=BookingListResponse)
async def list_all_bookings(
    status_filter: Optional[StatusFilter] = Query(None, alias="status"),
    seat_id: Optional[int] = Query(None, ge=1),
    day: Optional[date] = Query(None, alias="date"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Admin view of all bookings, filterable by status, seat and start date."""
    bookings, total = await booking_service.list_all_bookings(
        db, status_filter, seat_id, day, page, page_size
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking(db, booking_id, principal.user_id, principal.is_admin)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Cancel a booking that has not started yet. Admins may cancel any booking."""
    booking = await booking_service.cancel_booking(
        db, booking_id, principal.user_id, principal.is_admin, now=clock.now()
    )
    await invalidate_seat_cache()
    return booking
