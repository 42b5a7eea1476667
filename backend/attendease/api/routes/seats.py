"""
Seat endpoints with Redis caching on list operations.
Anyone may browse seats; creating, editing and deleting them is admin only.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.api.deps import Principal, require_admin
from attendease.db.session import get_db
from attendease.schemas.seat import (
    SeatCreate,
    SeatUpdate,
    SeatResponse,
    SeatListResponse,
    ReconcileResponse,
)
from attendease.services import seat_service
from attendease.services.cache_service import get_cached_seats, set_cached_seats, invalidate_seat_cache
from attendease.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/seats", tags=["Seats"])


@router.get("/", response_model=SeatListResponse)
async def list_seats_endpoint(
    floor: Optional[int] = Query(None, ge=1),
    section: Optional[str] = Query(None, max_length=20),
    available: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    List active seats, optionally filtered by floor, section and availability.
    Results are cached in Redis briefly; every occupancy change invalidates them.
    """
    section = section.upper() if section else None

    cached = await get_cached_seats(floor, section, available)
    if cached:
        logger.info("seats_list_cache_hit", floor=floor, section=section)
        cached["cached"] = True
        return SeatListResponse(**cached)

    seats = await seat_service.list_seats(db, floor, section, available)
    response_data = {
        "seats": [SeatResponse.model_validate(s).model_dump() for s in seats],
        "count": len(seats),
        "cached": False,
    }
    await set_cached_seats(floor, section, available, response_data)
    return SeatListResponse(**response_data)


@router.get("/{seat_id}", response_model=SeatResponse)
async def get_seat_endpoint(seat_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single seat. Not cached (needs the live occupancy flag)."""
    return await seat_service.get_seat(db, seat_id)


@router.post("/", response_model=SeatResponse, status_code=status.HTTP_201_CREATED)
async def create_seat_endpoint(
    seat_data: SeatCreate,
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    seat = await seat_service.create_seat(db, seat_data)
    await invalidate_seat_cache()
    return seat


@router.put("/{seat_id}", response_model=SeatResponse)
async def update_seat_endpoint(
    seat_id: int,
    seat_data: SeatUpdate,
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit a seat. Deactivation is refused while the seat has live bookings."""
    seat = await seat_service.update_seat(db, seat_id, seat_data)
    await invalidate_seat_cache()
    return seat


@router.delete("/{seat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_seat_endpoint(
    seat_id: int,
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await seat_service.delete_seat(db, seat_id)
    await invalidate_seat_cache()


@router.post("/reconcile-occupancy", response_model=ReconcileResponse)
async def reconcile_occupancy_endpoint(
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Re-derive every seat's occupancy flag from its live bookings."""
    corrected = await seat_service.reconcile_occupancy(db)
    if corrected:
        await invalidate_seat_cache()
    return ReconcileResponse(corrected=corrected, count=len(corrected))
