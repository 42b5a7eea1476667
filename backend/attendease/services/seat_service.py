"""
Seat registry: seat CRUD plus the occupancy flag.

The occupancy flag is a cache of "this seat has a live booking". It is only
ever written through set_occupied(), and sync_occupancy() recomputes it from
the bookings table, so a lost write can always be repaired by re-deriving.
"""

from typing import Optional

from sqlalchemy import select, update, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.models.seat import Seat
from attendease.models.booking import Booking, LIVE_STATUSES
from attendease.schemas.seat import SeatCreate, SeatUpdate
from attendease.core.config import get_settings
from attendease.core.exceptions import ConflictError, SeatNotFound, DuplicateSeat, HasActiveBookings
from attendease.core.logging import get_logger
from attendease.core.metrics import db_retries, occupancy_drift

logger = get_logger(__name__)
settings = get_settings()


def normalize_code(value: str) -> str:
    return value.strip().upper()


async def create_seat(db: AsyncSession, seat_data: SeatCreate) -> Seat:
    """Create a seat. Seat numbers are unique after uppercasing."""
    seat_number = normalize_code(seat_data.seat_number)

    result = await db.execute(select(Seat).where(Seat.seat_number == seat_number))
    if result.scalar_one_or_none():
        logger.warning("seat_create_failed", reason="duplicate", seat_number=seat_number)
        raise DuplicateSeat("Seat with this number already exists")

    seat = Seat(
        seat_number=seat_number,
        seat_type=seat_data.seat_type,
        floor=seat_data.floor,
        section=normalize_code(seat_data.section),
        description=seat_data.description,
    )
    db.add(seat)
    try:
        await db.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent insert of the same number
        await db.rollback()
        raise DuplicateSeat("Seat with this number already exists") from e
    await db.refresh(seat)

    logger.info("seat_created", seat_id=seat.id, seat_number=seat.seat_number, floor=seat.floor)
    return seat


async def get_seat(db: AsyncSession, seat_id: int) -> Seat:
    result = await db.execute(select(Seat).where(Seat.id == seat_id))
    seat = result.scalar_one_or_none()

    if not seat:
        raise SeatNotFound(seat_id)
    return seat


async def list_seats(
    db: AsyncSession,
    floor: Optional[int] = None,
    section: Optional[str] = None,
    available: Optional[bool] = None,
) -> list[Seat]:
    """
    List active seats.
    available=True keeps free seats, available=False keeps occupied ones.
    Uses the ix_seats_active_occupied index for the availability filter.
    """
    query = select(Seat).where(Seat.is_active.is_(True))

    if floor is not None:
        query = query.where(Seat.floor == floor)
    if section:
        query = query.where(Seat.section == normalize_code(section))
    if available is True:
        query = query.where(Seat.is_occupied.is_(False))
    elif available is False:
        query = query.where(Seat.is_occupied.is_(True))

    result = await db.execute(query.order_by(Seat.floor.asc(), Seat.seat_number.asc()))
    return list(result.scalars().all())


async def has_live_bookings(db: AsyncSession, seat_id: int) -> bool:
    result = await db.execute(
        select(
            exists().where(
                Booking.seat_id == seat_id,
                Booking.status.in_(LIVE_STATUSES),
            )
        )
    )
    return bool(result.scalar())


async def claim_seat(db: AsyncSession, seat_id: int, seat_version: int) -> bool:
    """Advance the seat's version if nobody else has. Shares the write slot with booking creation."""
    result = await db.execute(
        update(Seat)
        .where(Seat.id == seat_id, Seat.version == seat_version)
        .values(version=Seat.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _retire_seat(db: AsyncSession, seat_id: int, action: str) -> Seat:
    """
    Take the seat's write slot after confirming it has no live bookings.
    A booking committed between the check and the claim moves the version,
    so the claim fails and the check runs again against the new booking.
    """
    for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
        seat = (
            await db.execute(
                select(Seat).where(Seat.id == seat_id).execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if not seat:
            raise SeatNotFound(seat_id)

        if await has_live_bookings(db, seat_id):
            logger.warning("seat_retire_refused", seat_id=seat_id, action=action)
            raise HasActiveBookings(f"Cannot {action} seat with active bookings")

        if await claim_seat(db, seat_id, seat.version):
            return seat

        db_retries.inc()
        logger.info("seat_retire_retry", seat_id=seat_id, action=action, attempt=attempt)

    raise ConflictError("Seat is being booked right now. Please try again.")


async def update_seat(db: AsyncSession, seat_id: int, seat_data: SeatUpdate) -> Seat:
    """Admin edit. The occupancy flag is not editable here."""
    seat = await get_seat(db, seat_id)
    changes = seat_data.model_dump(exclude_unset=True)

    if changes.get("is_active") is False and seat.is_active:
        seat = await _retire_seat(db, seat_id, "deactivate")

    if "section" in changes and changes["section"] is not None:
        changes["section"] = normalize_code(changes["section"])

    for field, value in changes.items():
        # description is the only field that may be cleared
        if value is None and field != "description":
            continue
        setattr(seat, field, value)

    await db.flush()
    await db.refresh(seat)

    logger.info("seat_updated", seat_id=seat.id, fields=sorted(changes))
    return seat


async def delete_seat(db: AsyncSession, seat_id: int) -> None:
    seat = await _retire_seat(db, seat_id, "delete")

    await db.delete(seat)
    await db.flush()
    logger.info("seat_deleted", seat_id=seat_id)


async def set_occupied(db: AsyncSession, seat_id: int, occupied: bool) -> None:
    """The only writer of Seat.is_occupied. Idempotent."""
    await db.execute(
        update(Seat)
        .where(Seat.id == seat_id)
        .values(is_occupied=occupied)
        .execution_options(synchronize_session="fetch")
    )


async def derive_occupancy(db: AsyncSession, seat_id: int) -> bool:
    return await has_live_bookings(db, seat_id)


async def sync_occupancy(db: AsyncSession, seat_id: int) -> bool:
    """Recompute the seat's occupancy flag from its live bookings and store it."""
    occupied = await derive_occupancy(db, seat_id)
    await set_occupied(db, seat_id, occupied)
    return occupied


async def reconcile_occupancy(db: AsyncSession) -> list[dict]:
    """
    Re-derive every seat's occupancy flag.
    Returns the seats whose cached flag disagreed with their bookings.
    """
    live_seat_ids = set(
        (
            await db.execute(
                select(Booking.seat_id).where(Booking.status.in_(LIVE_STATUSES)).distinct()
            )
        ).scalars().all()
    )
    seats = (await db.execute(select(Seat).order_by(Seat.id))).scalars().all()

    drifted = []
    for seat in seats:
        occupied = seat.id in live_seat_ids
        if seat.is_occupied != occupied:
            drifted.append({
                "seat_id": seat.id,
                "seat_number": seat.seat_number,
                "was_occupied": seat.is_occupied,
                "is_occupied": occupied,
            })
            await set_occupied(db, seat.id, occupied)

    await db.flush()
    if drifted:
        occupancy_drift.inc(len(drifted))
    logger.info("occupancy_reconciled", seats_checked=len(seats), seats_corrected=len(drifted))
    return drifted
