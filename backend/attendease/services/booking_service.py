"""
Booking lifecycle engine with concurrency-safe seat reservation.

CONCURRENCY STRATEGY: Optimistic Write Slots with Retry
=======================================================

Problem:
  Two students request overlapping windows on the same seat at the same time.
  Both run the overlap query, both see no conflict, both insert.
  Result: a double-booked seat. The same race lets one student hold two
  forward-looking bookings by submitting on two seats at once.

Solution:
  Seats and users each carry a version counter (a "write slot").

  1. Read the seat and user rows, remember their versions
  2. Run the overlap and outstanding-booking checks
  3. UPDATE seats SET version = version + 1
     WHERE id = :seat_id AND version = :seat_version AND is_active
     UPDATE users SET booking_version = booking_version + 1
     WHERE id = :user_id AND booking_version = :user_version AND is_active
  4. If either update touches 0 rows, another writer committed in between:
     roll back and re-run the checks from step 1. Seat and account
     deactivation advance the same counters
  5. Insert the booking and commit in the same transaction as the updates

  A concurrent writer blocks on the row lock taken in step 3, then sees the
  bumped version and retries, so its re-run checks see the committed booking.
  Both writers always lock the seat row before the user row.

Occupancy:
  Seat.is_occupied is written after the booking change commits, by
  re-deriving it from live bookings. If that write fails the booking stands,
  the failure is counted, and reconciliation repairs the flag later.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.models.booking import (
    Booking,
    LIVE_STATUSES,
    STATUS_ACTIVE,
    STATUS_CHECKED_IN,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)
from attendease.models.seat import Seat
from attendease.models.user import User
from attendease.services import booking_rules, seat_service
from attendease.services.qr_service import encode_token, render_qr_data_url
from attendease.core.clock import utcnow
from attendease.core.config import get_settings
from attendease.core.exceptions import (
    BookingNotFound,
    CannotCancel,
    CheckInNotAllowed,
    CheckOutNotAllowed,
    ConflictError,
    ForbiddenError,
    InvalidBookingState,
    InvalidBookingWindow,
    SeatConflict,
    SeatInactive,
    SeatNotFound,
    UserAlreadyBooked,
    UserNotFound,
)
from attendease.core.logging import booking_context, get_logger
from attendease.core.metrics import (
    booking_latency,
    db_retries,
    occupancy_sync_failures,
    record_booking_attempt,
    record_qr_operation,
    record_rejection,
    record_transition,
)

logger = get_logger(__name__)
settings = get_settings()


async def _load_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise BookingNotFound(booking_id)
    return booking


def _ensure_owner(booking: Booking, requester_id: int, requester_is_admin: bool = False, action: str = "access") -> None:
    if booking.user_id != requester_id and not requester_is_admin:
        raise ForbiddenError(f"Access denied. You can only {action} your own bookings.")


async def _find_seat_conflict(
    db: AsyncSession,
    seat_id: int,
    start_time: datetime,
    end_time: datetime,
) -> Optional[Booking]:
    """First live booking on the seat whose [start, end) window overlaps the request."""
    result = await db.execute(
        select(Booking)
        .where(
            Booking.seat_id == seat_id,
            Booking.status.in_(LIVE_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        .order_by(Booking.start_time.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _find_outstanding_booking(db: AsyncSession, user_id: int, now: datetime) -> Optional[Booking]:
    """The user's active booking that has not yet ended, on any seat."""
    result = await db.execute(
        select(Booking)
        .where(
            Booking.user_id == user_id,
            Booking.status == STATUS_ACTIVE,
            Booking.end_time > now,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _claim_write_slots(
    db: AsyncSession,
    seat_id: int,
    seat_version: int,
    user_id: int,
    user_version: int,
) -> bool:
    """Advance the seat and user versions if nobody else has. False means we lost a race."""
    seat_claim = await db.execute(
        update(Seat)
        .where(
            Seat.id == seat_id,
            Seat.version == seat_version,
            Seat.is_active.is_(True),
        )
        .values(version=Seat.version + 1)
        .execution_options(synchronize_session=False)
    )
    if seat_claim.rowcount == 0:
        return False

    user_claim = await db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.booking_version == user_version,
            User.is_active.is_(True),
        )
        .values(booking_version=User.booking_version + 1)
        .execution_options(synchronize_session=False)
    )
    return user_claim.rowcount == 1


async def _sync_seat_occupancy(db: AsyncSession, seat_id: int) -> None:
    """
    Re-derive the seat's occupancy flag after a committed booking change.
    A failure here leaves the booking intact and is repaired by reconciliation.
    """
    try:
        occupied = await seat_service.sync_occupancy(db, seat_id)
        await db.commit()
        logger.debug("occupancy_synced", seat_id=seat_id, occupied=occupied)
    except SQLAlchemyError as e:
        await db.rollback()
        occupancy_sync_failures.inc()
        logger.error("occupancy_sync_failed", seat_id=seat_id, error=str(e))


async def _reserve(
    db: AsyncSession,
    user_id: int,
    seat_id: int,
    start_time: datetime,
    end_time: datetime,
    notes: Optional[str],
    now: datetime,
) -> tuple[int, int]:
    """Insert the booking under both write slots. Returns the booking id and the attempt that won."""
    with booking_latency.time():
        try:
            start_time, end_time = booking_rules.validate_window(start_time, end_time, now)
        except InvalidBookingWindow:
            record_booking_attempt("rejected")
            raise

        for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
            # Step 1: Read current seat and user state
            seat = (
                await db.execute(
                    select(Seat).where(Seat.id == seat_id).execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
            if not seat:
                record_booking_attempt("rejected")
                raise SeatNotFound(seat_id)
            if not seat.is_active:
                record_booking_attempt("rejected")
                raise SeatInactive("Seat is not available for booking")

            user = (
                await db.execute(
                    select(User).where(User.id == user_id).execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
            if not user:
                record_booking_attempt("rejected")
                raise UserNotFound(user_id)
            if not user.is_active:
                record_booking_attempt("rejected")
                raise ForbiddenError("Account is deactivated. Please contact admin.")

            seat_version = seat.version
            user_version = user.booking_version

            # Step 2: Business rules
            conflicting = await _find_seat_conflict(db, seat_id, start_time, end_time)
            if conflicting:
                record_booking_attempt("seat_conflict")
                logger.warning(
                    "booking_failed_seat_conflict",
                    seat_id=seat_id,
                    user_id=user_id,
                    conflicting_booking_id=conflicting.id,
                )
                raise SeatConflict(
                    "Seat is already booked for the selected time slot",
                    details={
                        "conflicting_booking": {
                            "start_time": conflicting.start_time.isoformat(),
                            "end_time": conflicting.end_time.isoformat(),
                        }
                    },
                )

            outstanding = await _find_outstanding_booking(db, user_id, now)
            if outstanding:
                record_booking_attempt("user_already_booked")
                logger.warning(
                    "booking_failed_user_already_booked",
                    user_id=user_id,
                    active_booking_id=outstanding.id,
                )
                raise UserAlreadyBooked(
                    "You already have an active booking. Please complete or cancel it first.",
                    details={
                        "active_booking": {
                            "seat_id": outstanding.seat_id,
                            "start_time": outstanding.start_time.isoformat(),
                            "end_time": outstanding.end_time.isoformat(),
                        }
                    },
                )

            # Step 3: Claim write slots
            if not await _claim_write_slots(db, seat_id, seat_version, user_id, user_version):
                db_retries.inc()
                logger.info(
                    "booking_retry",
                    seat_id=seat_id,
                    user_id=user_id,
                    attempt=attempt,
                    reason="version_conflict",
                )
                await db.rollback()
                continue

            # Step 4: Create booking record and commit with the claims
            booking = Booking(
                user_id=user_id,
                seat_id=seat_id,
                start_time=start_time,
                end_time=end_time,
                status=STATUS_ACTIVE,
                notes=notes or "",
            )
            db.add(booking)
            await db.flush()
            booking_id = booking.id
            await db.commit()
            break
        else:
            record_booking_attempt("contention")
            raise ConflictError("Booking failed due to high demand. Please try again.")

    return booking_id, attempt


async def create_booking(
    db: AsyncSession,
    user_id: int,
    seat_id: int,
    start_time: datetime,
    end_time: datetime,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Reserve a seat for a window.
    Retries up to BOOKING_MAX_RETRIES times when a concurrent creation wins the write slot.
    """
    now = now or utcnow()

    with booking_context(seat_id=seat_id, user_id=user_id):
        booking_id, attempt = await _reserve(db, user_id, seat_id, start_time, end_time, notes, now)
        await _sync_seat_occupancy(db, seat_id)
        booking = await _load_booking(db, booking_id)

        record_booking_attempt("success")
        record_transition("created")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            start_time=booking.start_time.isoformat(),
            end_time=booking.end_time.isoformat(),
            attempt=attempt,
        )
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
    requester_is_admin: bool = False,
    now: Optional[datetime] = None,
) -> Booking:
    """Cancel an active booking that has not started yet and release the seat."""
    now = now or utcnow()
    booking = await _load_booking(db, booking_id)

    with booking_context(booking_id=booking.id, seat_id=booking.seat_id, user_id=booking.user_id):
        _ensure_owner(booking, requester_id, requester_is_admin, action="cancel")

        if not booking_rules.can_cancel(booking, now):
            record_rejection("cancel")
            logger.warning("cancel_refused", status=booking.status)
            raise CannotCancel(
                booking_rules.cancel_refusal_reason(booking, now),
                details={"status": booking.status, "start_time": booking.start_time.isoformat()},
            )

        booking.status = STATUS_CANCELLED
        await db.flush()
        await db.commit()

        await _sync_seat_occupancy(db, booking.seat_id)
        booking = await _load_booking(db, booking_id)

        record_transition("cancelled")
        logger.info("booking_cancelled", cancelled_by=requester_id)
    return booking


async def check_in(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
    now: Optional[datetime] = None,
) -> Booking:
    """Check in from 30 minutes before the window opens until it closes."""
    now = now or utcnow()
    booking = await _load_booking(db, booking_id)

    with booking_context(booking_id=booking.id, seat_id=booking.seat_id, user_id=booking.user_id):
        _ensure_owner(booking, requester_id, action="check in to")

        if not booking_rules.can_check_in(booking, now):
            record_rejection("check_in")
            logger.warning("check_in_refused", status=booking.status)
            raise CheckInNotAllowed(
                "Booking cannot be checked in at this time",
                details=booking_rules.check_in_details(booking),
            )

        booking.check_in_time = now
        booking.status = STATUS_CHECKED_IN
        await db.flush()
        await db.commit()

        await _sync_seat_occupancy(db, booking.seat_id)
        booking = await _load_booking(db, booking_id)

        record_transition("checked_in")
        logger.info("booking_checked_in")
    return booking


async def check_out(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Complete a checked-in booking, record the time spent and release the seat."""
    now = now or utcnow()
    booking = await _load_booking(db, booking_id)

    with booking_context(booking_id=booking.id, seat_id=booking.seat_id, user_id=booking.user_id):
        _ensure_owner(booking, requester_id, action="check out of")

        if not booking_rules.can_check_out(booking):
            record_rejection("check_out")
            logger.warning("check_out_refused", status=booking.status)
            raise CheckOutNotAllowed(
                "Booking cannot be checked out",
                details=booking_rules.check_out_details(booking),
            )

        booking.check_out_time = now
        booking.actual_duration = booking_rules.actual_duration_minutes(booking.check_in_time, now)
        booking.attendance_notes = notes or ""
        booking.status = STATUS_COMPLETED
        await db.flush()
        await db.commit()

        await _sync_seat_occupancy(db, booking.seat_id)
        booking = await _load_booking(db, booking_id)

        record_transition("checked_out")
        logger.info("booking_checked_out", actual_duration=booking.actual_duration)
    return booking


async def issue_token(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Generate (or regenerate) the booking's QR token and image.
    Does not change the booking's status.
    """
    now = now or utcnow()
    booking = await _load_booking(db, booking_id)
    _ensure_owner(booking, requester_id, action="generate QR codes for")

    if booking.is_terminal:
        record_qr_operation("issue", "refused")
        raise InvalidBookingState(f"Cannot generate QR for {booking.status} booking")

    token = encode_token(booking.id, now)
    booking.qr_data = token
    booking.qr_code = render_qr_data_url(token)
    await db.flush()
    await db.commit()

    record_qr_operation("issue", "ok")
    logger.info("qr_issued", booking_id=booking.id, user_id=booking.user_id)
    return booking


async def get_booking(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
    requester_is_admin: bool = False,
) -> Booking:
    booking = await _load_booking(db, booking_id)
    _ensure_owner(booking, requester_id, requester_is_admin, action="view")
    return booking


async def list_user_bookings(
    db: AsyncSession,
    user_id: int,
    status: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Booking], int]:
    """Get a page of the user's bookings, newest first."""
    query = select(Booking).where(Booking.user_id == user_id)
    if status:
        query = query.where(Booking.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_all_bookings(
    db: AsyncSession,
    status: Optional[str] = None,
    seat_id: Optional[int] = None,
    day: Optional[date] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Booking], int]:
    """Admin listing. `day` keeps bookings starting on that UTC calendar day."""
    query = select(Booking)
    if status:
        query = query.where(Booking.status == status)
    if seat_id is not None:
        query = query.where(Booking.seat_id == seat_id)
    if day is not None:
        day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        query = query.where(
            Booking.start_time >= day_start,
            Booking.start_time < day_start + timedelta(days=1),
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def get_attendance_history(
    db: AsyncSession,
    user_id: int,
    status: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Booking], int, dict]:
    """Bookings the user actually checked in to, latest first, with session totals."""
    attended = (Booking.user_id == user_id, Booking.check_in_time.is_not(None))

    query = select(Booking).where(*attended)
    if status:
        query = query.where(Booking.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query
        .order_by(Booking.check_in_time.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    records = list(result.scalars().all())

    row = (
        await db.execute(
            select(
                func.count(Booking.id),
                func.coalesce(func.sum(Booking.actual_duration), 0),
                func.coalesce(func.avg(Booking.actual_duration), 0),
                func.coalesce(
                    func.sum(case((Booking.status == STATUS_COMPLETED, 1), else_=0)), 0
                ),
            ).where(*attended)
        )
    ).one()
    statistics = {
        "total_sessions": int(row[0]),
        "total_duration": int(row[1]),
        "avg_duration": round(float(row[2]), 1),
        "completed_sessions": int(row[3]),
    }
    return records, total, statistics


async def cancel_user_bookings(db: AsyncSession, user_id: int) -> int:
    """
    Cancel every active booking of a user being deactivated by an admin.
    Unlike a user cancellation this also covers bookings already underway.
    """
    result = await db.execute(
        select(Booking).where(Booking.user_id == user_id, Booking.status == STATUS_ACTIVE)
    )
    bookings = list(result.scalars().all())
    seat_ids = {b.seat_id for b in bookings}

    for booking in bookings:
        booking.status = STATUS_CANCELLED
    await db.flush()
    await db.commit()

    for seat_id in seat_ids:
        await _sync_seat_occupancy(db, seat_id)

    if bookings:
        logger.info("user_bookings_cancelled", user_id=user_id, count=len(bookings))
    return len(bookings)
