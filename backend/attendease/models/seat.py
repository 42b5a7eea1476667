"""
Seat model: a bookable library seat.

Key design decisions:
- `seat_number` and `section` are stored uppercase so uniqueness is case-insensitive
- `is_occupied` is a cache derived from live bookings; only the seat registry writes it
- `version` is the write slot booking creation must advance, serialising
  concurrent reservations of the same seat
"""

from sqlalchemy import Column, Integer, String, Boolean, Index, CheckConstraint

from attendease.db.base import Base, TimestampMixin

SEAT_TYPES = ("regular", "premium", "window", "corner")


class Seat(Base, TimestampMixin):
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    seat_number = Column(String(20), unique=True, index=True, nullable=False)
    seat_type = Column(String(20), nullable=False, default="regular")
    floor = Column(Integer, nullable=False)
    section = Column(String(20), nullable=False)
    description = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_occupied = Column(Boolean, nullable=False, default=False)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("floor >= 1", name="check_seat_floor_positive"),
        CheckConstraint(
            "seat_type IN ('regular', 'premium', 'window', 'corner')",
            name="check_seat_type",
        ),
        Index("ix_seats_floor_section", "floor", "section"),
        Index("ix_seats_active_occupied", "is_active", "is_occupied"),
    )

    @property
    def is_available(self) -> bool:
        return bool(self.is_active and not self.is_occupied)

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, number={self.seat_number}, occupied={self.is_occupied})>"
