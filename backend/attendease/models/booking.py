"""
Booking model representing a user's reservation of a seat for a time window.

Key design decisions:
- Status field allows cancellation and completion without deleting records
- Attendance timestamps live on the booking; each is written at most once
- No uniqueness constraint can express "no overlapping windows", so creation
  claims the seat's and the user's version slots inside the insert transaction
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from attendease.db.base import Base, TimestampMixin, UTCDateTime

STATUS_ACTIVE = "active"
STATUS_CHECKED_IN = "checked-in"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no-show"  # reserved, nothing transitions into it

BOOKING_STATUSES = (
    STATUS_ACTIVE,
    STATUS_CHECKED_IN,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_NO_SHOW,
)

# Statuses that hold the seat
LIVE_STATUSES = (STATUS_ACTIVE, STATUS_CHECKED_IN)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_ACTIVE)

    check_in_time = Column(UTCDateTime, nullable=True)
    check_out_time = Column(UTCDateTime, nullable=True)
    actual_duration = Column(Integer, nullable=False, default=0)  # minutes

    qr_code = Column(Text, nullable=True)  # PNG data URL
    qr_data = Column(String(255), nullable=True)  # token string

    notes = Column(String(500), nullable=True)
    attendance_notes = Column(String(500), nullable=True)

    # Relationships
    seat = relationship("Seat", lazy="selectin")
    user = relationship("User", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_booking_window"),
        CheckConstraint("actual_duration >= 0", name="check_booking_duration_non_negative"),
        CheckConstraint(
            "status IN ('active', 'checked-in', 'completed', 'cancelled', 'no-show')",
            name="check_booking_status",
        ),
        Index("ix_bookings_user_start", "user_id", "start_time"),
        Index("ix_bookings_seat_start", "seat_id", "start_time"),
        Index("ix_bookings_status_start", "status", "start_time"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, seat={self.seat_id}, status={self.status})>"
