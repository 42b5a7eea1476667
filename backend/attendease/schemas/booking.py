"""
Pydantic schemas for booking-related request/response validation.
Window rules (future start, 30 minute to 8 hour duration) are enforced by
the booking service because they depend on the current time.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from attendease.schemas.seat import SeatSummary


class BookingCreate(BaseModel):
    seat_id: int = Field(..., gt=0)
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = Field(None, max_length=500)


class BookingResponse(BaseModel):
    id: int
    user_id: int
    seat_id: int
    seat: Optional[SeatSummary] = None
    start_time: datetime
    end_time: datetime
    status: str
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    actual_duration: int
    notes: Optional[str]
    attendance_notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    page: int
    page_size: int
