"""
Pydantic schemas for seat-related request/response validation.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional
from pydantic import BaseModel, Field, StringConstraints

SeatType = Literal["regular", "premium", "window", "corner"]

# Stripped before the length check so blank codes are rejected
SeatCode = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=20)]


class SeatCreate(BaseModel):
    seat_number: SeatCode
    seat_type: SeatType = "regular"
    floor: int = Field(..., ge=1)
    section: SeatCode
    description: Optional[str] = Field(None, max_length=200)


class SeatUpdate(BaseModel):
    seat_type: Optional[SeatType] = None
    floor: Optional[int] = Field(None, ge=1)
    section: Optional[SeatCode] = None
    description: Optional[str] = Field(None, max_length=200)
    is_active: Optional[bool] = None


class SeatResponse(BaseModel):
    id: int
    seat_number: str
    seat_type: str
    floor: int
    section: str
    description: Optional[str]
    is_active: bool
    is_occupied: bool
    is_available: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SeatSummary(BaseModel):
    id: int
    seat_number: str
    seat_type: str
    floor: int
    section: str

    model_config = {"from_attributes": True}


class SeatListResponse(BaseModel):
    seats: list[SeatResponse]
    count: int
    cached: bool = False


class OccupancyCorrection(BaseModel):
    seat_id: int
    seat_number: str
    was_occupied: bool
    is_occupied: bool


class ReconcileResponse(BaseModel):
    corrected: list[OccupancyCorrection]
    count: int
