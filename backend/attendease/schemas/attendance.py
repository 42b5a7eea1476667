"""
Pydantic schemas for QR issuance and check-in/check-out.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from attendease.schemas.booking import BookingResponse


class QRCodeResponse(BaseModel):
    booking_id: int
    qr_code: str
    qr_data: str
    booking: BookingResponse


class CheckInRequest(BaseModel):
    qr_data: str = Field(..., min_length=1, max_length=255)


class CheckOutRequest(BaseModel):
    qr_data: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = Field(None, max_length=500)


class AttendanceStatistics(BaseModel):
    total_sessions: int = 0
    total_duration: int = 0
    avg_duration: float = 0.0
    completed_sessions: int = 0


class AttendanceHistoryResponse(BaseModel):
    records: list[BookingResponse]
    statistics: AttendanceStatistics
    total: int
    page: int
    page_size: int
    generated_at: datetime
