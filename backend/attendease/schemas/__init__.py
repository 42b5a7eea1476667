from attendease.schemas.user import UserCreate, UserResponse, UserLogin, UserUpdate, AuthResponse
from attendease.schemas.seat import SeatCreate, SeatUpdate, SeatResponse, SeatListResponse
from attendease.schemas.booking import BookingCreate, BookingResponse, BookingListResponse
from attendease.schemas.attendance import (
    QRCodeResponse, CheckInRequest, CheckOutRequest, AttendanceHistoryResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "UserUpdate", "AuthResponse",
    "SeatCreate", "SeatUpdate", "SeatResponse", "SeatListResponse",
    "BookingCreate", "BookingResponse", "BookingListResponse",
    "QRCodeResponse", "CheckInRequest", "CheckOutRequest", "AttendanceHistoryResponse",
]
