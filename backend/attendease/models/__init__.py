from attendease.models.user import User
from attendease.models.seat import Seat
from attendease.models.booking import Booking

__all__ = ["User", "Seat", "Booking"]
