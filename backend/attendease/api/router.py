"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from attendease.api.routes import auth, users, seats, bookings, attendance

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(seats.router)
api_router.include_router(bookings.router)
api_router.include_router(attendance.router)
