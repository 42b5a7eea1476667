"""
Account endpoints: own profile, and admin user management.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.api.deps import Principal, get_current_principal, require_admin
from attendease.db.session import get_db
from attendease.schemas.user import UserResponse, UserUpdate, UserStatusUpdate, UserStatusResponse
from attendease.services import auth_service
from attendease.services.cache_service import invalidate_seat_cache

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_profile(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await auth_service.get_user(db, principal.user_id)


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    changes: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Update name and/or phone number."""
    return await auth_service.update_profile(db, principal.user_id, changes)


@router.get("/", response_model=list[UserResponse])
async def list_users(
    role: Optional[Literal["student", "admin"]] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users, _total = await auth_service.list_users(db, role, page, page_size)
    return users


@router.patch("/{user_id}/status", response_model=UserStatusResponse)
async def update_user_status(
    user_id: int,
    body: UserStatusUpdate,
    _: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Activate or deactivate an account.
    Deactivating cancels the user's active bookings and frees their seats.
    """
    user, cancelled = await auth_service.set_user_status(db, user_id, body.is_active)
    if cancelled:
        await invalidate_seat_cache()
    return UserStatusResponse(user=UserResponse.model_validate(user), cancelled_bookings=cancelled)
