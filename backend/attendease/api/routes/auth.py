"""
Authentication endpoints. Both register and login hand back a bearer token
together with the account, so a new student can start booking immediately.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.db.session import get_db
from attendease.schemas.user import UserCreate, UserLogin, UserResponse, AuthResponse
from attendease.services.auth_service import register_user, authenticate_user
from attendease.core.security import create_access_token

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new student account and sign it in."""
    user = await register_user(db, user_data)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        access_token=create_access_token(data={"sub": str(user.id)}),
    )


@router.post("/login", response_model=AuthResponse)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate with email and password."""
    user, token = await authenticate_user(db, login_data)
    return AuthResponse(user=UserResponse.model_validate(user), access_token=token)
