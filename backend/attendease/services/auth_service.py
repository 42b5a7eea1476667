"""
Authentication and account service: registration, login, profile edits and
admin activation/deactivation.
"""

from typing import Optional

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.models.user import User, ROLE_STUDENT, ROLE_ADMIN
from attendease.schemas.user import UserCreate, UserLogin, UserUpdate
from attendease.core.security import hash_password, verify_password, create_access_token
from attendease.core.exceptions import AuthenticationError, DuplicateUser, ForbiddenError, UserNotFound
from attendease.core.logging import get_logger
from attendease.services import booking_service

logger = get_logger(__name__)


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new user with hashed password.
    Self-registration always creates students; admins come from the seed command.
    Raises 409 if email or phone already exists.
    """
    email = user_data.email.lower()
    result = await db.execute(
        select(User).where(or_(User.email == email, User.phone == user_data.phone))
    )
    if result.scalars().first():
        logger.warning("registration_failed", reason="user_exists", email=email)
        raise DuplicateUser("User already exists with this email or phone number")

    user = User(
        name=user_data.name.strip(),
        email=email,
        phone=user_data.phone,
        hashed_password=hash_password(user_data.password),
        role=ROLE_STUDENT,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, email=user.email, role=user.role)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> tuple[User, str]:
    """
    Authenticate user and return it with a JWT access token.
    Raises 401 if credentials are invalid, 403 if the account is deactivated.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise ForbiddenError("Account is inactive. Please contact Admin.")

    token = create_access_token(data={"sub": str(user.id)})
    logger.info("user_logged_in", user_id=user.id)
    return user, token


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise UserNotFound(user_id)
    return user


async def update_profile(db: AsyncSession, user_id: int, changes: UserUpdate) -> User:
    user = await get_user(db, user_id)
    data = changes.model_dump(exclude_unset=True, exclude_none=True)

    if "phone" in data and data["phone"] != user.phone:
        taken = await db.execute(select(User.id).where(User.phone == data["phone"], User.id != user_id))
        if taken.scalar_one_or_none():
            raise DuplicateUser("Phone number already in use")

    for field, value in data.items():
        setattr(user, field, value.strip() if field == "name" else value)
    await db.flush()
    await db.refresh(user)

    logger.info("profile_updated", user_id=user.id, fields=sorted(data))
    return user


async def list_users(
    db: AsyncSession,
    role: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[User], int]:
    query = select(User)
    if role:
        query = query.where(User.role == role)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * page_size).limit(page_size)
    )
    return list(result.scalars().all()), total


async def set_user_status(db: AsyncSession, user_id: int, is_active: bool) -> tuple[User, int]:
    """
    Activate or deactivate an account.
    Deactivation cancels the user's active bookings and frees their seats.
    It also advances the booking write slot, so a creation already in flight
    for this user loses its claim and re-reads the account as inactive.
    """
    await get_user(db, user_id)

    values = {"is_active": is_active}
    if not is_active:
        values["booking_version"] = User.booking_version + 1
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    cancelled = 0
    if not is_active:
        cancelled = await booking_service.cancel_user_bookings(db, user_id)

    user = await get_user(db, user_id)
    logger.info("user_status_changed", user_id=user_id, is_active=is_active, cancelled_bookings=cancelled)
    return user, cancelled


async def ensure_admin(db: AsyncSession, name: str, email: str, phone: str, password: str) -> User:
    """Create the admin account if it does not exist yet."""
    result = await db.execute(select(User).where(User.email == email.lower()))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        name=name,
        email=email.lower(),
        phone=phone,
        hashed_password=hash_password(password),
        role=ROLE_ADMIN,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("admin_created", user_id=user.id, email=user.email)
    return user
