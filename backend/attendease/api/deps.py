"""
Request dependencies: the authenticated principal and role guards.

Routes get a plain Principal rather than the ORM user so that a service
rolling back the session never leaves the route holding an expired object.
"""

from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.db.session import get_db
from attendease.core.security import decode_access_token
from attendease.core.exceptions import AuthenticationError, ForbiddenError
from attendease.models.user import User, ROLE_ADMIN

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


async def get_current_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    if not creds:
        raise AuthenticationError("Access denied. Invalid or missing token.")

    user_id = decode_access_token(creds.credentials)
    result = await db.execute(select(User.id, User.role, User.is_active).where(User.id == user_id))
    row = result.one_or_none()

    if row is None:
        raise AuthenticationError("Invalid token. User not found.")
    if not row.is_active:
        raise AuthenticationError("Account is deactivated. Please contact admin.")
    return Principal(user_id=row.id, role=row.role)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise ForbiddenError("Access denied. Required role: admin")
    return principal
