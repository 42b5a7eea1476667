"""
Create the initial admin account.

    python -m attendease.seed

Self-registration only creates students, so this is how the first admin
gets in. Safe to run repeatedly.
"""

import asyncio

from sqlalchemy.exc import ProgrammingError

from attendease.core.config import get_settings
from attendease.core.logging import setup_logging, get_logger
from attendease.db.session import AsyncSessionLocal, engine
from attendease.services.auth_service import ensure_admin


async def run() -> None:
    settings = get_settings()
    logger = get_logger(__name__)

    async with AsyncSessionLocal() as db:
        try:
            admin = await ensure_admin(
                db,
                name=settings.ADMIN_NAME,
                email=settings.ADMIN_EMAIL,
                phone=settings.ADMIN_PHONE,
                password=settings.ADMIN_PASSWORD,
            )
            await db.commit()
        except ProgrammingError:
            # Migrations haven't been applied yet
            await db.rollback()
            logger.warning("seed_skipped", reason="users table missing, run alembic upgrade head")
            return
    logger.info("seed_complete", admin_id=admin.id, email=admin.email)
    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run())
