"""Admin-controlled feature switches (assistant on/off, per-user uploads)."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chatspace.core.config import get_settings
from chatspace.models.user import User

logger = logging.getLogger(__name__)
settings = get_settings()


class FlagService:
    """
    The assistant switch is global. It is persisted on the admin's user row
    and cached in memory so the chat endpoint does not hit the database for it.
    """

    _ai_enabled: bool = True

    @classmethod
    def ai_enabled(cls) -> bool:
        return cls._ai_enabled

    @classmethod
    async def load(cls, db: AsyncSession) -> bool:
        """Read the persisted assistant switch (call on startup)."""
        admin = await cls._get_admin(db)
        cls._ai_enabled = admin.ai_enabled if admin is not None else True
        logger.info(f"AI assistant {'enabled' if cls._ai_enabled else 'disabled'}")
        return cls._ai_enabled

    @classmethod
    async def set_ai_enabled(cls, db: AsyncSession, enabled: bool) -> bool:
        admin = await cls._get_admin(db)
        if admin is not None:
            admin.ai_enabled = enabled
            await db.flush()
        else:
            logger.warning("No admin user row; AI switch kept in memory only")
        cls._ai_enabled = enabled
        logger.info(f"AI assistant {'enabled' if enabled else 'disabled'} by admin")
        return enabled

    @classmethod
    def reset(cls) -> None:
        cls._ai_enabled = True

    @staticmethod
    async def set_uploads_enabled(db: AsyncSession, user_id: str, enabled: bool) -> Optional[User]:
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.uploads_enabled = enabled
        await db.flush()
        return user

    @staticmethod
    async def _get_admin(db: AsyncSession) -> Optional[User]:
        if not settings.admin_id:
            return None
        return await db.get(User, settings.admin_id)
