"""
User Repository

Database operations for certificate holders.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certtrack.modules.users.models import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """
        Get a user by email address, ignoring case.

        Args:
            db: Database session
            email: Email address

        Returns:
            User instance or None if not found
        """
        result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalars().first()

    @staticmethod
    async def list_all(db: AsyncSession) -> list[User]:
        """Return every user, ordered by id."""
        result = await db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())
