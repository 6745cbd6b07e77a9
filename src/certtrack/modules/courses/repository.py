"""
Course Repository

Database operations for courses and course access grants.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from certtrack.modules.courses.models import Course, course_enrollments

logger = logging.getLogger(__name__)


class CourseRepository:
    """Repository for course database operations."""

    @staticmethod
    async def list_all(db: AsyncSession) -> list[Course]:
        """Return every course, ordered by id so title matching is stable."""
        result = await db.execute(select(Course).order_by(Course.id))
        return list(result.scalars().all())

    @staticmethod
    async def revoke_access(db: AsyncSession, user_id: int, course_id: int) -> bool:
        """
        Remove a user's access grant on a course.

        Idempotent: revoking a grant that does not exist is a no-op.

        Args:
            db: Database session
            user_id: Holder of the grant
            course_id: Course the grant is on

        Returns:
            True if a grant was removed, False if there was nothing to remove
        """
        result = await db.execute(
            delete(course_enrollments).where(
                course_enrollments.c.user_id == user_id,
                course_enrollments.c.course_id == course_id,
            )
        )
        await db.commit()

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Revoked course access for user {user_id} on course {course_id}")
        else:
            logger.debug(f"No course access to revoke for user {user_id} on course {course_id}")
        return removed
