"""
Quiz Score Repository

Database operations for quiz scores.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from certtrack.modules.quiz_scores.models import QuizScore


class QuizScoreRepository:
    """Repository for quiz score database operations."""

    @staticmethod
    async def list_all(db: AsyncSession) -> list[QuizScore]:
        """Return every quiz score, oldest first."""
        result = await db.execute(select(QuizScore).order_by(QuizScore.id))
        return list(result.scalars().all())

    @staticmethod
    async def link(
        db: AsyncSession,
        score_id: int,
        *,
        user_id: int,
        course_id: int,
        is_passing: bool,
    ) -> None:
        """
        Attach resolved relations and the pass flag to a legacy score.

        The change is executed but not committed; the caller owns the transaction.
        """
        await db.execute(
            update(QuizScore)
            .where(QuizScore.id == score_id)
            .values(user_id=user_id, course_id=course_id, is_passing=is_passing)
        )
