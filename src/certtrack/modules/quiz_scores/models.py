"""
Quiz Score Models

Assessment results. Legacy rows may predate the user/course relations and
only carry the username, email and course title as plain strings.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from certtrack.core.database import Base

# Quizzes without a recorded question count were all ten questions long
DEFAULT_TOTAL_QUESTIONS = 10


class QuizScore(Base):
    """A single quiz attempt."""

    __tablename__ = "quiz_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Relations (nullable for legacy rows)
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    course_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Legacy lookup strings
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    course_title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Result
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_passing: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def percentage(self) -> float:
        """Score as a percentage of the question count."""
        total = self.total_questions or DEFAULT_TOTAL_QUESTIONS
        return self.score * 100 / total

    def __repr__(self) -> str:
        return f"<QuizScore(id={self.id}, score={self.score}/{self.total_questions})>"
