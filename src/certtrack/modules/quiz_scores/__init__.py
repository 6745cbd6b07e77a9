"""
Quiz scores module - assessment results that certificates are issued from.
"""

from certtrack.modules.quiz_scores.models import DEFAULT_TOTAL_QUESTIONS, QuizScore
from certtrack.modules.quiz_scores.repository import QuizScoreRepository

__all__ = ["DEFAULT_TOTAL_QUESTIONS", "QuizScore", "QuizScoreRepository"]
