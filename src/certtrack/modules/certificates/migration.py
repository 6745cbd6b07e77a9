"""
Quiz Score to Certificate Migration

One-time backfill that issues a certificate for every passing quiz score
that does not have one yet.

Legacy scores may only carry the username, email and course title as plain
strings. Holders and credentials are resolved through an ordered list of
strategies, from the relation itself down to a title substring match. The
strategy that matched each score is counted in the report, and substring
matches are listed individually since they are a best-effort guess.

The migration runs in two phases. Planning reads everything up front and
decides what to write without touching the database; applying then writes
each record in its own transaction, so one failed record does not undo or
block the others.
"""

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from certtrack.modules.certificates.helpers import add_years, derive_status
from certtrack.modules.certificates.repository import CertificateRepository
from certtrack.modules.certificates.schemas import FuzzyMatch, MigrationError, MigrationReport
from certtrack.modules.courses.models import Course
from certtrack.modules.courses.repository import CourseRepository
from certtrack.modules.quiz_scores.models import QuizScore
from certtrack.modules.quiz_scores.repository import QuizScoreRepository
from certtrack.modules.users.models import User
from certtrack.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class MatchStrategy(str, enum.Enum):
    """How a legacy score was tied to a holder or credential."""

    RELATION = "relation"
    EMAIL = "email"
    USERNAME = "username"
    EXACT_TITLE = "exact_title"
    CASE_INSENSITIVE_TITLE = "case_insensitive_title"
    SUBSTRING_TITLE = "substring_title"


@dataclass(frozen=True)
class HolderIndex:
    """Lookup tables over all users."""

    by_id: dict[int, User]
    by_email: dict[str, User]
    by_username: dict[str, User]

    @classmethod
    def build(cls, users: list[User]) -> "HolderIndex":
        by_email = {}
        for user in users:
            if user.email:
                by_email.setdefault(user.email.strip().lower(), user)
        return cls(
            by_id={user.id: user for user in users},
            by_email=by_email,
            by_username={user.username: user for user in users},
        )


def resolve_holder(
    score: QuizScore, index: HolderIndex
) -> tuple[User | None, MatchStrategy | None]:
    """Resolve by relation, then email (ignoring case), then exact username."""
    if score.user_id is not None and score.user_id in index.by_id:
        return index.by_id[score.user_id], MatchStrategy.RELATION

    if score.email:
        user = index.by_email.get(score.email.strip().lower())
        if user is not None:
            return user, MatchStrategy.EMAIL

    if score.username:
        user = index.by_username.get(score.username)
        if user is not None:
            return user, MatchStrategy.USERNAME

    return None, None


def resolve_credential(
    score: QuizScore, courses: list[Course]
) -> tuple[Course | None, MatchStrategy | None]:
    """
    Resolve by relation, then title: exact, ignoring case, then substring.

    ``courses`` must be ordered by id; the first substring match wins.
    """
    if score.course_id is not None:
        for course in courses:
            if course.id == score.course_id:
                return course, MatchStrategy.RELATION

    title = (score.course_title or "").strip()
    if not title:
        return None, None

    for course in courses:
        if course.title == title:
            return course, MatchStrategy.EXACT_TITLE

    lowered = title.lower()
    for course in courses:
        if course.title and course.title.lower() == lowered:
            return course, MatchStrategy.CASE_INSENSITIVE_TITLE

    for course in courses:
        if not course.title:
            continue
        candidate = course.title.lower()
        if lowered in candidate or candidate in lowered:
            return course, MatchStrategy.SUBSTRING_TITLE

    return None, None


@dataclass(frozen=True)
class PlannedCertificate:
    quiz_score_id: int
    user_id: int
    course_id: int
    username: str | None
    course_title: str | None
    percentage: float
    issued_date: date


@dataclass(frozen=True)
class PlannedRelink:
    quiz_score_id: int
    user_id: int
    course_id: int
    username: str | None
    course_title: str | None


@dataclass
class MigrationPlan:
    certificates: list[PlannedCertificate] = field(default_factory=list)
    relinks: list[PlannedRelink] = field(default_factory=list)


def plan_migration(
    scores: list[QuizScore],
    users: list[User],
    courses: list[Course],
    pass_threshold: float,
    report: MigrationReport,
    today: date,
) -> MigrationPlan:
    """
    Decide which certificates to create and which scores to relink.

    Skip counts, strategy counts and fuzzy matches are recorded on ``report``.
    """
    holders = HolderIndex.build(users)
    strategies: Counter[str] = Counter()
    best: dict[tuple[int, int], PlannedCertificate] = {}
    plan = MigrationPlan()

    for score in scores:
        percentage = score.percentage
        if percentage < pass_threshold:
            report.skipped_not_passing += 1
            continue

        user, holder_strategy = resolve_holder(score, holders)
        if user is None:
            logger.warning(f"No holder found for quiz score {score.id} ({score.username})")
            report.skipped_no_holder += 1
            continue

        course, credential_strategy = resolve_credential(score, courses)
        if course is None:
            logger.warning(f"No course found for quiz score {score.id} ({score.course_title!r})")
            report.skipped_no_credential += 1
            continue

        strategies[f"holder:{holder_strategy.value}"] += 1
        strategies[f"credential:{credential_strategy.value}"] += 1

        if credential_strategy is MatchStrategy.SUBSTRING_TITLE:
            logger.warning(
                f"Fuzzy course match for quiz score {score.id}: "
                f"{score.course_title!r} -> {course.title!r} (course {course.id})"
            )
            report.fuzzy_matches.append(
                FuzzyMatch(
                    quiz_score_id=score.id,
                    course_title=score.course_title,
                    matched_course_id=course.id,
                    matched_course_title=course.title,
                )
            )

        if (
            holder_strategy is not MatchStrategy.RELATION
            or credential_strategy is not MatchStrategy.RELATION
        ):
            plan.relinks.append(
                PlannedRelink(
                    quiz_score_id=score.id,
                    user_id=user.id,
                    course_id=course.id,
                    username=score.username,
                    course_title=score.course_title,
                )
            )

        # The passing attempt is recorded on the latest update of the score row
        recorded_at = score.updated_at or score.created_at
        issued = recorded_at.date() if recorded_at else today
        candidate = PlannedCertificate(
            quiz_score_id=score.id,
            user_id=user.id,
            course_id=course.id,
            username=score.username,
            course_title=score.course_title,
            percentage=percentage,
            issued_date=issued,
        )
        key = (user.id, course.id)
        if key not in best or candidate.percentage > best[key].percentage:
            best[key] = candidate

    plan.certificates = list(best.values())
    report.match_strategies = dict(strategies)
    return plan


async def migrate_quiz_scores(
    db: AsyncSession,
    pass_threshold: float,
    today: date,
    validity_years: int = 1,
) -> MigrationReport:
    """
    Issue certificates for passing quiz scores.

    Args:
        db: Database session
        pass_threshold: Minimum percentage that counts as passing
        today: Date used to derive each new certificate's status
        validity_years: Years from issue to expiry

    Returns:
        MigrationReport with counts, errors and fuzzy matches
    """
    report = MigrationReport()

    scores = await QuizScoreRepository.list_all(db)
    users = await UserRepository.list_all(db)
    courses = await CourseRepository.list_all(db)
    existing = await CertificateRepository.existing_keys(db)

    logger.info(
        f"Migrating {len(scores)} quiz scores "
        f"({len(existing)} certificates already exist, threshold {pass_threshold}%)"
    )

    plan = plan_migration(scores, users, courses, pass_threshold, report, today)

    for relink in plan.relinks:
        try:
            await QuizScoreRepository.link(
                db,
                relink.quiz_score_id,
                user_id=relink.user_id,
                course_id=relink.course_id,
                is_passing=True,
            )
            await db.commit()
            report.relinked += 1
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to relink quiz score {relink.quiz_score_id}: {e}")
            report.errors.append(
                MigrationError(
                    quiz_score_id=relink.quiz_score_id,
                    username=relink.username,
                    course_title=relink.course_title,
                    reason=f"relink failed: {e}",
                )
            )

    for planned in plan.certificates:
        report.processed += 1

        key = (planned.user_id, planned.course_id)
        if key in existing:
            report.skipped_exists += 1
            continue

        expiry = add_years(planned.issued_date, validity_years)
        try:
            await CertificateRepository.create(
                db,
                user_id=planned.user_id,
                course_id=planned.course_id,
                quiz_score_id=planned.quiz_score_id,
                issued_date=planned.issued_date,
                expiry_date=expiry,
                status=derive_status(expiry, today),
            )
            existing.add(key)
            report.created += 1
        except Exception as e:
            await db.rollback()
            logger.error(
                f"Failed to create certificate for quiz score {planned.quiz_score_id}: {e}"
            )
            report.errors.append(
                MigrationError(
                    quiz_score_id=planned.quiz_score_id,
                    username=planned.username,
                    course_title=planned.course_title,
                    reason=str(e),
                )
            )

    logger.info(report.message)
    return report
