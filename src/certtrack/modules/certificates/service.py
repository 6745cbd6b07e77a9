"""
Certificates Service Layer

Wires the lifecycle engine to its production collaborators and exposes the
operations the router and the scheduled job call:

1. Lifecycle pass: run all stages for today (UTC)
2. Holder check: run the lifecycle for one holder, looked up by email
3. Migration: issue certificates for passing quiz scores
"""

import logging
from datetime import UTC, date, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certtrack.core.config import settings
from certtrack.core.database import async_session_maker
from certtrack.core.email import ResendNotifier
from certtrack.modules.certificates.engine import LifecycleEngine
from certtrack.modules.certificates.migration import migrate_quiz_scores
from certtrack.modules.certificates.schemas import (
    HolderCheckReport,
    LifecyclePassReport,
    MigrationReport,
)
from certtrack.modules.certificates.store import SqlAccessRevoker, SqlCertificateStore
from certtrack.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class CertificateServiceError(Exception):
    """Base exception for certificate service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class HolderNotFoundError(CertificateServiceError):
    """Raised when no user has the given email address."""

    def __init__(self, email: str):
        super().__init__(
            message=f"No user found with email {email}",
            error_code="HOLDER_NOT_FOUND",
            status_code=404,
        )


def utc_today() -> date:
    return datetime.now(UTC).date()


def build_engine(
    session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
) -> LifecycleEngine:
    """Lifecycle engine backed by the database and Resend."""
    return LifecycleEngine(
        store=SqlCertificateStore(session_factory),
        notifier=ResendNotifier(),
        revoker=SqlAccessRevoker(session_factory),
        admin_email=settings.admin_email,
        renewal_base_url=settings.renewal_base_url,
    )


def get_lifecycle_engine() -> LifecycleEngine:
    """FastAPI dependency returning the production engine."""
    return build_engine()


async def run_lifecycle_pass(
    engine: LifecycleEngine,
    today: date | None = None,
) -> LifecyclePassReport:
    """Run one lifecycle pass for ``today`` (UTC date when omitted)."""
    return await engine.run_pass(today or utc_today())


async def check_holder(
    db: AsyncSession,
    engine: LifecycleEngine,
    email: str,
    today: date | None = None,
) -> HolderCheckReport:
    """
    Run the lifecycle for every certificate held by the user with ``email``.

    Raises:
        HolderNotFoundError: If no user has that email address
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        raise HolderNotFoundError(email)

    logger.info(f"Running certificate check for user {user.id}")
    return await engine.check_holder(email, today or utc_today())


async def migrate_certificates(
    db: AsyncSession,
    today: date | None = None,
) -> MigrationReport:
    """Issue certificates for passing quiz scores using the configured threshold."""
    return await migrate_quiz_scores(
        db,
        pass_threshold=settings.pass_threshold_percent,
        today=today or utc_today(),
        validity_years=settings.certificate_validity_years,
    )
