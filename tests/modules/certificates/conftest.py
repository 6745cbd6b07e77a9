"""
Fixtures for certificates tests.

In-memory fakes for the lifecycle engine's collaborators, a snapshot
factory, and a throwaway SQLite database for the SQL store and migration.
"""

import dataclasses
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from certtrack.core.database import Base
from certtrack.modules.certificates.contracts import (
    CertificateFilter,
    CertificatePatch,
    CertificateSnapshot,
    CredentialRef,
    HolderRef,
)
from certtrack.modules.certificates.engine import LifecycleEngine
from certtrack.modules.certificates.models import CertificateStatus, Milestone

# Registers every table on Base.metadata
from certtrack.modules.certificates.models import UserCertificate  # noqa: F401
from certtrack.modules.courses.models import Course  # noqa: F401
from certtrack.modules.quiz_scores.models import QuizScore  # noqa: F401
from certtrack.modules.users.models import User  # noqa: F401

ADMIN_EMAIL = "admin@example.com"
RENEWAL_BASE_URL = "https://learn.example.com"

_UNSET = object()


# ============================================
# Fakes
# ============================================


class FakeCertificateStore:
    """Dict-backed store with the same update rules as the SQL store."""

    def __init__(self, snapshots=()):
        self.records: dict[int, CertificateSnapshot] = {s.id: s for s in snapshots}
        self.updates: list[tuple[int, CertificatePatch]] = []

    async def find_many(self, criteria: CertificateFilter) -> list[CertificateSnapshot]:
        results = []
        for snapshot in sorted(self.records.values(), key=lambda s: s.id):
            if criteria.expiry_date_eq is not None and (
                snapshot.expiry_date != criteria.expiry_date_eq
            ):
                continue
            if criteria.expiry_date_lt is not None and not (
                snapshot.expiry_date < criteria.expiry_date_lt
            ):
                continue
            if criteria.status_eq is not None and snapshot.status != criteria.status_eq:
                continue
            if criteria.status_ne is not None and snapshot.status == criteria.status_ne:
                continue
            if criteria.holder_email is not None:
                email = (snapshot.holder.email or "") if snapshot.holder else ""
                if email.lower() != criteria.holder_email.lower():
                    continue
            results.append(snapshot)
        return results

    async def get_one(self, certificate_id: int) -> CertificateSnapshot | None:
        return self.records.get(certificate_id)

    async def update_one(self, certificate_id: int, patch: CertificatePatch) -> bool:
        self.updates.append((certificate_id, patch))
        current = self.records.get(certificate_id)
        if current is None:
            return False

        tags = set(current.notifications_sent)
        if patch.add_notification is not None:
            tags.add(patch.add_notification)

        status = current.status
        if patch.status is not None and current.status.can_move_to(patch.status):
            status = patch.status

        if tags == set(current.notifications_sent) and status == current.status:
            return False

        self.records[certificate_id] = dataclasses.replace(
            current, notifications_sent=frozenset(tags), status=status
        )
        return True


class FakeNotifier:
    """Records sent emails; can be told to fail or raise for given recipients."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    async def send(self, to: str, subject: str, html: str) -> bool:
        if to in self.raise_for:
            raise ConnectionError("mail provider unreachable")
        if to in self.fail_for:
            return False
        self.sent.append((to, subject, html))
        return True

    def recipients(self) -> list[str]:
        return [to for to, _, _ in self.sent]


class FakeAccessRevoker:
    def __init__(self):
        self.calls: list[tuple[int, int]] = []
        self.error: Exception | None = None

    async def revoke(self, holder_id: int, credential_id: int) -> None:
        if self.error is not None:
            raise self.error
        self.calls.append((holder_id, credential_id))


# ============================================
# Fixtures
# ============================================


@pytest.fixture
def today():
    return date(2026, 3, 10)


@pytest.fixture
def make_snapshot(today):
    """Factory for certificate snapshots expiring ``days`` from today."""

    def _make(
        certificate_id: int = 1,
        *,
        days: int = 100,
        status: CertificateStatus = CertificateStatus.ACTIVE,
        notified: tuple[Milestone, ...] = (),
        holder=_UNSET,
        credential=_UNSET,
    ) -> CertificateSnapshot:
        if holder is _UNSET:
            holder = HolderRef(
                id=certificate_id * 10,
                username=f"student{certificate_id}",
                email=f"student{certificate_id}@example.com",
                first_name="Ada",
            )
        if credential is _UNSET:
            credential = CredentialRef(id=certificate_id * 100, title="Python Basics")
        expiry = today + timedelta(days=days)
        return CertificateSnapshot(
            id=certificate_id,
            holder=holder,
            credential=credential,
            issued_date=expiry - timedelta(days=365),
            expiry_date=expiry,
            status=status,
            notifications_sent=frozenset(notified),
        )

    return _make


@pytest.fixture
def store():
    return FakeCertificateStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def revoker():
    return FakeAccessRevoker()


@pytest.fixture
def engine(store, notifier, revoker):
    return LifecycleEngine(
        store=store,
        notifier=notifier,
        revoker=revoker,
        admin_email=ADMIN_EMAIL,
        renewal_base_url=RENEWAL_BASE_URL,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database with all tables."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'certificates.db'}")
    async with db_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    await db_engine.dispose()
