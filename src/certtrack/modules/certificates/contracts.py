"""
Certificate Lifecycle Contracts

Value types the lifecycle engine works on and the interfaces of its three
collaborators: the record store, the notifier and the access revoker.
Production implementations live in ``store.py`` and ``certtrack.core.email``;
tests substitute in-memory fakes.
"""

from dataclasses import dataclass
from datetime import date
from typing import Protocol

from certtrack.modules.certificates.models import CertificateStatus, Milestone


@dataclass(frozen=True)
class HolderRef:
    """The person a certificate was issued to."""

    id: int
    username: str
    email: str | None = None
    first_name: str | None = None


@dataclass(frozen=True)
class CredentialRef:
    """The course a certificate attests to."""

    id: int
    title: str | None = None


@dataclass(frozen=True)
class CertificateSnapshot:
    """Immutable view of a certificate as read from the store."""

    id: int
    holder: HolderRef | None
    credential: CredentialRef | None
    issued_date: date
    expiry_date: date
    status: CertificateStatus
    notifications_sent: frozenset[Milestone] = frozenset()

    def has_notified(self, milestone: Milestone) -> bool:
        return milestone in self.notifications_sent


@dataclass(frozen=True)
class CertificateFilter:
    """
    Predicate for ``CertificateStore.find_many``.

    Every field that is set must match; unset fields are ignored.
    """

    expiry_date_eq: date | None = None
    expiry_date_lt: date | None = None
    status_eq: CertificateStatus | None = None
    status_ne: CertificateStatus | None = None
    holder_email: str | None = None


@dataclass(frozen=True)
class CertificatePatch:
    """
    Single-record update applied atomically by ``CertificateStore.update_one``.

    ``add_notification`` is merged into the stored tags (never replaces them);
    ``status`` is ignored if it would move the certificate backwards.
    """

    status: CertificateStatus | None = None
    add_notification: Milestone | None = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and self.add_notification is None


class CertificateStore(Protocol):
    """Persistence for certificate records."""

    async def find_many(self, criteria: CertificateFilter) -> list[CertificateSnapshot]: ...

    async def get_one(self, certificate_id: int) -> CertificateSnapshot | None: ...

    async def update_one(self, certificate_id: int, patch: CertificatePatch) -> bool: ...


class Notifier(Protocol):
    """Email delivery. Returns False (or raises) on a transient failure."""

    async def send(self, to: str, subject: str, html: str) -> bool: ...


class AccessRevoker(Protocol):
    """Removes a holder's access to a course. Must be safe to repeat."""

    async def revoke(self, holder_id: int, credential_id: int) -> None: ...

