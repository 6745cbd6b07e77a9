"""
Certificate Store (SQLAlchemy)

Production implementations of the ``CertificateStore`` and
``AccessRevoker`` contracts. Each operation opens its own session from the
session factory, so an engine pass never holds a transaction open across an
email send.
"""

import logging

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certtrack.core.database import async_session_maker
from certtrack.modules.certificates.contracts import (
    CertificateFilter,
    CertificatePatch,
    CertificateSnapshot,
    CredentialRef,
    HolderRef,
)
from certtrack.modules.certificates.helpers import (
    merge_notification_tag,
    parse_notification_tags,
)
from certtrack.modules.certificates.models import UserCertificate
from certtrack.modules.courses.models import Course
from certtrack.modules.courses.repository import CourseRepository
from certtrack.modules.users.models import User

logger = logging.getLogger(__name__)


def to_snapshot(
    certificate: UserCertificate,
    user: User | None,
    course: Course | None,
) -> CertificateSnapshot:
    """Build the immutable engine view of a certificate row and its relations."""
    holder = None
    if user is not None:
        holder = HolderRef(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
        )

    credential = CredentialRef(id=course.id, title=course.title) if course is not None else None

    return CertificateSnapshot(
        id=certificate.id,
        holder=holder,
        credential=credential,
        issued_date=certificate.issued_date,
        expiry_date=certificate.expiry_date,
        status=certificate.status,
        notifications_sent=parse_notification_tags(
            certificate.notifications_sent, certificate.id
        ),
    )


def _snapshot_query() -> Select:
    return (
        select(UserCertificate, User, Course)
        .outerjoin(User, UserCertificate.user_id == User.id)
        .outerjoin(Course, UserCertificate.course_id == Course.id)
    )


def _apply_filter(query: Select, criteria: CertificateFilter) -> Select:
    if criteria.expiry_date_eq is not None:
        query = query.where(UserCertificate.expiry_date == criteria.expiry_date_eq)
    if criteria.expiry_date_lt is not None:
        query = query.where(UserCertificate.expiry_date < criteria.expiry_date_lt)
    if criteria.status_eq is not None:
        query = query.where(UserCertificate.status == criteria.status_eq)
    if criteria.status_ne is not None:
        query = query.where(UserCertificate.status != criteria.status_ne)
    if criteria.holder_email is not None:
        query = query.where(func.lower(User.email) == criteria.holder_email.strip().lower())
    return query


class SqlCertificateStore:
    """Certificate store backed by the ``user_certificates`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    async def find_many(self, criteria: CertificateFilter) -> list[CertificateSnapshot]:
        query = _apply_filter(_snapshot_query(), criteria).order_by(UserCertificate.id)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [to_snapshot(cert, user, course) for cert, user, course in result.all()]

    async def get_one(self, certificate_id: int) -> CertificateSnapshot | None:
        query = _snapshot_query().where(UserCertificate.id == certificate_id)
        async with self._session_factory() as db:
            row = (await db.execute(query)).first()
            if row is None:
                return None
            cert, user, course = row
            return to_snapshot(cert, user, course)

    async def update_one(self, certificate_id: int, patch: CertificatePatch) -> bool:
        """
        Apply a patch to one certificate under a row lock.

        The milestone tag is merged into the stored list, and a status that
        would move the certificate backwards is ignored.

        Returns:
            True if the stored record changed, False otherwise
        """
        if patch.is_empty:
            return False

        async with self._session_factory() as db:
            result = await db.execute(
                select(UserCertificate)
                .where(UserCertificate.id == certificate_id)
                .with_for_update()
            )
            certificate = result.scalar_one_or_none()
            if certificate is None:
                logger.warning(f"Certificate {certificate_id} not found for update")
                return False

            changed = False

            if patch.add_notification is not None:
                tags = merge_notification_tag(
                    certificate.notifications_sent, patch.add_notification
                )
                if tags != list(certificate.notifications_sent or []):
                    certificate.notifications_sent = tags
                    changed = True

            if patch.status is not None and patch.status != certificate.status:
                if certificate.status.can_move_to(patch.status):
                    certificate.status = patch.status
                    changed = True
                else:
                    logger.warning(
                        f"Refusing to move certificate {certificate_id} from "
                        f"{certificate.status.value} back to {patch.status.value}"
                    )

            if changed:
                await db.commit()
            else:
                await db.rollback()
            return changed


class SqlAccessRevoker:
    """Revokes course access by deleting the enrollment row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    async def revoke(self, holder_id: int, credential_id: int) -> None:
        async with self._session_factory() as db:
            await CourseRepository.revoke_access(db, holder_id, credential_id)
