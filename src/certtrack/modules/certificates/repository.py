"""
Certificate Repository

Database operations used when issuing certificates. The lifecycle engine
goes through ``SqlCertificateStore`` instead.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from certtrack.modules.certificates.models import CertificateStatus, UserCertificate


class CertificateRepository:
    """Repository for certificate database operations."""

    @staticmethod
    async def existing_keys(db: AsyncSession) -> set[tuple[int, int]]:
        """(user_id, course_id) pairs that already have a certificate."""
        result = await db.execute(
            select(UserCertificate.user_id, UserCertificate.course_id).where(
                UserCertificate.user_id.is_not(None),
                UserCertificate.course_id.is_not(None),
            )
        )
        return {(user_id, course_id) for user_id, course_id in result.all()}

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: int,
        course_id: int,
        quiz_score_id: int | None,
        issued_date: date,
        expiry_date: date,
        status: CertificateStatus,
    ) -> UserCertificate:
        """
        Issue a certificate with no notifications sent.

        The record is committed before returning.
        """
        certificate = UserCertificate(
            user_id=user_id,
            course_id=course_id,
            quiz_score_id=quiz_score_id,
            issued_date=issued_date,
            expiry_date=expiry_date,
            status=status,
            notifications_sent=[],
        )
        db.add(certificate)
        await db.commit()
        return certificate
