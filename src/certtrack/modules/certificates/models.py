"""
Certificate Models

Database model for user certificates plus the enums that drive the
certificate lifecycle: the status state machine and the closed set of
notification milestones.
"""

import enum
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from certtrack.core.database import Base


class CertificateStatus(str, enum.Enum):
    """Lifecycle status of a certificate. Only ever moves forward."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def can_move_to(self, new_status: "CertificateStatus") -> bool:
        """True when ``new_status`` is this status or a later one."""
        return new_status.rank >= self.rank


_STATUS_ORDER = [
    CertificateStatus.ACTIVE,
    CertificateStatus.EXPIRING_SOON,
    CertificateStatus.EXPIRED,
]


class UnsupportedMilestoneError(ValueError):
    """Raised when a milestone tag outside the known set is used."""

    def __init__(self, tag: object):
        self.tag = tag
        super().__init__(
            f"Unsupported milestone: {tag!r}. Valid milestones: {[m.value for m in Milestone]}"
        )


class Milestone(str, enum.Enum):
    """
    Notification milestones. Each is sent at most once per certificate.

    The three upcoming milestones fire a fixed number of days before the
    expiry date; EXPIRED fires once the certificate has expired.
    """

    THIRTY_DAY = "30-day"
    SEVEN_DAY = "7-day"
    ONE_DAY = "1-day"
    EXPIRED = "expired"

    @property
    def offset_days(self) -> int | None:
        """Days before expiry this milestone fires, None for EXPIRED."""
        return _MILESTONE_OFFSETS.get(self)

    @classmethod
    def parse(cls, tag: "str | Milestone") -> "Milestone":
        """
        Convert a stored tag into a Milestone.

        Raises:
            UnsupportedMilestoneError: If the tag is not a known milestone
        """
        if isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError as e:
            raise UnsupportedMilestoneError(tag) from e

    @classmethod
    def for_offset(cls, days: int) -> "Milestone | None":
        """Upcoming milestone that fires ``days`` before expiry, if any."""
        for milestone, offset in _MILESTONE_OFFSETS.items():
            if offset == days:
                return milestone
        return None


_MILESTONE_OFFSETS: dict[Milestone, int] = {
    Milestone.THIRTY_DAY: 30,
    Milestone.SEVEN_DAY: 7,
    Milestone.ONE_DAY: 1,
}

# Processing order for upcoming-expiry reminders
UPCOMING_MILESTONES: tuple[Milestone, ...] = (
    Milestone.THIRTY_DAY,
    Milestone.SEVEN_DAY,
    Milestone.ONE_DAY,
)

# Reminders at or inside this many days also move the certificate to EXPIRING_SOON
EXPIRING_SOON_THRESHOLD_DAYS = 7


class UserCertificate(Base):
    """
    A certificate issued to a user for a course.

    ``notifications_sent`` is an append-only list of milestone tags. A tag is
    written only after both the holder and administrator emails for that
    milestone were delivered.
    """

    __tablename__ = "user_certificates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Relations (nullable while legacy data is being migrated)
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    course_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True
    )
    quiz_score_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("quiz_scores.id", ondelete="SET NULL"), nullable=True
    )

    # Validity window (calendar dates, no time component)
    issued_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Lifecycle
    status: Mapped[CertificateStatus] = mapped_column(
        Enum(
            CertificateStatus,
            name="certificate_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=CertificateStatus.ACTIVE,
    )
    notifications_sent: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Indexes for the lifecycle queries
    __table_args__ = (
        Index("ix_user_certificates_expiry_date", "expiry_date"),
        Index("ix_user_certificates_status", "status"),
        Index("ix_user_certificates_user_course", "user_id", "course_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserCertificate(id={self.id}, status={self.status.value}, "
            f"expiry_date={self.expiry_date})>"
        )
