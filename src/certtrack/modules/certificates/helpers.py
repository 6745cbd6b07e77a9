"""
Certificate Shared Helpers

Date arithmetic and tag handling used by the lifecycle engine, the store
and the quiz-score migration.
"""

import logging
from collections.abc import Iterable
from datetime import date

from certtrack.modules.certificates.models import (
    EXPIRING_SOON_THRESHOLD_DAYS,
    CertificateStatus,
    Milestone,
    UnsupportedMilestoneError,
)

logger = logging.getLogger(__name__)


def days_until_expiry(expiry_date: date, today: date) -> int:
    """Whole days from ``today`` to ``expiry_date``. Negative once expired."""
    return (expiry_date - today).days


def derive_status(expiry_date: date, today: date) -> CertificateStatus:
    """
    Status a certificate should have on ``today`` given only its expiry date.

    A certificate is valid through its expiry date and expired from the day
    after. It is EXPIRING_SOON within the final week.
    """
    days = days_until_expiry(expiry_date, today)
    if days < 0:
        return CertificateStatus.EXPIRED
    if days <= EXPIRING_SOON_THRESHOLD_DAYS:
        return CertificateStatus.EXPIRING_SOON
    return CertificateStatus.ACTIVE


def add_years(start: date, years: int) -> date:
    """Same calendar day ``years`` later; Feb 29 becomes Feb 28."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


def parse_notification_tags(
    raw: Iterable[str] | None,
    certificate_id: int | None = None,
) -> frozenset[Milestone]:
    """
    Convert stored tag strings to milestones.

    Unknown tags are skipped with a warning; they stay in storage untouched.
    """
    milestones = set()
    for tag in raw or ():
        try:
            milestones.add(Milestone.parse(tag))
        except UnsupportedMilestoneError:
            logger.warning(
                f"Ignoring unknown notification tag {tag!r} on certificate {certificate_id}"
            )
    return frozenset(milestones)


def merge_notification_tag(raw: list[str] | None, milestone: Milestone) -> list[str]:
    """Stored tag list with ``milestone`` appended if not already present."""
    tags = list(raw or [])
    if milestone.value not in tags:
        tags.append(milestone.value)
    return tags
