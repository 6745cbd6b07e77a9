"""
Certificate Lifecycle Engine

Runs the daily lifecycle pass over all certificates:

1. Upcoming-expiry reminders:
   - For each milestone (30, 7, 1 days before expiry), find certificates
     expiring exactly that many days from today
   - Send the holder and administrator emails once per milestone
   - Move ACTIVE certificates to EXPIRING_SOON inside the final week

2. Expiry transition:
   - Find certificates past their expiry date that are not yet EXPIRED
   - Revoke course access, send the expired emails, mark EXPIRED
   - The status transition happens even when delivery fails; only the
     ``expired`` tag depends on delivery

3. Expired backfill:
   - Find EXPIRED certificates whose ``expired`` notification was never
     delivered and retry it. This is the at-least-once path for expiry.

Correctness under overlapping or repeated passes rests on one rule: a
milestone tag is written only after both emails were delivered, and the
record is re-read immediately before sending. Each certificate and each
stage has its own failure boundary, so no single error aborts a pass.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import date, timedelta

from certtrack.modules.certificates.contracts import (
    AccessRevoker,
    CertificateFilter,
    CertificatePatch,
    CertificateSnapshot,
    CertificateStore,
    Notifier,
)
from certtrack.modules.certificates.helpers import days_until_expiry
from certtrack.modules.certificates.models import (
    EXPIRING_SOON_THRESHOLD_DAYS,
    UPCOMING_MILESTONES,
    CertificateStatus,
    Milestone,
)
from certtrack.modules.certificates.schemas import (
    CertificateOutcome,
    HolderCheckReport,
    LifecycleAction,
    LifecyclePassReport,
    LifecycleStage,
    OutcomeReport,
    SkipReason,
)
from certtrack.modules.certificates.templates import render_notification

logger = logging.getLogger(__name__)


def data_quality_issue(snapshot: CertificateSnapshot) -> SkipReason | None:
    """Reason a certificate cannot be notified, or None when it can."""
    if snapshot.holder is None:
        return SkipReason.MISSING_HOLDER
    if snapshot.credential is None:
        return SkipReason.MISSING_CREDENTIAL
    if not snapshot.holder.email:
        return SkipReason.MISSING_HOLDER_EMAIL
    return None


def classify(
    snapshot: CertificateSnapshot, today: date
) -> tuple[LifecycleAction, Milestone | None, SkipReason | None]:
    """
    Decide what is due for a certificate on ``today``.

    Returns:
        (action, milestone, reason) where reason is set only for NONE
    """
    days = days_until_expiry(snapshot.expiry_date, today)

    if snapshot.status == CertificateStatus.EXPIRED:
        if snapshot.has_notified(Milestone.EXPIRED):
            return LifecycleAction.NONE, Milestone.EXPIRED, SkipReason.ALREADY_NOTIFIED
        return LifecycleAction.BACKFILL, Milestone.EXPIRED, None

    if days < 0:
        return LifecycleAction.EXPIRE, Milestone.EXPIRED, None

    milestone = Milestone.for_offset(days)
    if milestone is None:
        return LifecycleAction.NONE, None, SkipReason.NOT_DUE
    if snapshot.has_notified(milestone):
        return LifecycleAction.NONE, milestone, SkipReason.ALREADY_NOTIFIED
    return LifecycleAction.REMINDER, milestone, None


class LifecycleEngine:
    """Applies the certificate lifecycle using injected collaborators."""

    def __init__(
        self,
        store: CertificateStore,
        notifier: Notifier,
        revoker: AccessRevoker,
        admin_email: str,
        renewal_base_url: str,
    ):
        self._store = store
        self._notifier = notifier
        self._revoker = revoker
        self._admin_email = admin_email
        self._renewal_base_url = renewal_base_url

    # ============================================
    # Entry points
    # ============================================

    async def run_pass(self, today: date) -> LifecyclePassReport:
        """Run all three stages for ``today`` and report what happened."""
        report = LifecyclePassReport(run_date=today)
        attempted: set[int] = set()

        logger.info(f"Starting certificate lifecycle pass for {today.isoformat()}")

        await self._run_stage(
            report, LifecycleStage.UPCOMING, lambda: self._upcoming(report, today)
        )
        await self._run_stage(
            report, LifecycleStage.EXPIRY, lambda: self._expiry(report, today, attempted)
        )
        await self._run_stage(
            report, LifecycleStage.BACKFILL, lambda: self._backfill(report, today, attempted)
        )

        logger.info(
            f"Lifecycle pass complete: {report.emails_sent} notified, "
            f"{report.records_updated} updated, {report.skipped} skipped, "
            f"{report.error_count} errors"
        )
        return report

    async def check_holder(self, email: str, today: date) -> HolderCheckReport:
        """
        Run the lifecycle for a single holder's certificates.

        Every certificate found is reported, including those with nothing due.
        """
        report = HolderCheckReport(email=email, run_date=today)

        try:
            certificates = await self._store.find_many(CertificateFilter(holder_email=email))
        except Exception as e:
            logger.error(f"Failed to load certificates for {email}: {e}", exc_info=True)
            report.record_stage_failure(LifecycleStage.CHECK, str(e))
            return report

        report.certificates_examined = len(certificates)

        for snapshot in certificates:
            action, milestone, reason = classify(snapshot, today)
            if action == LifecycleAction.NONE:
                report.record(
                    LifecycleStage.CHECK,
                    CertificateOutcome(
                        certificate_id=snapshot.id,
                        milestone=milestone,
                        action=action,
                        reason=reason,
                        days_until_expiry=days_until_expiry(snapshot.expiry_date, today),
                    ),
                )
                continue
            outcome = await self._process(action, milestone, snapshot, today)
            report.record(LifecycleStage.CHECK, outcome)

        return report

    # ============================================
    # Stages
    # ============================================

    async def _run_stage(
        self,
        report: OutcomeReport,
        stage: LifecycleStage,
        run: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await run()
        except Exception as e:
            logger.error(f"Lifecycle stage '{stage.value}' failed: {e}", exc_info=True)
            report.record_stage_failure(stage, str(e))

    async def _upcoming(self, report: LifecyclePassReport, today: date) -> None:
        for milestone in UPCOMING_MILESTONES:
            target = today + timedelta(days=milestone.offset_days)
            certificates = await self._store.find_many(
                CertificateFilter(expiry_date_eq=target, status_ne=CertificateStatus.EXPIRED)
            )
            due = [c for c in certificates if not c.has_notified(milestone)]
            logger.info(f"Found {len(due)} certificates due for the {milestone.value} reminder")

            for snapshot in due:
                outcome = await self._process(LifecycleAction.REMINDER, milestone, snapshot, today)
                report.record(LifecycleStage.UPCOMING, outcome)

    async def _expiry(self, report: LifecyclePassReport, today: date, attempted: set[int]) -> None:
        certificates = await self._store.find_many(
            CertificateFilter(expiry_date_lt=today, status_ne=CertificateStatus.EXPIRED)
        )
        logger.info(f"Found {len(certificates)} certificates past their expiry date")

        for snapshot in certificates:
            attempted.add(snapshot.id)
            outcome = await self._process(
                LifecycleAction.EXPIRE, Milestone.EXPIRED, snapshot, today
            )
            report.record(LifecycleStage.EXPIRY, outcome)

    async def _backfill(
        self, report: LifecyclePassReport, today: date, attempted: set[int]
    ) -> None:
        certificates = await self._store.find_many(
            CertificateFilter(status_eq=CertificateStatus.EXPIRED)
        )
        pending = [
            c
            for c in certificates
            if not c.has_notified(Milestone.EXPIRED) and c.id not in attempted
        ]
        logger.info(f"Found {len(pending)} expired certificates without an expiry notice")

        for snapshot in pending:
            outcome = await self._process(
                LifecycleAction.BACKFILL, Milestone.EXPIRED, snapshot, today
            )
            report.record(LifecycleStage.BACKFILL, outcome)

    # ============================================
    # Per-certificate processing
    # ============================================

    async def _process(
        self,
        action: LifecycleAction,
        milestone: Milestone,
        snapshot: CertificateSnapshot,
        today: date,
    ) -> CertificateOutcome:
        outcome = CertificateOutcome(
            certificate_id=snapshot.id,
            milestone=milestone,
            action=action,
            days_until_expiry=days_until_expiry(snapshot.expiry_date, today),
        )
        handlers = {
            LifecycleAction.REMINDER: self._remind,
            LifecycleAction.EXPIRE: self._expire,
            LifecycleAction.BACKFILL: self._backfill_one,
        }

        try:
            await handlers[action](snapshot, milestone, outcome)
        except Exception as e:
            logger.error(
                f"Failed to process certificate {snapshot.id} ({action.value}): {e}",
                exc_info=True,
            )
            outcome.reason = SkipReason.ERROR
            outcome.error = str(e) or e.__class__.__name__

        return outcome

    async def _remind(
        self, snapshot: CertificateSnapshot, milestone: Milestone, outcome: CertificateOutcome
    ) -> None:
        issue = data_quality_issue(snapshot)
        if issue is not None:
            self._log_skip(snapshot, milestone, issue)
            outcome.reason = issue
            return

        failure = await self._deliver(snapshot.id, milestone)
        if failure is not None:
            outcome.reason = failure
            return
        outcome.email_sent = True

        new_status = None
        if (
            milestone.offset_days <= EXPIRING_SOON_THRESHOLD_DAYS
            and snapshot.status == CertificateStatus.ACTIVE
        ):
            new_status = CertificateStatus.EXPIRING_SOON

        outcome.record_updated = await self._store.update_one(
            snapshot.id, CertificatePatch(status=new_status, add_notification=milestone)
        )
        outcome.status_changed = outcome.record_updated and new_status is not None
        logger.info(f"Sent {milestone.value} expiry reminder for certificate {snapshot.id}")

    async def _expire(
        self, snapshot: CertificateSnapshot, milestone: Milestone, outcome: CertificateOutcome
    ) -> None:
        issue = data_quality_issue(snapshot)

        if snapshot.holder is not None and snapshot.credential is not None:
            # A raise here leaves the record untouched so the next pass retries
            await self._revoker.revoke(snapshot.holder.id, snapshot.credential.id)

        if issue is None:
            issue = await self._deliver(snapshot.id, milestone)
        else:
            self._log_skip(snapshot, milestone, issue)

        delivered = issue is None
        outcome.email_sent = delivered
        outcome.reason = issue

        outcome.record_updated = await self._store.update_one(
            snapshot.id,
            CertificatePatch(
                status=CertificateStatus.EXPIRED,
                add_notification=milestone if delivered else None,
            ),
        )
        outcome.status_changed = outcome.record_updated
        logger.info(
            f"Expired certificate {snapshot.id} "
            f"({'notified' if delivered else 'notification pending'})"
        )

    async def _backfill_one(
        self, snapshot: CertificateSnapshot, milestone: Milestone, outcome: CertificateOutcome
    ) -> None:
        issue = data_quality_issue(snapshot)
        if issue is not None:
            self._log_skip(snapshot, milestone, issue)
            outcome.reason = issue
            return

        await self._revoker.revoke(snapshot.holder.id, snapshot.credential.id)

        failure = await self._deliver(snapshot.id, milestone)
        if failure is not None:
            outcome.reason = failure
            return
        outcome.email_sent = True

        outcome.record_updated = await self._store.update_one(
            snapshot.id, CertificatePatch(add_notification=milestone)
        )
        logger.info(f"Backfilled expiry notice for certificate {snapshot.id}")

    # ============================================
    # Delivery
    # ============================================

    async def _deliver(self, certificate_id: int, milestone: Milestone) -> SkipReason | None:
        """
        Re-read the certificate and send the holder and admin emails.

        Returns:
            None when both emails were delivered, otherwise the reason not
        """
        fresh = await self._store.get_one(certificate_id)
        if fresh is None:
            raise LookupError(f"Certificate {certificate_id} disappeared before sending")
        if fresh.has_notified(milestone):
            logger.info(
                f"Certificate {certificate_id} already has the {milestone.value} notice, skipping"
            )
            return SkipReason.ALREADY_NOTIFIED

        issue = data_quality_issue(fresh)
        if issue is not None:
            self._log_skip(fresh, milestone, issue)
            return issue

        rendered = render_notification(milestone, fresh, self._renewal_base_url)

        if not await self._send(fresh.holder.email, rendered.holder.subject, rendered.holder.html):
            return SkipReason.DELIVERY_FAILED
        if not await self._send(self._admin_email, rendered.admin.subject, rendered.admin.html):
            return SkipReason.DELIVERY_FAILED
        return None

    async def _send(self, to: str, subject: str, html: str) -> bool:
        try:
            sent = await self._notifier.send(to, subject, html)
        except Exception as e:
            logger.warning(f"Email delivery to {to} raised: {e}")
            return False
        if not sent:
            logger.warning(f"Email delivery to {to} failed: {subject}")
        return bool(sent)

    @staticmethod
    def _log_skip(snapshot: CertificateSnapshot, milestone: Milestone, reason: SkipReason) -> None:
        logger.warning(
            f"Skipping {milestone.value} notice for certificate {snapshot.id}: {reason.value}"
        )
