"""
Tests for the certificate lifecycle engine.

These tests verify:
- Upcoming-expiry reminders at 30, 7 and 1 days
- The expiry transition and access revocation
- Backfill of expiry notices that were never delivered
- At-most-once delivery per milestone across repeated passes
- Per-certificate and per-stage failure isolation
- The per-holder check
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from certtrack.modules.certificates.contracts import HolderRef
from certtrack.modules.certificates.engine import classify
from certtrack.modules.certificates.models import CertificateStatus, Milestone
from certtrack.modules.certificates.schemas import (
    LifecycleAction,
    LifecycleStage,
    SkipReason,
)

ADMIN_EMAIL = "admin@example.com"


class TestUpcomingReminders:
    """Tests for the 30, 7 and 1 day reminders."""

    @pytest.mark.asyncio
    async def test_seven_day_reminder_marks_expiring_soon(
        self, engine, store, notifier, make_snapshot, today
    ):
        """A certificate 7 days from expiry gets one email pair and moves to expiring_soon."""
        store.records[1] = make_snapshot(1, days=7)

        report = await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.EXPIRING_SOON
        assert record.notifications_sent == {Milestone.SEVEN_DAY}
        assert notifier.recipients() == ["student1@example.com", ADMIN_EMAIL]
        assert report.emails_sent == 1
        assert report.records_updated == 1
        assert report.error_count == 0

    @pytest.mark.asyncio
    async def test_thirty_day_reminder_keeps_active_status(
        self, engine, store, notifier, make_snapshot, today
    ):
        """The 30 day reminder is sent but the certificate stays active."""
        store.records[1] = make_snapshot(1, days=30)

        await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.ACTIVE
        assert record.notifications_sent == {Milestone.THIRTY_DAY}
        assert notifier.sent[0][1] == "Certificate Expiring Soon - 30 Days Remaining"

    @pytest.mark.asyncio
    async def test_one_day_reminder_on_expiring_soon_certificate(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(
            1,
            days=1,
            status=CertificateStatus.EXPIRING_SOON,
            notified=(Milestone.THIRTY_DAY, Milestone.SEVEN_DAY),
        )

        await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.EXPIRING_SOON
        assert Milestone.ONE_DAY in record.notifications_sent
        assert notifier.sent[0][1] == "Final Notice: Certificate Expires Tomorrow!"

    @pytest.mark.asyncio
    async def test_already_notified_milestone_is_not_resent(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(
            1, days=7, status=CertificateStatus.EXPIRING_SOON, notified=(Milestone.SEVEN_DAY,)
        )

        report = await engine.run_pass(today)

        assert notifier.sent == []
        assert store.updates == []
        assert report.emails_sent == 0

    @pytest.mark.asyncio
    async def test_certificate_between_milestones_is_left_alone(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=10)

        report = await engine.run_pass(today)

        assert notifier.sent == []
        assert store.updates == []
        assert report.outcomes == []

    @pytest.mark.asyncio
    async def test_holder_delivery_failure_writes_nothing(
        self, engine, store, notifier, make_snapshot, today
    ):
        """A failed send leaves the tag off so the next pass retries."""
        store.records[1] = make_snapshot(1, days=7)
        notifier.fail_for.add("student1@example.com")

        report = await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.ACTIVE
        assert record.notifications_sent == frozenset()
        assert store.updates == []
        assert notifier.sent == []  # admin email not attempted
        assert report.outcomes[0].reason == SkipReason.DELIVERY_FAILED
        assert report.skipped == 1
        assert report.error_count == 0

    @pytest.mark.asyncio
    async def test_admin_delivery_failure_writes_nothing(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=30)
        notifier.fail_for.add(ADMIN_EMAIL)

        report = await engine.run_pass(today)

        assert store.records[1].notifications_sent == frozenset()
        assert report.outcomes[0].email_sent is False
        assert report.outcomes[0].reason == SkipReason.DELIVERY_FAILED

    @pytest.mark.asyncio
    async def test_notifier_exception_is_a_delivery_failure(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=7)
        notifier.raise_for.add("student1@example.com")

        report = await engine.run_pass(today)

        assert store.records[1].notifications_sent == frozenset()
        assert report.outcomes[0].reason == SkipReason.DELIVERY_FAILED
        assert report.error_count == 0

    @pytest.mark.asyncio
    async def test_holder_without_email_is_skipped(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=7, holder=HolderRef(id=5, username="noemail"))

        report = await engine.run_pass(today)

        assert notifier.sent == []
        assert store.updates == []
        assert report.outcomes[0].reason == SkipReason.MISSING_HOLDER_EMAIL

    @pytest.mark.asyncio
    async def test_missing_credential_is_skipped(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=1, credential=None)

        report = await engine.run_pass(today)

        assert notifier.sent == []
        assert store.records[1].notifications_sent == frozenset()
        assert report.outcomes[0].reason == SkipReason.MISSING_CREDENTIAL

    @pytest.mark.asyncio
    async def test_fresh_read_prevents_duplicate_send(
        self, engine, store, notifier, make_snapshot, today
    ):
        """If another pass tagged the record after the query, nothing is sent."""
        untagged = make_snapshot(1, days=7)
        tagged = make_snapshot(1, days=7, notified=(Milestone.SEVEN_DAY,))
        store.records[1] = untagged
        store.get_one = AsyncMock(return_value=tagged)

        report = await engine.run_pass(today)

        assert notifier.sent == []
        assert store.updates == []
        assert report.outcomes[0].reason == SkipReason.ALREADY_NOTIFIED


class TestExpiryTransition:
    """Tests for certificates past their expiry date."""

    @pytest.mark.asyncio
    async def test_expired_yesterday_is_revoked_notified_and_expired(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-1)

        report = await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.EXPIRED
        assert Milestone.EXPIRED in record.notifications_sent
        assert revoker.calls == [(10, 100)]
        assert notifier.recipients() == ["student1@example.com", ADMIN_EMAIL]
        assert notifier.sent[0][1] == "Your Certificate Has Expired - Re-enroll Now"
        assert report.outcomes[0].action == LifecycleAction.EXPIRE
        assert report.outcomes[0].status_changed is True

    @pytest.mark.asyncio
    async def test_certificate_expiring_today_is_still_valid(
        self, engine, store, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=0, status=CertificateStatus.EXPIRING_SOON)

        await engine.run_pass(today)

        assert store.records[1].status == CertificateStatus.EXPIRING_SOON
        assert revoker.calls == []

    @pytest.mark.asyncio
    async def test_delivery_failure_still_expires_without_tag(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        """Status reflects the date; the tag reflects delivery."""
        store.records[1] = make_snapshot(1, days=-3)
        notifier.fail_for.add("student1@example.com")

        report = await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.EXPIRED
        assert record.notifications_sent == frozenset()
        assert revoker.calls == [(10, 100)]
        assert report.outcomes[0].reason == SkipReason.DELIVERY_FAILED
        # Not retried by the backfill stage of the same pass
        assert len(report.outcomes) == 1

    @pytest.mark.asyncio
    async def test_failed_expiry_notice_is_delivered_by_next_pass(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-3)
        notifier.fail_for.add("student1@example.com")
        await engine.run_pass(today)

        notifier.fail_for.clear()
        report = await engine.run_pass(today)

        assert store.records[1].notifications_sent == {Milestone.EXPIRED}
        assert notifier.recipients() == ["student1@example.com", ADMIN_EMAIL]
        assert report.outcomes[0].action == LifecycleAction.BACKFILL
        assert len(revoker.calls) == 2  # idempotent repeat

    @pytest.mark.asyncio
    async def test_missing_holder_still_expires_without_revoke_or_send(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-1, holder=None)

        report = await engine.run_pass(today)

        record = store.records[1]
        assert record.status == CertificateStatus.EXPIRED
        assert record.notifications_sent == frozenset()
        assert revoker.calls == []
        assert notifier.sent == []
        assert report.outcomes[0].reason == SkipReason.MISSING_HOLDER

    @pytest.mark.asyncio
    async def test_revocation_failure_leaves_record_untouched(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-1)
        store.records[2] = make_snapshot(2, days=7)
        revoker.error = RuntimeError("enrollment service down")

        report = await engine.run_pass(today)

        assert store.records[1].status == CertificateStatus.ACTIVE
        assert store.records[1].notifications_sent == frozenset()
        assert notifier.recipients() == ["student2@example.com", ADMIN_EMAIL]
        assert report.error_count == 1
        assert report.errors[0].certificate_id == 1
        assert report.errors[0].stage == LifecycleStage.EXPIRY
        assert "enrollment service down" in report.errors[0].reason


class TestExpiredBackfill:
    """Tests for expired certificates whose notice was never delivered."""

    @pytest.mark.asyncio
    async def test_migrated_expired_certificate_is_notified_once(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-40, status=CertificateStatus.EXPIRED)

        report = await engine.run_pass(today)

        assert store.records[1].notifications_sent == {Milestone.EXPIRED}
        assert len(notifier.sent) == 2
        assert revoker.calls == [(10, 100)]
        assert report.outcomes[0].action == LifecycleAction.BACKFILL

    @pytest.mark.asyncio
    async def test_notified_expired_certificate_is_ignored(
        self, engine, store, notifier, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(
            1, days=-40, status=CertificateStatus.EXPIRED, notified=(Milestone.EXPIRED,)
        )

        report = await engine.run_pass(today)

        assert notifier.sent == []
        assert revoker.calls == []
        assert report.outcomes == []

    @pytest.mark.asyncio
    async def test_expired_certificate_without_holder_is_skipped(
        self, engine, store, revoker, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-40, status=CertificateStatus.EXPIRED, holder=None)

        report = await engine.run_pass(today)

        assert revoker.calls == []
        assert store.updates == []
        assert report.outcomes[0].reason == SkipReason.MISSING_HOLDER


class TestRepeatedPasses:
    """Tests for idempotence across passes."""

    @pytest.mark.asyncio
    async def test_second_pass_sends_and_writes_nothing(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=30)
        store.records[2] = make_snapshot(2, days=7)
        store.records[3] = make_snapshot(3, days=1)
        store.records[4] = make_snapshot(4, days=-2)
        store.records[5] = make_snapshot(5, days=-90, status=CertificateStatus.EXPIRED)

        first = await engine.run_pass(today)
        sent_after_first = len(notifier.sent)
        updates_after_first = len(store.updates)

        second = await engine.run_pass(today)

        assert first.emails_sent == 5
        assert second.emails_sent == 0
        assert second.records_updated == 0
        assert len(notifier.sent) == sent_after_first
        assert len(store.updates) == updates_after_first

    @pytest.mark.asyncio
    async def test_each_milestone_sent_once_as_days_pass(
        self, engine, store, notifier, make_snapshot, today
    ):
        """Walking a certificate through its final month sends exactly four notices."""
        store.records[1] = make_snapshot(1, days=30)

        for offset in range(0, 33):
            await engine.run_pass(today + timedelta(days=offset))
            await engine.run_pass(today + timedelta(days=offset))

        holder_subjects = [subject for to, subject, _ in notifier.sent if to != ADMIN_EMAIL]
        assert len(holder_subjects) == 4
        assert store.records[1].notifications_sent == set(Milestone)
        assert store.records[1].status == CertificateStatus.EXPIRED


class TestFailureIsolation:
    """Tests that one failure does not stop the rest of the pass."""

    @pytest.mark.asyncio
    async def test_stage_failure_does_not_stop_later_stages(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=-1)
        original_find_many = store.find_many

        async def failing_for_upcoming(criteria):
            if criteria.expiry_date_eq is not None:
                raise RuntimeError("query timeout")
            return await original_find_many(criteria)

        store.find_many = failing_for_upcoming

        report = await engine.run_pass(today)

        assert store.records[1].status == CertificateStatus.EXPIRED
        assert report.errors[0].stage == LifecycleStage.UPCOMING
        assert report.errors[0].certificate_id is None
        assert report.emails_sent == 1

    @pytest.mark.asyncio
    async def test_update_failure_for_one_certificate_is_isolated(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=7)
        store.records[2] = make_snapshot(2, days=7)
        original_update = store.update_one

        async def failing_for_first(certificate_id, patch):
            if certificate_id == 1:
                raise RuntimeError("deadlock detected")
            return await original_update(certificate_id, patch)

        store.update_one = failing_for_first

        report = await engine.run_pass(today)

        assert store.records[2].notifications_sent == {Milestone.SEVEN_DAY}
        assert report.error_count == 1
        assert report.errors[0].certificate_id == 1
        assert report.outcomes[0].reason == SkipReason.ERROR


class TestCheckHolder:
    """Tests for the per-holder check."""

    @pytest.mark.asyncio
    async def test_reports_every_certificate_for_holder(
        self, engine, store, notifier, make_snapshot, today
    ):
        holder = make_snapshot(1).holder
        store.records[1] = make_snapshot(1, days=7, holder=holder)
        store.records[2] = make_snapshot(2, days=100, holder=holder)
        store.records[3] = make_snapshot(
            3, days=-20, status=CertificateStatus.EXPIRED, holder=holder
        )
        store.records[4] = make_snapshot(4, days=7)  # someone else

        report = await engine.check_holder("Student1@Example.com", today)

        assert report.certificates_examined == 3
        by_id = {outcome.certificate_id: outcome for outcome in report.outcomes}
        assert by_id[1].email_sent is True
        assert by_id[1].action == LifecycleAction.REMINDER
        assert by_id[2].email_sent is False
        assert by_id[2].reason == SkipReason.NOT_DUE
        assert by_id[2].days_until_expiry == 100
        assert by_id[3].action == LifecycleAction.BACKFILL
        assert by_id[3].email_sent is True
        assert 4 not in by_id
        assert store.records[4].notifications_sent == frozenset()

    @pytest.mark.asyncio
    async def test_already_notified_certificate_reports_reason(
        self, engine, store, notifier, make_snapshot, today
    ):
        store.records[1] = make_snapshot(1, days=30, notified=(Milestone.THIRTY_DAY,))

        report = await engine.check_holder("student1@example.com", today)

        assert notifier.sent == []
        assert report.outcomes[0].reason == SkipReason.ALREADY_NOTIFIED
        assert report.outcomes[0].milestone == Milestone.THIRTY_DAY

    @pytest.mark.asyncio
    async def test_holder_without_certificates(self, engine, today):
        report = await engine.check_holder("nobody@example.com", today)

        assert report.certificates_examined == 0
        assert report.outcomes == []


class TestClassify:
    """Tests for classify."""

    def test_due_milestones(self, make_snapshot, today):
        assert classify(make_snapshot(days=30), today)[:2] == (
            LifecycleAction.REMINDER,
            Milestone.THIRTY_DAY,
        )
        assert classify(make_snapshot(days=1), today)[:2] == (
            LifecycleAction.REMINDER,
            Milestone.ONE_DAY,
        )

    def test_past_due_not_yet_expired(self, make_snapshot, today):
        assert classify(make_snapshot(days=-1), today) == (
            LifecycleAction.EXPIRE,
            Milestone.EXPIRED,
            None,
        )

    def test_not_due(self, make_snapshot, today):
        assert classify(make_snapshot(days=29), today) == (
            LifecycleAction.NONE,
            None,
            SkipReason.NOT_DUE,
        )
