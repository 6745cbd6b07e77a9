"""
Tests for the scheduled certificate lifecycle job.

These tests verify:
- The job runs a pass and returns its report
- The job skips when another run holds the lock
- The job runs without Redis
- The job is registered on the configured daily schedule
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from certtrack.core import scheduler
from certtrack.modules.certificates import jobs
from certtrack.modules.certificates.jobs import (
    JOB_ID_LIFECYCLE_PASS,
    LIFECYCLE_LOCK_KEY,
    register_certificate_jobs,
    run_lifecycle_job,
)
from certtrack.modules.certificates.schemas import LifecyclePassReport


@pytest.fixture
def pass_report():
    return LifecyclePassReport(run_date=date(2026, 3, 10), emails_sent=2, records_updated=3)


@pytest.fixture
def mock_service(pass_report):
    """Patch the service so the job never touches the database or Resend."""
    with (
        patch.object(jobs.service, "build_engine", MagicMock()) as build_engine,
        patch.object(
            jobs.service, "run_lifecycle_pass", AsyncMock(return_value=pass_report)
        ) as run_pass,
    ):
        yield build_engine, run_pass


@pytest.fixture
def mock_redis():
    """Create a mock Redis client that grants the lock."""
    redis = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.eval = AsyncMock(return_value=1)
    return redis


class TestRunLifecycleJob:
    """Tests for run_lifecycle_job."""

    @pytest.mark.asyncio
    async def test_completed_run_returns_report(self, mock_service, mock_redis):
        """A run that takes the lock returns the serialized pass report."""
        build_engine, run_pass = mock_service

        with patch("certtrack.core.redis.redis_client", mock_redis):
            result = await run_lifecycle_job()

        assert result["status"] == "completed"
        assert result["report"]["run_date"] == "2026-03-10"
        assert result["report"]["emails_sent"] == 2
        run_pass.assert_awaited_once_with(build_engine.return_value)

        key = mock_redis.set.call_args.args[0]
        assert key == LIFECYCLE_LOCK_KEY
        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skips_when_lock_is_held(self, mock_service, mock_redis):
        """A second overlapping run does nothing."""
        _, run_pass = mock_service
        mock_redis.set = AsyncMock(return_value=None)

        with patch("certtrack.core.redis.redis_client", mock_redis):
            result = await run_lifecycle_job()

        assert result == {"status": "skipped", "reason": "lock_held"}
        run_pass.assert_not_awaited()
        mock_redis.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_runs_without_redis(self, mock_service):
        """Without Redis the pass still runs."""
        _, run_pass = mock_service

        with patch("certtrack.core.redis.redis_client", None):
            result = await run_lifecycle_job()

        assert result["status"] == "completed"
        run_pass.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_is_released_when_pass_fails(self, mock_service, mock_redis):
        _, run_pass = mock_service
        run_pass.side_effect = RuntimeError("database unavailable")

        with patch("certtrack.core.redis.redis_client", mock_redis):
            with pytest.raises(RuntimeError):
                await run_lifecycle_job()

        mock_redis.eval.assert_awaited_once()


class TestRegisterCertificateJobs:
    """Tests for register_certificate_jobs."""

    @pytest.fixture(autouse=True)
    def clean_registry(self):
        saved = dict(scheduler._job_registry)
        scheduler._job_registry.clear()
        yield
        scheduler._job_registry.clear()
        scheduler._job_registry.update(saved)

    def test_registers_daily_utc_trigger(self):
        register_certificate_jobs()

        job = scheduler._job_registry[JOB_ID_LIFECYCLE_PASS]
        assert job.func is run_lifecycle_job
        trigger = str(job.trigger)
        assert "hour='15'" in trigger
        assert "minute='15'" in trigger
