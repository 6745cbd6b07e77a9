"""
Certificates Background Jobs

Scheduled daily lifecycle pass (reminders, expiry, expired backfill).

Design Principles:
- The pass is idempotent; running it twice on the same day sends nothing new
- The job builds its own engine and database sessions
- A Redis advisory lock keeps overlapping runs from doing duplicate work,
  but correctness never depends on it: without Redis the job still runs

Schedule:
- Once a day at the configured UTC time (15:15 by default)
- Can also be triggered manually via the debug endpoints or the
  GET /certificates/lifecycle/run endpoint
"""

import logging
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from certtrack.core.config import settings
from certtrack.core.redis import advisory_lock
from certtrack.core.scheduler import register_job
from certtrack.modules.certificates import service

logger = logging.getLogger(__name__)

# Job ID for registration and manual triggering
JOB_ID_LIFECYCLE_PASS = "certificates_lifecycle_pass"

LIFECYCLE_LOCK_KEY = "lock:certificates:lifecycle"


async def run_lifecycle_job() -> dict[str, Any]:
    """
    Run one lifecycle pass under the advisory lock.

    Returns:
        Dict with status ("completed" or "skipped") and, when completed,
        the pass report
    """
    async with advisory_lock(LIFECYCLE_LOCK_KEY, settings.lifecycle_lock_ttl_seconds) as acquired:
        if not acquired:
            logger.info("Another lifecycle pass is running, skipping this one")
            return {"status": "skipped", "reason": "lock_held"}

        engine = service.build_engine()
        report = await service.run_lifecycle_pass(engine)

    return {"status": "completed", "report": report.model_dump(mode="json")}


def register_certificate_jobs() -> None:
    """
    Register the certificate lifecycle job with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    trigger = CronTrigger(
        hour=settings.lifecycle_cron_hour,
        minute=settings.lifecycle_cron_minute,
        timezone="UTC",
    )
    register_job(
        job_id=JOB_ID_LIFECYCLE_PASS,
        func=run_lifecycle_job,
        trigger=trigger,
    )
    logger.info(
        f"Registered job: {JOB_ID_LIFECYCLE_PASS} "
        f"(daily at {settings.lifecycle_cron_hour:02d}:{settings.lifecycle_cron_minute:02d} UTC)"
    )
