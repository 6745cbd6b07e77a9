"""
Certificates Module

Handles the certificate lifecycle:
1. Expiry reminders 30, 7 and 1 days before the expiry date
2. Expiry: course access is revoked and the holder is notified
3. Backfill of expiry notices that were never delivered
4. One-time migration of passing quiz scores into certificates

API Endpoints:
- GET /certificates/lifecycle/run - Run one lifecycle pass now
- POST /certificates/check-user - Run the lifecycle for one holder
- POST /certificates/migrate - Issue certificates from quiz scores

Guarantees:
- Each milestone is sent at most once per certificate
- The expiry notice is sent at least once (retried on every pass until delivered)
- Status only moves forward: active, expiring_soon, expired

Background Jobs (via APScheduler):
- certificates_lifecycle_pass: Runs daily at 15:15 UTC by default
"""

from .jobs import register_certificate_jobs
from .router import router

__all__ = ["router", "register_certificate_jobs"]
