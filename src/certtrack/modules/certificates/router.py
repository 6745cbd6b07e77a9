"""
Certificates Router

API endpoints for the certificate lifecycle.

Endpoints:
- GET /certificates/lifecycle/run - Run one lifecycle pass now (for external schedulers)
- POST /certificates/check-user - Run the lifecycle for one holder by email
- POST /certificates/migrate - Issue certificates for passing quiz scores
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from certtrack.core.database import get_db
from certtrack.modules.certificates import service
from certtrack.modules.certificates.engine import LifecycleEngine
from certtrack.modules.certificates.schemas import (
    HolderCheckReport,
    HolderCheckRequest,
    LifecyclePassReport,
    MigrationReport,
)
from certtrack.modules.certificates.service import CertificateServiceError, get_lifecycle_engine

logger = logging.getLogger(__name__)

router = APIRouter()


def _internal_error(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get(
    "/lifecycle/run",
    response_model=LifecyclePassReport,
    summary="Run Certificate Lifecycle Pass",
    description="""
Run one full lifecycle pass for today (UTC):

1. Send 30, 7 and 1 day expiry reminders that are due
2. Expire certificates past their expiry date and revoke course access
3. Retry expiry notices that were never delivered

Safe to call repeatedly; a certificate is never notified twice for the same
milestone. Intended for external schedulers.
""",
)
async def run_lifecycle(
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> LifecyclePassReport:
    try:
        return await service.run_lifecycle_pass(engine)
    except Exception as e:
        logger.exception(f"Unexpected error running lifecycle pass: {e}")
        raise _internal_error(e) from e


@router.post(
    "/check-user",
    response_model=HolderCheckReport,
    summary="Check One Holder's Certificates",
    description="""
Run the lifecycle for every certificate held by the user with the given
email address, and report per certificate whether an email was sent or the
reason it was not.
""",
    responses={
        404: {
            "description": "No user with this email",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "HOLDER_NOT_FOUND",
                            "message": "No user found with email student@example.com",
                        }
                    }
                }
            },
        },
    },
)
async def check_user(
    data: HolderCheckRequest,
    db: AsyncSession = Depends(get_db),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> HolderCheckReport:
    try:
        return await service.check_holder(db, engine, data.email)
    except CertificateServiceError as e:
        logger.warning(f"Certificate check failed: {e.message}")
        raise HTTPException(
            status_code=e.status_code,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except Exception as e:
        logger.exception(f"Unexpected error checking certificates: {e}")
        raise _internal_error(e) from e


@router.post(
    "/migrate",
    response_model=MigrationReport,
    summary="Migrate Quiz Scores to Certificates",
    description="""
Issue a certificate for the best passing quiz score of every user and course
pair that does not have one yet. Legacy scores are linked to their user and
course as they are resolved.

The report lists how each score was matched; course matches by title
substring are listed individually under `fuzzy_matches` for review.
""",
)
async def migrate(db: AsyncSession = Depends(get_db)) -> MigrationReport:
    try:
        return await service.migrate_certificates(db)
    except Exception as e:
        logger.exception(f"Unexpected error migrating quiz scores: {e}")
        raise _internal_error(e) from e
