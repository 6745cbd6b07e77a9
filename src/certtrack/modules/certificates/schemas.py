"""
Certificate Schemas

Pydantic schemas for the lifecycle pass, the per-holder check and the
quiz-score migration reports.
"""

import enum
from datetime import date

from pydantic import BaseModel, EmailStr, Field, computed_field

from certtrack.modules.certificates.models import Milestone


class LifecycleAction(str, enum.Enum):
    """What the engine set out to do with a certificate."""

    REMINDER = "reminder"
    EXPIRE = "expire"
    BACKFILL = "backfill"
    NONE = "none"


class SkipReason(str, enum.Enum):
    """Why a certificate was not notified."""

    MISSING_HOLDER = "missing_holder"
    MISSING_CREDENTIAL = "missing_credential"
    MISSING_HOLDER_EMAIL = "missing_holder_email"
    ALREADY_NOTIFIED = "already_notified"
    DELIVERY_FAILED = "delivery_failed"
    NOT_DUE = "not_due"
    ERROR = "error"


class LifecycleStage(str, enum.Enum):
    UPCOMING = "upcoming"
    EXPIRY = "expiry"
    BACKFILL = "backfill"
    CHECK = "check"


class CertificateOutcome(BaseModel):
    """Result of processing one certificate."""

    certificate_id: int
    milestone: Milestone | None = None
    action: LifecycleAction
    email_sent: bool = False
    status_changed: bool = False
    record_updated: bool = False
    reason: SkipReason | None = None
    error: str | None = None
    days_until_expiry: int | None = None


class OutcomeError(BaseModel):
    """An error with enough context to diagnose without server logs."""

    stage: LifecycleStage
    certificate_id: int | None = Field(None, description="None when a whole stage failed")
    reason: str


class OutcomeReport(BaseModel):
    """Per-certificate outcomes and their totals."""

    outcomes: list[CertificateOutcome] = Field(default_factory=list)
    errors: list[OutcomeError] = Field(default_factory=list)
    emails_sent: int = Field(
        0, ge=0, description="Certificates whose holder and admin emails were both delivered"
    )
    records_updated: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)

    @computed_field
    @property
    def error_count(self) -> int:
        return len(self.errors)

    def record(self, stage: LifecycleStage, outcome: CertificateOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.email_sent:
            self.emails_sent += 1
        if outcome.record_updated:
            self.records_updated += 1
        if outcome.error is not None:
            self.errors.append(
                OutcomeError(
                    stage=stage,
                    certificate_id=outcome.certificate_id,
                    reason=outcome.error,
                )
            )
        elif outcome.reason is not None:
            self.skipped += 1

    def record_stage_failure(self, stage: LifecycleStage, reason: str) -> None:
        self.errors.append(OutcomeError(stage=stage, certificate_id=None, reason=reason))


class LifecyclePassReport(OutcomeReport):
    """Response for GET /certificates/lifecycle/run."""

    run_date: date


class HolderCheckRequest(BaseModel):
    """Request body for POST /certificates/check-user."""

    email: EmailStr


class HolderCheckReport(OutcomeReport):
    """Response for POST /certificates/check-user."""

    email: str
    run_date: date
    certificates_examined: int = Field(0, ge=0)


# ============================================
# Quiz-score migration
# ============================================


class FuzzyMatch(BaseModel):
    """A credential resolved by title substring rather than an exact match."""

    quiz_score_id: int
    course_title: str | None
    matched_course_id: int
    matched_course_title: str


class MigrationError(BaseModel):
    quiz_score_id: int
    username: str | None = None
    course_title: str | None = None
    reason: str


class MigrationReport(BaseModel):
    """Response for POST /certificates/migrate."""

    processed: int = 0
    created: int = 0
    skipped_exists: int = 0
    skipped_not_passing: int = 0
    skipped_no_holder: int = 0
    skipped_no_credential: int = 0
    relinked: int = 0
    errors: list[MigrationError] = Field(default_factory=list)
    fuzzy_matches: list[FuzzyMatch] = Field(default_factory=list)
    match_strategies: dict[str, int] = Field(
        default_factory=dict,
        description="How many scores each resolution strategy resolved",
    )

    @computed_field
    @property
    def message(self) -> str:
        return f"Migration complete. Created {self.created} certificates."
