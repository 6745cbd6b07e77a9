"""create users, courses, quiz scores and certificates tables

Revision ID: b7c41e2a9d03
Revises:
Create Date: 2026-02-02 12:00:00.000000

This migration:
1. Creates users and courses
2. Creates course_enrollments (course access grants)
3. Creates quiz_scores, including the legacy lookup columns
4. Creates user_certificates with the certificate_status enum
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "b7c41e2a9d03"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all certificate lifecycle tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_courses_title", "courses", ["title"], unique=False)

    op.create_table(
        "course_enrollments",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "course_id"),
    )

    op.create_table(
        "quiz_scores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("course_id", sa.Integer(), nullable=True),
        # Legacy lookup strings
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("course_title", sa.String(length=255), nullable=True),
        # Result
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=True),
        sa.Column("is_passing", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_quiz_scores_user_id", "quiz_scores", ["user_id"], unique=False)
    op.create_index("ix_quiz_scores_course_id", "quiz_scores", ["course_id"], unique=False)

    # Create the certificate_status enum type (only if it doesn't exist)
    certificate_status_enum = postgresql.ENUM(
        "active",
        "expiring_soon",
        "expired",
        name="certificate_status",
        create_type=False,
    )
    certificate_status_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "user_certificates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("quiz_score_id", sa.Integer(), nullable=True),
        sa.Column("issued_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("status", certificate_status_enum, nullable=False),
        sa.Column(
            "notifications_sent",
            sa.JSON(),
            server_default=sa.text("'[]'"),
            nullable=False,
        ),
        *_timestamps(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["quiz_score_id"], ["quiz_scores.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_user_certificates_expiry_date", "user_certificates", ["expiry_date"], unique=False
    )
    op.create_index("ix_user_certificates_status", "user_certificates", ["status"], unique=False)
    op.create_index(
        "ix_user_certificates_user_course",
        "user_certificates",
        ["user_id", "course_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop all certificate lifecycle tables."""
    op.drop_index("ix_user_certificates_user_course", table_name="user_certificates")
    op.drop_index("ix_user_certificates_status", table_name="user_certificates")
    op.drop_index("ix_user_certificates_expiry_date", table_name="user_certificates")
    op.drop_table("user_certificates")
    postgresql.ENUM(name="certificate_status").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_quiz_scores_course_id", table_name="quiz_scores")
    op.drop_index("ix_quiz_scores_user_id", table_name="quiz_scores")
    op.drop_table("quiz_scores")

    op.drop_table("course_enrollments")

    op.drop_index("ix_courses_title", table_name="courses")
    op.drop_table("courses")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
