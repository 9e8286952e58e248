# backend/alembic/versions/001_payout_engine.py
"""Payout engine - schools, teachers, lessons and teacher payouts

Revision ID: 001_payout_engine
Revises:
Create Date: 2024-11-04 00:00:00.000000

Creates the read side the payout engine consumes (organizations, teachers,
teacher rate history, students, lessons) and the payout tables.

A lesson may be claimed by at most one non-cancelled payout. The partial
unique index uq_payout_line_items_active_lesson enforces that in storage;
cancelling a payout flips claim_active to false on its line items.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_payout_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create payout engine tables."""
    print("Creating organization and teacher tables...")

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="PLN"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Europe/Warsaw"),
        sa.Column(
            "late_cancellation_window_hours", sa.Integer(), nullable=False, server_default="24"
        ),
        sa.Column(
            "late_cancellation_payout_percent", sa.Integer(), nullable=False, server_default="100"
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "late_cancellation_window_hours >= 0",
            name="ck_organizations_late_cancellation_window",
        ),
        sa.CheckConstraint(
            "late_cancellation_payout_percent BETWEEN 0 AND 100",
            name="ck_organizations_late_cancellation_percent",
        ),
    )

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("organization_id", sa.String(26), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column(
            "cancellation_payout_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("cancellation_payout_hours", sa.Integer(), nullable=True),
        sa.Column("cancellation_payout_percent", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "cancellation_payout_percent IS NULL OR cancellation_payout_percent BETWEEN 0 AND 100",
            name="ck_teachers_cancellation_payout_percent",
        ),
        sa.CheckConstraint(
            "cancellation_payout_hours IS NULL OR cancellation_payout_hours >= 0",
            name="ck_teachers_cancellation_payout_hours",
        ),
    )
    op.create_index("ix_teachers_organization_id", "teachers", ["organization_id"])

    op.create_table(
        "teacher_rates",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("effective_from", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["teacher_id"], ["teachers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("hourly_rate >= 0", name="ck_teacher_rates_hourly_rate"),
    )
    op.create_index(
        "ix_teacher_rates_teacher_effective", "teacher_rates", ["teacher_id", "effective_from"]
    )

    print("Creating student and lesson tables...")

    op.create_table(
        "students",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("organization_id", sa.String(26), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_students_organization_id", "students", ["organization_id"])

    op.create_table(
        "lessons",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("organization_id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("student_id", sa.String(26), nullable=False),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teachers.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_lessons_duration_positive"),
    )
    op.create_index(
        "ix_lessons_teacher_scheduled",
        "lessons",
        ["organization_id", "teacher_id", "scheduled_at"],
    )
    op.create_index("ix_lessons_status", "lessons", ["status"])

    print("Creating teacher payout tables...")

    op.create_table(
        "teacher_payouts",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("organization_id", sa.String(26), nullable=False),
        sa.Column("teacher_id", sa.String(26), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_minutes", sa.Integer(), nullable=False),
        sa.Column("total_hours", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["teacher_id"], ["teachers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("period_start <= period_end", name="ck_teacher_payouts_period"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PAID', 'CANCELLED')",
            name="ck_teacher_payouts_status",
        ),
    )
    op.create_index(
        "ix_teacher_payouts_org_teacher",
        "teacher_payouts",
        ["organization_id", "teacher_id", "created_at"],
    )
    op.create_index("ix_teacher_payouts_org_status", "teacher_payouts", ["organization_id", "status"])

    op.create_table(
        "payout_line_items",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("payout_id", sa.String(26), nullable=False),
        sa.Column("organization_id", sa.String(26), nullable=False),
        sa.Column("lesson_id", sa.String(26), nullable=False),
        sa.Column("lesson_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lesson_title", sa.String(255), nullable=False, server_default=""),
        sa.Column("student_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("qualification_reason", sa.String(32), nullable=False),
        sa.Column("payout_percent", sa.Integer(), nullable=False),
        sa.Column("claim_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["payout_id"], ["teacher_payouts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "payout_percent BETWEEN 1 AND 100", name="ck_payout_line_items_payout_percent"
        ),
        sa.CheckConstraint("duration_minutes > 0", name="ck_payout_line_items_duration"),
    )
    op.create_index("ix_payout_line_items_payout_id", "payout_line_items", ["payout_id"])

    bind = op.get_bind()
    active_claim = "claim_active = true" if bind.dialect.name == "postgresql" else "claim_active = 1"
    op.create_index(
        "uq_payout_line_items_active_lesson",
        "payout_line_items",
        ["lesson_id"],
        unique=True,
        postgresql_where=sa.text(active_claim),
        sqlite_where=sa.text(active_claim),
    )

    print("Payout engine tables created")


def downgrade() -> None:
    """Drop payout engine tables."""
    print("Dropping payout engine tables...")

    op.drop_index("uq_payout_line_items_active_lesson", table_name="payout_line_items")
    op.drop_index("ix_payout_line_items_payout_id", table_name="payout_line_items")
    op.drop_table("payout_line_items")

    op.drop_index("ix_teacher_payouts_org_status", table_name="teacher_payouts")
    op.drop_index("ix_teacher_payouts_org_teacher", table_name="teacher_payouts")
    op.drop_table("teacher_payouts")

    op.drop_index("ix_lessons_status", table_name="lessons")
    op.drop_index("ix_lessons_teacher_scheduled", table_name="lessons")
    op.drop_table("lessons")

    op.drop_index("ix_students_organization_id", table_name="students")
    op.drop_table("students")

    op.drop_index("ix_teacher_rates_teacher_effective", table_name="teacher_rates")
    op.drop_table("teacher_rates")

    op.drop_index("ix_teachers_organization_id", table_name="teachers")
    op.drop_table("teachers")

    op.drop_table("organizations")
