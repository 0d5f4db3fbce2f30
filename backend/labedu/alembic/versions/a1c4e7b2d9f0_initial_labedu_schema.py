"""
Initial LabEdu schema: organization, training catalog, requirement matrix,
schedules, enrollments and certificates.

Revision ID: a1c4e7b2d9f0
Revises:
Create Date: 2025-06-02
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c4e7b2d9f0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SYSTEM_ROLES = ("ADMIN", "UNIT_MANAGER", "INSTRUCTOR", "COLLABORATOR")
TRAINING_TYPES = ("ONBOARDING", "TECNICO", "BIOSSEGURANCA", "QUALIDADE", "RECICLAGEM", "RDC_UPDATE")
MODULE_STATUSES = ("DRAFT", "PUBLISHED")
LESSON_CONTENT_TYPES = ("VIDEO", "PDF", "LINK", "TEXT")
SCHEDULE_STATUSES = ("PLANNED", "ACTIVE", "FINISHED", "CANCELLED")
ENROLLMENT_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "EXPIRED", "CANCELLED")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # -- organization ------------------------------------------------------
    op.create_table(
        "units",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("technical_manager", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "sectors",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "unit_id",
            sa.String(length=36),
            sa.ForeignKey("units.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_index("idx_sectors_unit", "sectors", ["unit_id"])

    op.create_table(
        "roles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("is_critical_function", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "employees",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("national_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column(
            "unit_id",
            sa.String(length=36),
            sa.ForeignKey("units.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "sector_id",
            sa.String(length=36),
            sa.ForeignKey("sectors.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "role_id",
            sa.String(length=36),
            sa.ForeignKey("roles.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "system_role",
            sa.Enum(*SYSTEM_ROLES, name="employee_system_role_enum"),
            nullable=False,
            server_default="COLLABORATOR",
        ),
        sa.Column("admission_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_employees_email", "employees", ["email"])
    op.create_index("idx_employees_role", "employees", ["role_id"])
    op.create_index("idx_employees_unit_active", "employees", ["unit_id", "is_active"])

    # -- training catalog ----------------------------------------------------
    op.create_table(
        "training_modules",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("short_description", sa.String(length=512), nullable=True),
        sa.Column("objectives", sa.Text(), nullable=True),
        sa.Column(
            "training_type",
            sa.Enum(*TRAINING_TYPES, name="training_type_enum"),
            nullable=False,
        ),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("workload_hours", sa.Float(), nullable=True),
        sa.Column("min_score_approval", sa.Integer(), nullable=False, server_default="70"),
        sa.Column("requires_quiz", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "status",
            sa.Enum(*MODULE_STATUSES, name="training_module_status_enum"),
            nullable=False,
            server_default="DRAFT",
        ),
        sa.Column("rdc_reference", sa.String(length=255), nullable=True),
        sa.Column("pop_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "min_score_approval >= 0 AND min_score_approval <= 100",
            name="ck_training_modules_min_score",
        ),
    )
    op.create_index("idx_training_modules_status", "training_modules", ["status"])

    op.create_table(
        "training_lessons",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "module_id",
            sa.String(length=36),
            sa.ForeignKey("training_modules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column(
            "content_type",
            sa.Enum(*LESSON_CONTENT_TYPES, name="training_lesson_content_type_enum"),
            nullable=False,
        ),
        sa.Column("content_url", sa.String(length=1024), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.UniqueConstraint("module_id", "order_index", name="uq_training_lessons_module_order"),
    )
    op.create_index("ix_training_lessons_module_id", "training_lessons", ["module_id"])

    # -- requirement matrix --------------------------------------------------
    op.create_table(
        "training_role_requirements",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "role_id",
            sa.String(length=36),
            sa.ForeignKey("roles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "module_id",
            sa.String(length=36),
            sa.ForeignKey("training_modules.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("recertification_period_months", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "role_id", "module_id", name="uq_training_role_requirements_role_module"
        ),
        sa.CheckConstraint(
            "recertification_period_months IS NULL OR recertification_period_months > 0",
            name="ck_training_role_requirements_period",
        ),
    )
    op.create_index(
        "ix_training_role_requirements_role_id", "training_role_requirements", ["role_id"]
    )
    op.create_index(
        "idx_training_role_requirements_module", "training_role_requirements", ["module_id"]
    )

    # -- schedules / enrollments ---------------------------------------------
    op.create_table(
        "training_schedule",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "module_id",
            sa.String(length=36),
            sa.ForeignKey("training_modules.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "unit_id",
            sa.String(length=36),
            sa.ForeignKey("units.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "instructor_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*SCHEDULE_STATUSES, name="training_schedule_status_enum"),
            nullable=False,
            server_default="PLANNED",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("end_date >= start_date", name="ck_training_schedule_dates"),
    )
    op.create_index("idx_training_schedule_module", "training_schedule", ["module_id"])
    op.create_index(
        "idx_training_schedule_unit_start", "training_schedule", ["unit_id", "start_date"]
    )

    op.create_table(
        "enrollments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "schedule_id",
            sa.String(length=36),
            sa.ForeignKey("training_schedule.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(*ENROLLMENT_STATUSES, name="enrollment_status_enum"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("progress_pct", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("final_score", sa.Float(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("schedule_id", "employee_id", name="uq_enrollments_schedule_employee"),
        sa.CheckConstraint(
            "progress_pct >= 0 AND progress_pct <= 100",
            name="ck_enrollments_progress",
        ),
        sa.CheckConstraint(
            "final_score IS NULL OR (final_score >= 0 AND final_score <= 100)",
            name="ck_enrollments_score",
        ),
    )
    op.create_index("idx_enrollments_employee_status", "enrollments", ["employee_id", "status"])

    # -- certificates ----------------------------------------------------------
    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "enrollment_id",
            sa.String(length=36),
            sa.ForeignKey("enrollments.id", ondelete="RESTRICT"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "employee_id",
            sa.String(length=36),
            sa.ForeignKey("employees.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("verification_code", sa.String(length=16), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("pdf_storage_path", sa.String(length=1024), nullable=True),
    )
    op.create_index("ix_certificates_employee_id", "certificates", ["employee_id"])
    op.create_index("ix_certificates_verification_code", "certificates", ["verification_code"])


def downgrade() -> None:
    op.drop_index("ix_certificates_verification_code", table_name="certificates")
    op.drop_index("ix_certificates_employee_id", table_name="certificates")
    op.drop_table("certificates")

    op.drop_index("idx_enrollments_employee_status", table_name="enrollments")
    op.drop_table("enrollments")

    op.drop_index("idx_training_schedule_unit_start", table_name="training_schedule")
    op.drop_index("idx_training_schedule_module", table_name="training_schedule")
    op.drop_table("training_schedule")

    op.drop_index("idx_training_role_requirements_module", table_name="training_role_requirements")
    op.drop_index("ix_training_role_requirements_role_id", table_name="training_role_requirements")
    op.drop_table("training_role_requirements")

    op.drop_index("ix_training_lessons_module_id", table_name="training_lessons")
    op.drop_table("training_lessons")

    op.drop_index("idx_training_modules_status", table_name="training_modules")
    op.drop_table("training_modules")

    op.drop_index("idx_employees_unit_active", table_name="employees")
    op.drop_index("idx_employees_role", table_name="employees")
    op.drop_index("ix_employees_email", table_name="employees")
    op.drop_table("employees")

    op.drop_table("roles")

    op.drop_index("idx_sectors_unit", table_name="sectors")
    op.drop_table("sectors")
    op.drop_table("units")

    bind = op.get_bind()
    for enum_name in (
        "enrollment_status_enum",
        "training_schedule_status_enum",
        "training_lesson_content_type_enum",
        "training_module_status_enum",
        "training_type_enum",
        "employee_system_role_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
