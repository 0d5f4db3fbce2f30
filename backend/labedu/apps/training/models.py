# backend/labedu/apps/training/models.py

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.dates import utcnow
from ...utils.identifiers import id_factory


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class TrainingType(str, enum.Enum):
    ONBOARDING = "ONBOARDING"
    TECNICO = "TECNICO"
    BIOSSEGURANCA = "BIOSSEGURANCA"
    QUALIDADE = "QUALIDADE"
    RECICLAGEM = "RECICLAGEM"
    RDC_UPDATE = "RDC_UPDATE"


class ModuleStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class LessonContentType(str, enum.Enum):
    VIDEO = "VIDEO"
    PDF = "PDF"
    LINK = "LINK"
    TEXT = "TEXT"


class ScheduleStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


class EnrollmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    # Not counted as an active enrollment; re-enrolling reactivates the row.
    CANCELLED = "CANCELLED"


OPEN_ENROLLMENT_STATUSES = (EnrollmentStatus.PENDING, EnrollmentStatus.IN_PROGRESS)


# ---------------------------------------------------------------------------
# MODULES / LESSONS
# ---------------------------------------------------------------------------


class TrainingModule(Base):
    """
    A course in the catalog.

    Only PUBLISHED modules can be scheduled or newly made mandatory for a
    job role.
    """

    __tablename__ = "training_modules"
    __table_args__ = (
        CheckConstraint(
            "min_score_approval >= 0 AND min_score_approval <= 100",
            name="ck_training_modules_min_score",
        ),
        Index("idx_training_modules_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=id_factory("MOD"))

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    short_description = Column(String(512), nullable=True)
    objectives = Column(Text, nullable=True)

    training_type = Column(
        Enum(TrainingType, name="training_type_enum"),
        nullable=False,
        default=TrainingType.TECNICO,
    )

    duration_minutes = Column(Integer, nullable=True)
    workload_hours = Column(Float, nullable=True)
    min_score_approval = Column(Integer, nullable=False, default=70)
    requires_quiz = Column(Boolean, nullable=False, default=False)

    status = Column(
        Enum(ModuleStatus, name="training_module_status_enum"),
        nullable=False,
        default=ModuleStatus.DRAFT,
    )

    rdc_reference = Column(
        String(255),
        nullable=True,
        doc="Regulatory reference, e.g. 'RDC 978/2025 art. 42'.",
    )
    pop_id = Column(String(64), nullable=True, doc="Standard operating procedure code.")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    lessons = relationship(
        "TrainingLesson",
        back_populates="module",
        order_by="TrainingLesson.order_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_published(self) -> bool:
        return self.status == ModuleStatus.PUBLISHED

    def __repr__(self) -> str:
        return f"<TrainingModule {self.id} {self.title!r} {self.status}>"


class TrainingLesson(Base):
    __tablename__ = "training_lessons"
    __table_args__ = (
        UniqueConstraint("module_id", "order_index", name="uq_training_lessons_module_order"),
    )

    id = Column(String(36), primary_key=True, default=id_factory("LES"))
    module_id = Column(
        String(36),
        ForeignKey("training_modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    content_type = Column(
        Enum(LessonContentType, name="training_lesson_content_type_enum"),
        nullable=False,
        default=LessonContentType.TEXT,
    )
    content_url = Column(String(1024), nullable=True)
    description = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False)

    module = relationship("TrainingModule", back_populates="lessons")

    def __repr__(self) -> str:
        return f"<TrainingLesson {self.module_id}#{self.order_index}>"


# ---------------------------------------------------------------------------
# REQUIREMENT MATRIX (ROLE x MODULE)
# ---------------------------------------------------------------------------


class TrainingRequirement(Base):
    """
    One cell of the requirement matrix.

    recertification_period_months:
    - NULL: one-time training, never expires once completed
    - N > 0: must be repeated every N months
    """

    __tablename__ = "training_role_requirements"
    __table_args__ = (
        UniqueConstraint("role_id", "module_id", name="uq_training_role_requirements_role_module"),
        CheckConstraint(
            "recertification_period_months IS NULL OR recertification_period_months > 0",
            name="ck_training_role_requirements_period",
        ),
        Index("idx_training_role_requirements_module", "module_id"),
    )

    id = Column(String(36), primary_key=True, default=id_factory("REQ"))
    role_id = Column(
        String(36),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    module_id = Column(
        String(36),
        ForeignKey("training_modules.id", ondelete="RESTRICT"),
        nullable=False,
    )
    is_mandatory = Column(Boolean, nullable=False, default=True)
    recertification_period_months = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    module = relationship("TrainingModule", lazy="joined")

    def __repr__(self) -> str:
        return f"<TrainingRequirement role={self.role_id} module={self.module_id}>"


# ---------------------------------------------------------------------------
# SCHEDULES / ENROLLMENTS
# ---------------------------------------------------------------------------


class TrainingSchedule(Base):
    __tablename__ = "training_schedule"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_training_schedule_dates"),
        Index("idx_training_schedule_module", "module_id"),
        Index("idx_training_schedule_unit_start", "unit_id", "start_date"),
    )

    id = Column(String(36), primary_key=True, default=id_factory("SCH"))
    module_id = Column(
        String(36),
        ForeignKey("training_modules.id", ondelete="RESTRICT"),
        nullable=False,
    )
    unit_id = Column(String(36), ForeignKey("units.id", ondelete="RESTRICT"), nullable=True)
    instructor_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(
        Enum(ScheduleStatus, name="training_schedule_status_enum"),
        nullable=False,
        default=ScheduleStatus.PLANNED,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    module = relationship("TrainingModule", lazy="joined")

    def __repr__(self) -> str:
        return f"<TrainingSchedule {self.id} module={self.module_id} {self.status}>"


class Enrollment(Base):
    """
    An employee's participation in one schedule.

    completed_at is set if and only if status is COMPLETED.
    """

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("schedule_id", "employee_id", name="uq_enrollments_schedule_employee"),
        CheckConstraint(
            "progress_pct >= 0 AND progress_pct <= 100",
            name="ck_enrollments_progress",
        ),
        CheckConstraint(
            "final_score IS NULL OR (final_score >= 0 AND final_score <= 100)",
            name="ck_enrollments_score",
        ),
        Index("idx_enrollments_employee_status", "employee_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=id_factory("ENR"))
    schedule_id = Column(
        String(36),
        ForeignKey("training_schedule.id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
    )
    status = Column(
        Enum(EnrollmentStatus, name="enrollment_status_enum"),
        nullable=False,
        default=EnrollmentStatus.PENDING,
    )
    progress_pct = Column(Integer, nullable=False, default=0)
    final_score = Column(Float, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    schedule = relationship("TrainingSchedule", lazy="joined")
    employee = relationship("Employee", lazy="joined")

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} {self.employee_id}@{self.schedule_id} {self.status}>"


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


class Certificate(Base):
    """
    Issued certificate for a qualifying enrollment.

    PDF rendering happens elsewhere; only the storage path is kept here.
    """

    __tablename__ = "certificates"

    id = Column(String(36), primary_key=True, default=id_factory("CERT"))
    enrollment_id = Column(
        String(36),
        ForeignKey("enrollments.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    employee_id = Column(
        String(36),
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    verification_code = Column(String(16), nullable=False, index=True)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    pdf_storage_path = Column(String(1024), nullable=True)

    enrollment = relationship("Enrollment", lazy="joined")

    def __repr__(self) -> str:
        return f"<Certificate {self.verification_code} enrollment={self.enrollment_id}>"
