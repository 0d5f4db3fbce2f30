# backend/labedu/apps/organization/models.py

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.dates import utcnow
from ...utils.identifiers import id_factory


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class SystemRole(str, enum.Enum):
    """
    Access level inside LabEdu (not the job title).
    """

    ADMIN = "ADMIN"
    UNIT_MANAGER = "UNIT_MANAGER"
    INSTRUCTOR = "INSTRUCTOR"
    COLLABORATOR = "COLLABORATOR"


# ---------------------------------------------------------------------------
# UNITS / SECTORS
# ---------------------------------------------------------------------------


class Unit(Base):
    """
    A physical laboratory location.
    """

    __tablename__ = "units"

    id = Column(String(36), primary_key=True, default=id_factory("UNIT"))
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=True)
    technical_manager = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    sectors = relationship(
        "Sector",
        back_populates="unit",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Unit {self.id} {self.name}>"


class Sector(Base):
    __tablename__ = "sectors"
    __table_args__ = (Index("idx_sectors_unit", "unit_id"),)

    id = Column(String(36), primary_key=True, default=id_factory("SEC"))
    unit_id = Column(
        String(36),
        ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name = Column(String(255), nullable=False)

    unit = relationship("Unit", back_populates="sectors", lazy="joined")

    def __repr__(self) -> str:
        return f"<Sector {self.id} unit={self.unit_id}>"


# ---------------------------------------------------------------------------
# JOB ROLES
# ---------------------------------------------------------------------------


class JobRole(Base):
    """
    A function / title such as 'Phlebotomist'.

    Critical functions get priority in compliance alert panels.
    """

    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=id_factory("ROLE"))
    name = Column(String(255), nullable=False, unique=True)
    is_critical_function = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<JobRole {self.id} {self.name}>"


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


class Employee(Base):
    """
    A person working at a unit.

    `id` is the identity provider's account id, so the bearer token subject
    resolves straight to this row. Employees with history are deactivated,
    never deleted.
    """

    __tablename__ = "employees"
    __table_args__ = (
        Index("idx_employees_role", "role_id"),
        Index("idx_employees_unit_active", "unit_id", "is_active"),
    )

    id = Column(String(36), primary_key=True)
    full_name = Column(String(255), nullable=False)
    national_id = Column(String(32), nullable=False, unique=True, doc="CPF")
    email = Column(String(255), nullable=True, index=True)

    unit_id = Column(String(36), ForeignKey("units.id", ondelete="RESTRICT"), nullable=True)
    sector_id = Column(String(36), ForeignKey("sectors.id", ondelete="SET NULL"), nullable=True)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="RESTRICT"), nullable=True)

    system_role = Column(
        Enum(SystemRole, name="employee_system_role_enum"),
        nullable=False,
        default=SystemRole.COLLABORATOR,
    )

    admission_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    must_change_password = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    unit = relationship("Unit", lazy="joined")
    sector = relationship("Sector", lazy="joined")
    job_role = relationship("JobRole", lazy="joined")

    def __repr__(self) -> str:
        return f"<Employee {self.id} {self.full_name}>"
