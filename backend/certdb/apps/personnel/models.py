# backend/certdb/apps/personnel/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from ...database import Base, enum_values


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Department(Base):
    """
    Organisational unit. Only used as a rollup key for compliance reports.
    """

    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(32), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    employees = relationship("Employee", back_populates="department")

    def __repr__(self) -> str:
        return f"<Department id={self.id} code={self.code}>"


class Employee(Base):
    """
    Staff member holding training records and certificates.

    `employee_id` is the human staff number (NIP); `id` is the surrogate key.
    Records reference employees with ON DELETE RESTRICT: an employee with
    compliance history cannot be deleted.
    """

    __tablename__ = "employees"
    __table_args__ = (
        Index("idx_employees_department_status", "department_id", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    position = Column(String(255), nullable=True)

    department_id = Column(
        Integer,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status = Column(
        Enum(EmployeeStatus, name="employee_status_enum", values_callable=enum_values),
        nullable=False,
        default=EmployeeStatus.ACTIVE,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    department = relationship("Department", back_populates="employees")
    training_records = relationship(
        "TrainingRecord",
        back_populates="employee",
        passive_deletes="all",
    )
    employee_certificates = relationship(
        "EmployeeCertificate",
        back_populates="employee",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Employee id={self.id} employee_id={self.employee_id}>"
