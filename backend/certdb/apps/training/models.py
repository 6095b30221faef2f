# backend/certdb/apps/training/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base, enum_values
from ..compliance.status import ComplianceLabel, TrainingRecordStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# MASTER DATA
# ---------------------------------------------------------------------------


class TrainingProvider(Base):
    __tablename__ = "training_providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(32), nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    training_records = relationship("TrainingRecord", back_populates="training_provider")


class TrainingType(Base):
    """
    A course / certification an employee can hold.

    - validity_months      = NULL for trainings that never expire
    - warning_period_days  = how long before expiry a record is "expiring soon"
    - priority_score       = configured base weight for dashboard priority
    - compliance_target_percentage = per-department target used in reports
    """

    __tablename__ = "training_types"
    __table_args__ = (
        Index("idx_training_types_mandatory_active", "is_mandatory", "is_active"),
        Index("idx_training_types_category_mandatory", "category", "is_mandatory"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(32), nullable=True, unique=True)
    category = Column(String(64), nullable=True, index=True)
    description = Column(Text, nullable=True)

    validity_months = Column(Integer, nullable=True)
    warning_period_days = Column(Integer, nullable=False, default=30)

    is_active = Column(Boolean, nullable=False, default=True)
    is_mandatory = Column(Boolean, nullable=False, default=False)
    requires_certification = Column(Boolean, nullable=False, default=True)

    priority_score = Column(Integer, nullable=False, default=0)
    compliance_target_percentage = Column(Numeric(5, 2), nullable=False, default=95)

    certification_authority = Column(String(255), nullable=True)
    estimated_cost = Column(Numeric(12, 2), nullable=True)

    last_analytics_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    training_records = relationship("TrainingRecord", back_populates="training_type")
    statistic = relationship(
        "TrainingTypeStatistic",
        back_populates="training_type",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<TrainingType id={self.id} code={self.code}>"


# ---------------------------------------------------------------------------
# TRAINING RECORDS
# ---------------------------------------------------------------------------


class TrainingRecord(Base):
    """
    One completed training for one employee.

    `status` and `compliance_status` are derived from `expiry_date` on every
    flush (see services.recompute_on_flush); assigning them directly only
    lasts until the next save.
    """

    __tablename__ = "training_records"
    __table_args__ = (
        Index("idx_training_records_employee_type", "employee_id", "training_type_id"),
        Index("idx_training_records_status_compliance", "status", "compliance_status"),
        Index("idx_training_records_expiry", "expiry_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    employee_id = Column(
        Integer,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    training_type_id = Column(
        Integer,
        ForeignKey("training_types.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    training_provider_id = Column(
        Integer,
        ForeignKey("training_providers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    certificate_number = Column(String(100), nullable=True, unique=True)
    issuer = Column(String(255), nullable=True)

    issue_date = Column(Date, nullable=True)
    completion_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=True)

    status = Column(
        Enum(TrainingRecordStatus, name="training_record_status_enum", values_callable=enum_values),
        nullable=False,
        default=TrainingRecordStatus.ACTIVE,
    )
    compliance_status = Column(
        Enum(ComplianceLabel, name="training_record_compliance_enum", values_callable=enum_values),
        nullable=False,
        default=ComplianceLabel.COMPLIANT,
    )

    score = Column(Numeric(5, 2), nullable=True)
    passing_score = Column(Numeric(5, 2), nullable=True)
    cost = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)

    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    reminder_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    employee = relationship("Employee", back_populates="training_records")
    training_type = relationship("TrainingType", back_populates="training_records")
    training_provider = relationship("TrainingProvider", back_populates="training_records")
    certificate = relationship(
        "Certificate",
        back_populates="training_record",
        uselist=False,
        cascade="all, delete-orphan",
        foreign_keys="Certificate.training_record_id",
    )

    def __repr__(self) -> str:
        return f"<TrainingRecord id={self.id} employee_id={self.employee_id} status={self.status}>"


# ---------------------------------------------------------------------------
# CERTIFICATE NUMBERING
# ---------------------------------------------------------------------------


class CertificateSequence(Base):
    """
    Per (training type, issuer, year, month) counter for certificate numbers.

    Only ever incremented with a single UPDATE statement (see sequences.py).
    """

    __tablename__ = "certificate_sequences"
    __table_args__ = (
        UniqueConstraint(
            "training_type_id",
            "issuer",
            "year",
            "month",
            name="uq_certificate_sequences_period",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    training_type_id = Column(
        Integer,
        ForeignKey("training_types.id", ondelete="CASCADE"),
        nullable=False,
    )
    issuer = Column(String(255), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    last_number = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<CertificateSequence type={self.training_type_id} issuer={self.issuer} "
            f"{self.year}-{self.month:02d} last={self.last_number}>"
        )
