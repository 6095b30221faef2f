# backend/certdb/apps/certificates/models.py

from __future__ import annotations

import enum
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
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ...database import Base, enum_values
from ...utils.identifiers import generate_verification_code
from ..compliance.status import (
    CertificateStatus,
    ComplianceLabel,
    EmployeeCertificateStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CertificateLifecycleStage(str, enum.Enum):
    ISSUED = "issued"
    ACTIVE = "active"
    RENEWAL_DUE = "renewal_due"
    UNDER_REVIEW = "under_review"
    ARCHIVED = "archived"


# ---------------------------------------------------------------------------
# ISSUED CERTIFICATES (1:1 with a training record)
# ---------------------------------------------------------------------------


class Certificate(Base):
    """
    Certificate issued for a training record.

    Status follows the parent training record (TrainingRecord -> Certificate,
    never the reverse) except for the administrative states
    (draft / revoked / suspended / renewed / cancelled), which only change
    through the workflow engine.
    """

    __tablename__ = "certificates"
    __table_args__ = (
        Index("idx_certificates_employee_status", "employee_id", "status"),
        Index("idx_certificates_type_status", "training_type_id", "status"),
        Index("idx_certificates_status_stage", "status", "lifecycle_stage"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    training_record_id = Column(
        Integer,
        ForeignKey("training_records.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True)
    training_type_id = Column(Integer, ForeignKey("training_types.id", ondelete="RESTRICT"), nullable=False)

    certificate_number = Column(String(100), nullable=False, unique=True, index=True)
    verification_code = Column(
        String(20),
        nullable=False,
        unique=True,
        default=generate_verification_code,
    )

    issued_by = Column(String(255), nullable=False)
    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=True)
    original_expiry_date = Column(Date, nullable=True)

    status = Column(
        Enum(CertificateStatus, name="certificate_status_enum", values_callable=enum_values),
        nullable=False,
        default=CertificateStatus.ACTIVE,
        index=True,
    )
    lifecycle_stage = Column(
        Enum(CertificateLifecycleStage, name="certificate_lifecycle_stage_enum", values_callable=enum_values),
        nullable=False,
        default=CertificateLifecycleStage.ISSUED,
    )

    is_verified = Column(Boolean, nullable=False, default=False)
    verification_date = Column(DateTime(timezone=True), nullable=True)

    is_renewable = Column(Boolean, nullable=False, default=True)
    renewal_due_date = Column(Date, nullable=True)
    renewed_from_id = Column(Integer, ForeignKey("certificates.id", ondelete="SET NULL"), nullable=True)
    renewed_to_id = Column(Integer, ForeignKey("certificates.id", ondelete="SET NULL"), nullable=True)
    renewal_generation = Column(Integer, nullable=False, default=1)

    revocation_date = Column(Date, nullable=True)
    revocation_reason = Column(String(255), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    suspension_start = Column(Date, nullable=True)
    suspension_end = Column(Date, nullable=True)
    suspension_reason = Column(Text, nullable=True)

    certificate_file_path = Column(String(512), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    training_record = relationship(
        "TrainingRecord",
        back_populates="certificate",
        foreign_keys=[training_record_id],
    )
    employee = relationship("Employee")
    training_type = relationship("TrainingType")
    renewed_from = relationship(
        "Certificate",
        remote_side=[id],
        foreign_keys=[renewed_from_id],
    )
    renewed_to = relationship(
        "Certificate",
        remote_side=[id],
        foreign_keys=[renewed_to_id],
        post_update=True,
    )

    def __repr__(self) -> str:
        return f"<Certificate id={self.id} number={self.certificate_number} status={self.status}>"


# ---------------------------------------------------------------------------
# EMPLOYEE CERTIFICATES (externally issued, typed by CertificateType)
# ---------------------------------------------------------------------------


class CertificateType(Base):
    """
    Type of externally issued certificate (licences, operator permits, ...).

    `warning_days` is nullable; NULL falls back to the engine default.
    """

    __tablename__ = "certificate_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(16), nullable=False, unique=True)
    category = Column(String(50), nullable=True)
    validity_months = Column(Integer, nullable=True)
    warning_days = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    employee_certificates = relationship("EmployeeCertificate", back_populates="certificate_type")


class EmployeeCertificate(Base):
    """
    Certificate held by an employee, possibly recurrent (one row per issue).

    `certificate_files` keeps metadata only:
    [{"stored_name": ..., "original_name": ..., "path": ..., "size": ...}, ...]
    The bytes live in whatever storage backend the application uses.
    """

    __tablename__ = "employee_certificates"
    __table_args__ = (
        Index("idx_employee_certificates_employee_type", "employee_id", "certificate_type_id"),
        Index("idx_employee_certificates_status", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False)
    certificate_type_id = Column(
        Integer,
        ForeignKey("certificate_types.id", ondelete="RESTRICT"),
        nullable=False,
    )

    certificate_number = Column(String(100), nullable=True)
    issuer = Column(String(255), nullable=True)
    issue_date = Column(Date, nullable=True)
    completion_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=True)

    status = Column(
        Enum(EmployeeCertificateStatus, name="employee_certificate_status_enum", values_callable=enum_values),
        nullable=False,
        default=EmployeeCertificateStatus.PENDING,
    )
    compliance_status = Column(
        Enum(ComplianceLabel, name="employee_certificate_compliance_enum", values_callable=enum_values),
        nullable=False,
        default=ComplianceLabel.NOT_REQUIRED,
    )

    certificate_files = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    employee = relationship("Employee", back_populates="employee_certificates")
    certificate_type = relationship("CertificateType", back_populates="employee_certificates")

    def __repr__(self) -> str:
        return f"<EmployeeCertificate id={self.id} employee_id={self.employee_id} status={self.status}>"
