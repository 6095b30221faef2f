# backend/certdb/apps/certificates/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..compliance.status import CertificateStatus, ComplianceLabel, EmployeeCertificateStatus
from .models import CertificateLifecycleStage


class CertificateFile(BaseModel):
    """Metadata for one stored certificate document. The bytes live elsewhere."""

    stored_name: str = Field(..., min_length=1)
    original_name: Optional[str] = None
    path: Optional[str] = None
    size: int = Field(0, ge=0, description="Size in bytes.")
    mime_type: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class CertificateRead(BaseModel):
    id: int
    training_record_id: int
    employee_id: int
    training_type_id: int
    certificate_number: str
    verification_code: str
    issued_by: str
    issue_date: date
    expiry_date: Optional[date] = None
    original_expiry_date: Optional[date] = None
    status: CertificateStatus
    lifecycle_stage: CertificateLifecycleStage
    is_verified: bool
    is_renewable: bool
    renewal_due_date: Optional[date] = None
    renewed_from_id: Optional[int] = None
    renewed_to_id: Optional[int] = None
    renewal_generation: int

    class Config:
        from_attributes = True


class EmployeeCertificateCreate(BaseModel):
    employee_id: int
    certificate_type_id: int
    certificate_number: Optional[str] = None
    issuer: Optional[str] = None
    issue_date: Optional[date] = None
    completion_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None


class EmployeeCertificateRead(EmployeeCertificateCreate):
    id: int
    status: EmployeeCertificateStatus
    compliance_status: ComplianceLabel
    certificate_files: Optional[List[CertificateFile]] = None

    class Config:
        from_attributes = True
