"""
Canonical compliance status and the per-entity views of it.

Training records, certificates and employee certificates historically carry
three different status enums for the same concept. The engine works on one
superset (`ComplianceStatus`) and narrows it to whatever each table can
store.

    canonical       TrainingRecord   Certificate     EmployeeCertificate
    --------------  ---------------  --------------  -------------------
    draft           -                draft           pending
    pending         active           draft           pending
    completed       active           active          completed
    active          active           active          active
    expiring_soon   active           expiring_soon   expiring_soon
    expired         expired          expired         expired
    revoked         expired          revoked         expired
    suspended       expired          suspended       expired
    renewed         -                renewed         -
    cancelled       expired          cancelled       expired

A "-" means the state has no meaning for that entity; narrowing raises
``ValueError`` for it.
"""

from __future__ import annotations

import enum
from typing import Dict


class ComplianceStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    COMPLETED = "completed"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    RENEWED = "renewed"
    CANCELLED = "cancelled"


class TrainingRecordStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class CertificateStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    RENEWED = "renewed"
    CANCELLED = "cancelled"


class EmployeeCertificateStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


class ComplianceLabel(str, enum.Enum):
    COMPLIANT = "compliant"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    NOT_REQUIRED = "not_required"


# States that only a person can put a certificate into (or take it out of).
# Date-driven recomputation and propagation never overwrite them.
ADMINISTRATIVE_STATES = frozenset(
    {
        ComplianceStatus.DRAFT,
        ComplianceStatus.REVOKED,
        ComplianceStatus.SUSPENDED,
        ComplianceStatus.RENEWED,
        ComplianceStatus.CANCELLED,
    }
)

# States derived purely from dates by the classifier.
DATE_DRIVEN_STATES = frozenset(
    {
        ComplianceStatus.PENDING,
        ComplianceStatus.ACTIVE,
        ComplianceStatus.EXPIRING_SOON,
        ComplianceStatus.EXPIRED,
    }
)


_TRAINING_RECORD_VIEW: Dict[ComplianceStatus, TrainingRecordStatus] = {
    ComplianceStatus.PENDING: TrainingRecordStatus.ACTIVE,
    ComplianceStatus.COMPLETED: TrainingRecordStatus.ACTIVE,
    ComplianceStatus.ACTIVE: TrainingRecordStatus.ACTIVE,
    ComplianceStatus.EXPIRING_SOON: TrainingRecordStatus.ACTIVE,
    ComplianceStatus.EXPIRED: TrainingRecordStatus.EXPIRED,
    ComplianceStatus.REVOKED: TrainingRecordStatus.EXPIRED,
    ComplianceStatus.SUSPENDED: TrainingRecordStatus.EXPIRED,
    ComplianceStatus.CANCELLED: TrainingRecordStatus.EXPIRED,
}

_CERTIFICATE_VIEW: Dict[ComplianceStatus, CertificateStatus] = {
    ComplianceStatus.DRAFT: CertificateStatus.DRAFT,
    ComplianceStatus.PENDING: CertificateStatus.DRAFT,
    ComplianceStatus.COMPLETED: CertificateStatus.ACTIVE,
    ComplianceStatus.ACTIVE: CertificateStatus.ACTIVE,
    ComplianceStatus.EXPIRING_SOON: CertificateStatus.EXPIRING_SOON,
    ComplianceStatus.EXPIRED: CertificateStatus.EXPIRED,
    ComplianceStatus.REVOKED: CertificateStatus.REVOKED,
    ComplianceStatus.SUSPENDED: CertificateStatus.SUSPENDED,
    ComplianceStatus.RENEWED: CertificateStatus.RENEWED,
    ComplianceStatus.CANCELLED: CertificateStatus.CANCELLED,
}

_EMPLOYEE_CERTIFICATE_VIEW: Dict[ComplianceStatus, EmployeeCertificateStatus] = {
    ComplianceStatus.DRAFT: EmployeeCertificateStatus.PENDING,
    ComplianceStatus.PENDING: EmployeeCertificateStatus.PENDING,
    ComplianceStatus.COMPLETED: EmployeeCertificateStatus.COMPLETED,
    ComplianceStatus.ACTIVE: EmployeeCertificateStatus.ACTIVE,
    ComplianceStatus.EXPIRING_SOON: EmployeeCertificateStatus.EXPIRING_SOON,
    ComplianceStatus.EXPIRED: EmployeeCertificateStatus.EXPIRED,
    ComplianceStatus.REVOKED: EmployeeCertificateStatus.EXPIRED,
    ComplianceStatus.SUSPENDED: EmployeeCertificateStatus.EXPIRED,
    ComplianceStatus.CANCELLED: EmployeeCertificateStatus.EXPIRED,
}

_COMPLIANCE_LABELS: Dict[ComplianceStatus, ComplianceLabel] = {
    ComplianceStatus.COMPLETED: ComplianceLabel.COMPLIANT,
    ComplianceStatus.ACTIVE: ComplianceLabel.COMPLIANT,
    ComplianceStatus.EXPIRING_SOON: ComplianceLabel.EXPIRING_SOON,
    ComplianceStatus.EXPIRED: ComplianceLabel.EXPIRED,
    ComplianceStatus.REVOKED: ComplianceLabel.EXPIRED,
    ComplianceStatus.SUSPENDED: ComplianceLabel.EXPIRED,
    ComplianceStatus.CANCELLED: ComplianceLabel.EXPIRED,
    ComplianceStatus.DRAFT: ComplianceLabel.NOT_REQUIRED,
    ComplianceStatus.PENDING: ComplianceLabel.NOT_REQUIRED,
}


def _narrow(view: dict, status: ComplianceStatus, entity: str):
    status = ComplianceStatus(status)
    try:
        return view[status]
    except KeyError:
        raise ValueError(f"Status {status.value!r} cannot be stored on {entity}") from None


def to_training_record_status(status: ComplianceStatus) -> TrainingRecordStatus:
    return _narrow(_TRAINING_RECORD_VIEW, status, "training_record")


def to_certificate_status(status: ComplianceStatus) -> CertificateStatus:
    return _narrow(_CERTIFICATE_VIEW, status, "certificate")


def to_employee_certificate_status(status: ComplianceStatus) -> EmployeeCertificateStatus:
    return _narrow(_EMPLOYEE_CERTIFICATE_VIEW, status, "employee_certificate")


def to_compliance_label(status: ComplianceStatus) -> ComplianceLabel:
    return _narrow(_COMPLIANCE_LABELS, status, "compliance_label")


def widen(status) -> ComplianceStatus:
    """Any entity status back into the canonical enum (values are shared)."""
    value = status.value if isinstance(status, enum.Enum) else status
    return ComplianceStatus(value)


def is_current(status) -> bool:
    """True while a certificate still counts as held (active or expiring soon)."""
    return widen(status) in (ComplianceStatus.ACTIVE, ComplianceStatus.EXPIRING_SOON)
