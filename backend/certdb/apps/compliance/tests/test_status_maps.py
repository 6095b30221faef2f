from __future__ import annotations

import pytest

from certdb.apps.compliance.status import (
    CertificateStatus,
    ComplianceLabel,
    ComplianceStatus,
    EmployeeCertificateStatus,
    TrainingRecordStatus,
    is_current,
    to_certificate_status,
    to_compliance_label,
    to_employee_certificate_status,
    to_training_record_status,
    widen,
)


def test_training_record_view_collapses_to_two_states():
    assert to_training_record_status(ComplianceStatus.EXPIRING_SOON) == TrainingRecordStatus.ACTIVE
    assert to_training_record_status(ComplianceStatus.ACTIVE) == TrainingRecordStatus.ACTIVE
    assert to_training_record_status(ComplianceStatus.EXPIRED) == TrainingRecordStatus.EXPIRED
    assert to_training_record_status(ComplianceStatus.REVOKED) == TrainingRecordStatus.EXPIRED


def test_certificate_view_keeps_every_certificate_state():
    for status in CertificateStatus:
        assert to_certificate_status(widen(status)) == status


def test_employee_certificate_view():
    assert to_employee_certificate_status(ComplianceStatus.PENDING) == EmployeeCertificateStatus.PENDING
    assert to_employee_certificate_status(ComplianceStatus.COMPLETED) == EmployeeCertificateStatus.COMPLETED
    assert to_employee_certificate_status(ComplianceStatus.SUSPENDED) == EmployeeCertificateStatus.EXPIRED


def test_states_without_meaning_cannot_be_narrowed():
    with pytest.raises(ValueError):
        to_training_record_status(ComplianceStatus.RENEWED)
    with pytest.raises(ValueError):
        to_training_record_status(ComplianceStatus.DRAFT)
    with pytest.raises(ValueError):
        to_employee_certificate_status(ComplianceStatus.RENEWED)
    with pytest.raises(ValueError):
        to_compliance_label(ComplianceStatus.RENEWED)


def test_compliance_labels():
    assert to_compliance_label(ComplianceStatus.ACTIVE) == ComplianceLabel.COMPLIANT
    assert to_compliance_label(ComplianceStatus.EXPIRING_SOON) == ComplianceLabel.EXPIRING_SOON
    assert to_compliance_label(ComplianceStatus.EXPIRED) == ComplianceLabel.EXPIRED
    assert to_compliance_label(ComplianceStatus.PENDING) == ComplianceLabel.NOT_REQUIRED


def test_widen_accepts_entity_enums_and_strings():
    assert widen(TrainingRecordStatus.EXPIRED) == ComplianceStatus.EXPIRED
    assert widen(EmployeeCertificateStatus.COMPLETED) == ComplianceStatus.COMPLETED
    assert widen("suspended") == ComplianceStatus.SUSPENDED


def test_is_current():
    assert is_current(CertificateStatus.ACTIVE)
    assert is_current(CertificateStatus.EXPIRING_SOON)
    assert not is_current(CertificateStatus.SUSPENDED)
    assert not is_current(CertificateStatus.EXPIRED)
