from __future__ import annotations

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from certdb.apps.audit import models as audit_models
from certdb.apps.certificates import models as certificate_models
from certdb.apps.certificates import schemas as certificate_schemas
from certdb.apps.certificates import services as certificate_services
from certdb.apps.compliance.status import (
    CertificateStatus,
    ComplianceLabel,
    EmployeeCertificateStatus,
)
from certdb.apps.personnel import models as personnel_models
from certdb.apps.training import models as training_models
from certdb.apps.training import services as training_services
from certdb.apps.workflow import TransitionError
from certdb.clock import FixedClock

TODAY = date(2025, 3, 15)
Stage = certificate_models.CertificateLifecycleStage


def _create_employee(db, staff_number="EMP-001"):
    employee = personnel_models.Employee(employee_id=staff_number, name=f"Employee {staff_number}")
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def _create_training_type(db, *, code="FA", validity_months=24, **kwargs):
    training_type = training_models.TrainingType(
        name=kwargs.pop("name", f"Training {code}"),
        code=code,
        validity_months=validity_months,
        warning_period_days=30,
        **kwargs,
    )
    db.add(training_type)
    db.commit()
    db.refresh(training_type)
    return training_type


def _create_record(db, employee, training_type, *, expiry_date, completion_date=date(2024, 1, 10)):
    record = training_models.TrainingRecord(
        employee_id=employee.id,
        training_type_id=training_type.id,
        issue_date=completion_date,
        completion_date=completion_date,
        expiry_date=expiry_date,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def _issue(db, clock, *, expiry_date=TODAY + timedelta(days=200), code="FA"):
    employee = _create_employee(db, f"EMP-{code}")
    training_type = _create_training_type(db, code=code)
    record = _create_record(db, employee, training_type, expiry_date=expiry_date)
    certificate = certificate_services.create_certificate_from_training_record(db, record, clock=clock)
    db.commit()
    return record, certificate


def _create_certificate_type(db, *, code="LIC", validity_months=12, warning_days=None):
    certificate_type = certificate_models.CertificateType(
        name=f"Licence {code}",
        code=code,
        validity_months=validity_months,
        warning_days=warning_days,
    )
    db.add(certificate_type)
    db.commit()
    db.refresh(certificate_type)
    return certificate_type


# ---------------------------------------------------------------------------
# Issuing
# ---------------------------------------------------------------------------


def test_create_certificate_from_training_record(db_session, clock):
    record, certificate = _issue(db_session, clock)

    assert certificate.certificate_number == "TRA/FA-001/2025-03"
    assert certificate.training_record_id == record.id
    assert certificate.status == CertificateStatus.ACTIVE
    assert certificate.lifecycle_stage == Stage.ISSUED
    assert certificate.issue_date == record.completion_date
    assert certificate.expiry_date == record.expiry_date
    assert certificate.original_expiry_date == record.expiry_date
    assert certificate.expiry_date == date(2025, 10, 1)
    assert certificate.renewal_due_date == date(2025, 7, 1)
    assert certificate.is_verified is True
    assert certificate.verification_code.startswith("CERT-")
    assert record.certificate_number == certificate.certificate_number

    events = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_type == "certificate", audit_models.AuditEvent.action == "issued")
        .all()
    )
    assert len(events) == 1


def test_certificate_starts_with_the_record_status(db_session, clock):
    _, certificate = _issue(db_session, clock, expiry_date=TODAY + timedelta(days=10))
    assert certificate.status == CertificateStatus.EXPIRING_SOON


def test_issuer_prefers_certification_authority(db_session, clock):
    employee = _create_employee(db_session)
    training_type = _create_training_type(db_session, code="DG", certification_authority="DGCA")
    record = _create_record(db_session, employee, training_type, expiry_date=TODAY + timedelta(days=200))

    certificate = certificate_services.create_certificate_from_training_record(db_session, record, clock=clock)

    assert certificate.issued_by == "DGCA"
    assert certificate.certificate_number == "DGC/DG-001/2025-03"


def test_second_certificate_for_a_record_is_refused(db_session, clock):
    record, _ = _issue(db_session, clock)
    with pytest.raises(certificate_services.CertificateError):
        certificate_services.create_certificate_from_training_record(db_session, record, clock=clock)


def test_numbers_skip_text_already_taken(db_session, clock):
    employee = _create_employee(db_session)
    training_type = _create_training_type(db_session)
    first = _create_record(db_session, employee, training_type, expiry_date=TODAY + timedelta(days=200))
    second = _create_record(db_session, employee, training_type, expiry_date=TODAY + timedelta(days=200))

    # "Trans Air" and "Training Centre" render the same prefix from separate buckets.
    a = certificate_services.create_certificate_from_training_record(db_session, first, clock=clock, issued_by="Trans Air")
    b = certificate_services.create_certificate_from_training_record(db_session, second, clock=clock)
    db_session.commit()

    assert a.certificate_number == "TRA/FA-001/2025-03"
    assert b.certificate_number == "TRA/FA-002/2025-03"


def test_batch_create_reports_per_record(db_session, clock):
    record, _ = _issue(db_session, clock)
    employee = db_session.get(personnel_models.Employee, record.employee_id)
    training_type = db_session.get(training_models.TrainingType, record.training_type_id)
    fresh = _create_record(db_session, employee, training_type, expiry_date=TODAY + timedelta(days=300))

    results = certificate_services.batch_create_certificates(
        db_session,
        [record.id, fresh.id, 999],
        clock=clock,
    )
    db_session.commit()

    assert [r["status"] for r in results] == ["skipped", "created", "error"]
    assert results[1]["certificate_number"] == "TRA/FA-002/2025-03"
    assert fresh.certificate is not None


def test_auto_create_missing_certificates(db_session, clock):
    employee = _create_employee(db_session)
    required = _create_training_type(db_session, code="FA")
    optional = _create_training_type(db_session, code="IN", requires_certification=False)
    current = _create_record(db_session, employee, required, expiry_date=TODAY + timedelta(days=200))
    _create_record(db_session, employee, required, expiry_date=TODAY - timedelta(days=5))
    _create_record(db_session, employee, optional, expiry_date=TODAY + timedelta(days=200))

    results = certificate_services.auto_create_missing_certificates(db_session, clock=clock)
    db_session.commit()

    assert [r["training_record_id"] for r in results] == [current.id]
    assert results[0]["status"] == "created"


# ---------------------------------------------------------------------------
# Renewal / revocation / suspension
# ---------------------------------------------------------------------------


def test_renew_certificate_links_the_chain(db_session, clock):
    record, certificate = _issue(db_session, clock, expiry_date=TODAY + timedelta(days=20))

    successor = certificate_services.renew_certificate(db_session, certificate, clock=clock, actor="hr")
    db_session.commit()

    assert successor.id != certificate.id
    assert successor.renewed_from_id == certificate.id
    assert successor.renewal_generation == 2
    assert successor.status == CertificateStatus.ACTIVE
    assert successor.issue_date == TODAY
    assert successor.expiry_date == date(2027, 3, 15)
    assert successor.training_record_id != record.id
    assert successor.certificate_number == "TRA/FA-002/2025-03"

    assert certificate.status == CertificateStatus.RENEWED
    assert certificate.renewed_to_id == successor.id
    assert certificate.lifecycle_stage == Stage.ARCHIVED
    assert successor.certificate_number in certificate.notes

    transition = (
        db_session.query(audit_models.AuditEvent)
        .filter(
            audit_models.AuditEvent.entity_id == str(certificate.id),
            audit_models.AuditEvent.action == "transition",
        )
        .one()
    )
    assert transition.before["status"] == "expiring_soon"
    assert transition.after["status"] == "renewed"
    assert transition.after["renewed_to_id"] == successor.id
    assert transition.actor == "hr"


def test_renewed_certificate_keeps_its_state_when_the_record_expires(db_session, clock):
    record, certificate = _issue(db_session, clock, expiry_date=TODAY + timedelta(days=20))
    certificate_services.renew_certificate(db_session, certificate, clock=clock)
    db_session.commit()

    record.expiry_date = TODAY - timedelta(days=1)
    db_session.commit()

    assert certificate.status == CertificateStatus.RENEWED


def test_renewed_or_non_renewable_certificates_cannot_be_renewed(db_session, clock):
    _, certificate = _issue(db_session, clock)
    certificate_services.renew_certificate(db_session, certificate, clock=clock)
    with pytest.raises(certificate_services.CertificateError):
        certificate_services.renew_certificate(db_session, certificate, clock=clock)

    _, other = _issue(db_session, clock, code="FS")
    other.is_renewable = False
    with pytest.raises(certificate_services.CertificateError):
        certificate_services.renew_certificate(db_session, other, clock=clock)


def test_revoke_requires_a_reason(db_session, clock):
    _, certificate = _issue(db_session, clock)

    with pytest.raises(TransitionError) as exc_info:
        certificate_services.revoke_certificate(db_session, certificate, reason="", clock=clock)
    assert exc_info.value.code == "missing_requirements"
    assert certificate.status == CertificateStatus.ACTIVE

    certificate_services.revoke_certificate(db_session, certificate, reason="Falsified records", clock=clock)
    db_session.commit()

    assert certificate.status == CertificateStatus.REVOKED
    assert certificate.revocation_date == TODAY
    assert certificate.lifecycle_stage == Stage.ARCHIVED


def test_revoked_certificate_is_terminal(db_session, clock):
    _, certificate = _issue(db_session, clock)
    certificate_services.revoke_certificate(db_session, certificate, reason="Fraud", clock=clock)

    with pytest.raises(TransitionError) as exc_info:
        certificate_services.suspend_certificate(db_session, certificate, reason="Review", clock=clock)
    assert exc_info.value.code == "invalid_transition"

    with pytest.raises(certificate_services.CertificateError):
        certificate_services.renew_certificate(db_session, certificate, clock=clock)


def test_suspend_and_reinstate(db_session, clock):
    record, certificate = _issue(db_session, clock)

    certificate_services.suspend_certificate(db_session, certificate, reason="Medical review", clock=clock)
    db_session.commit()
    assert certificate.status == CertificateStatus.SUSPENDED
    assert certificate.suspension_start == TODAY
    assert certificate.lifecycle_stage == Stage.UNDER_REVIEW

    # Date-driven changes do not lift a suspension.
    record.expiry_date = TODAY + timedelta(days=10)
    db_session.commit()
    assert certificate.status == CertificateStatus.SUSPENDED

    certificate_services.reinstate_certificate(db_session, certificate, clock=clock)
    db_session.commit()
    assert certificate.status == CertificateStatus.EXPIRING_SOON
    assert certificate.suspension_end == TODAY
    assert certificate.expiry_date == record.expiry_date
    assert certificate.lifecycle_stage != Stage.UNDER_REVIEW


def test_draft_certificate_is_held_until_activated(db_session, clock):
    employee = _create_employee(db_session, "EMP-DR")
    training_type = _create_training_type(db_session, code="DR")
    record = _create_record(db_session, employee, training_type, expiry_date=TODAY + timedelta(days=10))
    certificate = certificate_services.create_certificate_from_training_record(
        db_session, record, clock=clock, draft=True
    )
    db_session.commit()
    assert certificate.status == CertificateStatus.DRAFT
    assert certificate.is_verified is False

    record.expiry_date = TODAY + timedelta(days=200)
    db_session.commit()
    assert certificate.status == CertificateStatus.DRAFT

    certificate_services.activate_certificate(db_session, certificate, clock=clock, actor="hr")
    db_session.commit()

    assert certificate.status == CertificateStatus.ACTIVE
    assert certificate.is_verified is True
    assert certificate.expiry_date == date(2025, 10, 1)
    assert certificate.lifecycle_stage == Stage.ACTIVE
    transition = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "transition")
        .one()
    )
    assert transition.before["status"] == "draft"
    assert transition.after["status"] == "active"


def test_cancel_requires_a_reason_and_is_terminal(db_session, clock):
    _, certificate = _issue(db_session, clock)

    with pytest.raises(TransitionError) as exc_info:
        certificate_services.cancel_certificate(db_session, certificate, reason="")
    assert exc_info.value.code == "missing_requirements"
    assert certificate.status == CertificateStatus.ACTIVE

    certificate_services.cancel_certificate(db_session, certificate, reason="Issued to the wrong employee")
    db_session.commit()

    assert certificate.status == CertificateStatus.CANCELLED
    assert certificate.cancellation_reason == "Issued to the wrong employee"
    assert certificate.lifecycle_stage == Stage.ARCHIVED

    with pytest.raises(TransitionError) as exc_info:
        certificate_services.activate_certificate(db_session, certificate, clock=clock)
    assert exc_info.value.code == "invalid_transition"


def test_suspension_end_must_not_precede_start(db_session, clock):
    _, certificate = _issue(db_session, clock)
    with pytest.raises(TransitionError) as exc_info:
        certificate_services.suspend_certificate(
            db_session,
            certificate,
            reason="Review",
            start=TODAY,
            end=TODAY - timedelta(days=1),
            clock=clock,
        )
    assert exc_info.value.detail == [
        {"field": "suspension_end", "reason": "suspension end must not precede start"}
    ]


def test_mark_as_verified(db_session, clock):
    _, certificate = _issue(db_session, clock)
    certificate.is_verified = False
    db_session.commit()

    certificate_services.mark_as_verified(db_session, certificate, clock=clock)

    assert certificate.is_verified is True
    assert certificate.verification_date == clock.now()


# ---------------------------------------------------------------------------
# Inspection / lifecycle
# ---------------------------------------------------------------------------


def test_validate_certificate(db_session, clock):
    _, certificate = _issue(db_session, clock)

    checks = certificate_services.validate_certificate(certificate, today=TODAY)
    assert checks["overall_valid"] is True
    assert checks["days_until_expiry"] == 200
    assert checks["employee_exists"] is True
    assert checks["file_recorded"] is False

    later = certificate_services.validate_certificate(certificate, today=TODAY + timedelta(days=200))
    assert later["is_expired"] is True
    assert later["overall_valid"] is False


def test_reactivated_record_moves_the_certificate_expiry(db_session, clock):
    record, certificate = _issue(db_session, clock, expiry_date=TODAY - timedelta(days=10))
    assert certificate.status == CertificateStatus.EXPIRED

    record.expiry_date = TODAY + timedelta(days=200)
    change = training_services.save_training_record(db_session, record, clock=clock)
    db_session.commit()

    assert change.certificate_updated is True
    assert certificate.status == CertificateStatus.ACTIVE
    assert certificate.expiry_date == date(2025, 10, 1)
    assert certificate.renewal_due_date == date(2025, 7, 1)
    checks = certificate_services.validate_certificate(certificate, today=TODAY)
    assert checks["is_expired"] is False
    assert checks["days_until_expiry"] == 200
    assert checks["overall_valid"] is True


def test_lifecycle_stages(db_session, clock):
    _, due = _issue(db_session, clock, expiry_date=TODAY + timedelta(days=20), code="FA")
    _, fresh = _issue(db_session, clock, expiry_date=TODAY + timedelta(days=300), code="FS")
    _, revoked = _issue(db_session, clock, code="DG")
    certificate_services.revoke_certificate(db_session, revoked, reason="Fraud", clock=clock)

    counts = certificate_services.refresh_lifecycles(db_session, clock=clock)
    db_session.commit()

    assert due.lifecycle_stage == Stage.RENEWAL_DUE
    assert fresh.lifecycle_stage == Stage.ACTIVE
    assert revoked.lifecycle_stage == Stage.ARCHIVED
    assert counts == {"renewal_due": 1, "active": 1, "archived": 1}


def test_employee_certificate_statistics(db_session, clock):
    record, certificate = _issue(db_session, clock, expiry_date=TODAY + timedelta(days=20))

    stats = certificate_services.employee_certificate_statistics(db_session, record.employee_id, today=TODAY)

    assert stats["total_certificates"] == 1
    assert stats["expiring_soon_certificates"] == 1
    assert stats["next_expiry"].id == certificate.id


def test_department_certificate_statistics(db_session, clock):
    department = personnel_models.Department(code="OPS", name="Operations")
    db_session.add(department)
    db_session.commit()
    mandatory = _create_training_type(db_session, code="MA", is_mandatory=True)
    optional = _create_training_type(db_session, code="NM", is_mandatory=False)

    alice = _create_employee(db_session, "EMP-A")
    bob = _create_employee(db_session, "EMP-B")
    carol = _create_employee(db_session, "EMP-C")
    dave = _create_employee(db_session, "EMP-D")
    for employee in (alice, bob, carol):
        employee.department_id = department.id
    carol.status = personnel_models.EmployeeStatus.INACTIVE
    db_session.commit()

    issued = [
        (alice, mandatory, 200),
        (bob, optional, 200),
        (bob, mandatory, 10),
        (carol, mandatory, 200),
        (dave, mandatory, 200),
    ]
    for employee, training_type, days_left in issued:
        record = _create_record(db_session, employee, training_type, expiry_date=TODAY + timedelta(days=days_left))
        certificate_services.create_certificate_from_training_record(db_session, record, clock=clock)
    db_session.commit()

    stats = certificate_services.department_certificate_statistics(db_session, department.id)

    assert stats["department_name"] == "Operations"
    assert stats["total_certificates"] == 4
    assert stats["active_certificates"] == 3
    assert stats["expiring_soon_certificates"] == 1
    assert stats["expired_certificates"] == 0
    assert stats["verified_certificates"] == 4
    assert stats["employee_count"] == 2
    assert stats["certificates_per_employee"] == 2.0
    assert stats["compliance_rate"] == 50.0


def test_department_statistics_without_staff(db_session):
    department = personnel_models.Department(code="EMPTY", name="Empty")
    db_session.add(department)
    db_session.commit()

    stats = certificate_services.department_certificate_statistics(db_session, department.id)

    assert stats["total_certificates"] == 0
    assert stats["certificates_per_employee"] == 0.0
    assert stats["compliance_rate"] == 100.0

    with pytest.raises(certificate_services.CertificateError):
        certificate_services.department_certificate_statistics(db_session, 404)


# ---------------------------------------------------------------------------
# Employee certificates
# ---------------------------------------------------------------------------


def test_employee_certificate_status_follows_dates(db_session, clock):
    employee = _create_employee(db_session)
    certificate_type = _create_certificate_type(db_session)

    completed = certificate_services.create_employee_certificate(
        db_session,
        certificate_schemas.EmployeeCertificateCreate(
            employee_id=employee.id,
            certificate_type_id=certificate_type.id,
            issue_date=date(2024, 6, 1),
            completion_date=date(2024, 6, 1),
        ),
        clock=clock,
    )
    pending = certificate_services.create_employee_certificate(
        db_session,
        certificate_schemas.EmployeeCertificateCreate(
            employee_id=employee.id,
            certificate_type_id=certificate_type.id,
        ),
        clock=clock,
    )
    db_session.commit()

    assert completed.expiry_date == date(2025, 6, 1)
    assert completed.status == EmployeeCertificateStatus.ACTIVE
    assert completed.compliance_status == ComplianceLabel.COMPLIANT
    assert pending.expiry_date is None
    assert pending.status == EmployeeCertificateStatus.PENDING
    assert pending.compliance_status == ComplianceLabel.NOT_REQUIRED

    completed.expiry_date = TODAY + timedelta(days=5)
    db_session.commit()
    assert completed.status == EmployeeCertificateStatus.EXPIRING_SOON

    completed.expiry_date = TODAY - timedelta(days=5)
    db_session.commit()
    assert completed.status == EmployeeCertificateStatus.EXPIRED


def test_status_sweep_expires_employee_certificates(db_session, clock):
    employee = _create_employee(db_session)
    certificate_type = _create_certificate_type(db_session)
    cert = certificate_services.create_employee_certificate(
        db_session,
        certificate_schemas.EmployeeCertificateCreate(
            employee_id=employee.id,
            certificate_type_id=certificate_type.id,
            issue_date=date(2024, 6, 1),
            completion_date=date(2024, 6, 1),
            expiry_date=TODAY + timedelta(days=60),
        ),
        clock=clock,
    )
    db_session.commit()
    assert cert.status == EmployeeCertificateStatus.ACTIVE

    later = FixedClock(TODAY + timedelta(days=100))
    preview = certificate_services.update_employee_certificate_statuses(db_session, clock=later, dry_run=True)
    assert preview["changed"] == 1
    assert cert.status == EmployeeCertificateStatus.ACTIVE

    summary = certificate_services.update_employee_certificate_statuses(db_session, clock=later)
    db_session.commit()

    assert summary == {
        "checked": 1,
        "changed": 1,
        "pending": 0,
        "active": 0,
        "expiring_soon": 0,
        "expired": 1,
        "errors": [],
    }
    assert cert.status == EmployeeCertificateStatus.EXPIRED
    assert cert.compliance_status == ComplianceLabel.EXPIRED

    again = certificate_services.update_employee_certificate_statuses(db_session, clock=later)
    assert again["changed"] == 0


def test_employee_certificate_with_unknown_type_is_refused(db_session, clock):
    employee = _create_employee(db_session)
    with pytest.raises(certificate_services.CertificateError):
        certificate_services.create_employee_certificate(
            db_session,
            certificate_schemas.EmployeeCertificateCreate(employee_id=employee.id, certificate_type_id=42),
            clock=clock,
        )


def test_certificate_files_are_metadata_only(db_session, clock):
    employee = _create_employee(db_session)
    certificate_type = _create_certificate_type(db_session)
    cert = certificate_services.create_employee_certificate(
        db_session,
        certificate_schemas.EmployeeCertificateCreate(
            employee_id=employee.id,
            certificate_type_id=certificate_type.id,
            completion_date=date(2024, 6, 1),
        ),
        clock=clock,
    )

    certificate_services.add_certificate_file(
        db_session,
        cert,
        {"stored_name": "lic-1.pdf", "original_name": "licence.pdf", "size": 2048},
    )
    certificate_services.add_certificate_file(
        db_session,
        cert,
        certificate_schemas.CertificateFile(stored_name="lic-2.pdf", size=10),
    )
    db_session.commit()
    db_session.expire_all()

    reloaded = db_session.get(certificate_models.EmployeeCertificate, cert.id)
    assert [f["stored_name"] for f in reloaded.certificate_files] == ["lic-1.pdf", "lic-2.pdf"]

    assert certificate_services.remove_certificate_file(db_session, reloaded, "lic-1.pdf") is True
    assert certificate_services.remove_certificate_file(db_session, reloaded, "missing.pdf") is False
    db_session.commit()
    assert [f["stored_name"] for f in reloaded.certificate_files] == ["lic-2.pdf"]

    with pytest.raises(ValidationError):
        certificate_services.add_certificate_file(db_session, reloaded, {"stored_name": "", "size": -1})


def test_employee_certificate_history(db_session, clock):
    employee = _create_employee(db_session)
    certificate_type = _create_certificate_type(db_session)

    def _create(completed_on):
        return certificate_services.create_employee_certificate(
            db_session,
            certificate_schemas.EmployeeCertificateCreate(
                employee_id=employee.id,
                certificate_type_id=certificate_type.id,
                issue_date=completed_on,
                completion_date=completed_on,
            ),
            clock=clock,
        )

    old = _create(date(2023, 6, 1))
    new = _create(date(2024, 6, 1))
    db_session.commit()

    assert old.status == EmployeeCertificateStatus.EXPIRED
    history = certificate_services.history_for_employee_and_type(db_session, employee.id, certificate_type.id)
    assert [c.id for c in history] == [new.id, old.id]
    assert certificate_services.current_for_employee_and_type(db_session, employee.id, certificate_type.id).id == new.id
    assert certificate_services.is_most_recent(db_session, new)
    assert not certificate_services.is_most_recent(db_session, old)


def test_certificate_history_lists_issue_and_transitions(db_session, clock):
    _, certificate = _issue(db_session, clock)
    certificate_services.revoke_certificate(db_session, certificate, reason="Fraud", clock=clock, actor="hr")
    db_session.commit()

    actions = {event.action for event in certificate_services.certificate_history(db_session, certificate)}

    assert actions == {"issued", "transition"}
