from __future__ import annotations

from datetime import date, timedelta

import pytest

from certdb.apps.audit import models as audit_models
from certdb.apps.certificates import models as certificate_models
from certdb.apps.compliance.status import CertificateStatus
from certdb.apps.notifications import providers as reminder_providers
from certdb.apps.notifications import service as reminder_service
from certdb.apps.personnel import models as personnel_models
from certdb.apps.training import models as training_models
from certdb.clock import FixedClock

TODAY = date(2025, 3, 15)
Priority = reminder_service.ReminderPriority


class RecordingProvider(reminder_providers.ReminderProvider):
    def __init__(self):
        self.sent = []

    def send(self, **kwargs):
        self.sent.append(kwargs)


class FailingProvider(reminder_providers.ReminderProvider):
    def send(self, **kwargs):
        raise RuntimeError("boom")


def _create_employee(db, staff_number, *, email="staff@example.com", status=personnel_models.EmployeeStatus.ACTIVE):
    employee = personnel_models.Employee(
        employee_id=staff_number,
        name=f"Employee {staff_number}",
        email=email,
        status=status,
    )
    db.add(employee)
    db.commit()
    return employee


def _create_training_type(db, code="FA"):
    training_type = training_models.TrainingType(
        name="First Aid",
        code=code,
        validity_months=24,
        warning_period_days=30,
    )
    db.add(training_type)
    db.commit()
    return training_type


def _create_record(db, employee, training_type, days_left):
    record = training_models.TrainingRecord(
        employee_id=employee.id,
        training_type_id=training_type.id,
        issue_date=date(2023, 6, 1),
        completion_date=date(2023, 6, 1),
        expiry_date=TODAY + timedelta(days=days_left),
    )
    db.add(record)
    db.commit()
    return record


def _use_provider(monkeypatch, provider, configured=True):
    monkeypatch.setattr(reminder_providers, "get_reminder_provider", lambda: (provider, configured))


def test_priority_follows_days_left():
    assert reminder_service.determine_priority(1) == Priority.URGENT
    assert reminder_service.determine_priority(7) == Priority.URGENT
    assert reminder_service.determine_priority(8) == Priority.HIGH
    assert reminder_service.determine_priority(30) == Priority.HIGH
    assert reminder_service.determine_priority(31) == Priority.NORMAL
    assert reminder_service.determine_priority(60) == Priority.NORMAL
    assert reminder_service.determine_priority(61) == Priority.LOW


def test_reminder_periods():
    assert reminder_service.reminder_period(None) is None
    assert reminder_service.reminder_period(0) is None
    assert reminder_service.reminder_period(1) == 7
    assert reminder_service.reminder_period(7) == 7
    assert reminder_service.reminder_period(8) == 30
    assert reminder_service.reminder_period(45) == 60
    assert reminder_service.reminder_period(90) == 90
    assert reminder_service.reminder_period(91) is None


def test_select_due_reminders(db_session):
    training_type = _create_training_type(db_session)
    employee = _create_employee(db_session, "EMP-1")
    retired = _create_employee(db_session, "EMP-2", status=personnel_models.EmployeeStatus.INACTIVE)
    for days_left in (45, 5, 120, -2):
        _create_record(db_session, employee, training_type, days_left)
    _create_record(db_session, retired, training_type, 10)

    due = reminder_service.select_due_reminders(db_session, today=TODAY)

    assert [reminder.days_left for reminder in due] == [5, 45]
    assert [reminder.priority for reminder in due] == [Priority.URGENT, Priority.NORMAL]
    assert [reminder.period for reminder in due] == [7, 60]
    assert due[0].employee_email == "staff@example.com"
    assert due[0].subject == "First Aid expires in 5 days"
    assert due[0].context()["expiry_date"] == "2025-03-20"


def test_settled_certificates_get_no_reminder(db_session):
    training_type = _create_training_type(db_session)
    employee = _create_employee(db_session, "EMP-1")
    record = _create_record(db_session, employee, training_type, 20)
    certificate = certificate_models.Certificate(
        employee_id=employee.id,
        training_type_id=training_type.id,
        certificate_number="TRA/FA-001/2023-06",
        issued_by="Training Centre",
        issue_date=record.issue_date,
        expiry_date=record.expiry_date,
        status=CertificateStatus.REVOKED,
    )
    certificate.training_record = record
    db_session.add(certificate)
    db_session.commit()

    assert reminder_service.select_due_reminders(db_session, today=TODAY) == []


def test_send_without_provider_marks_nothing(db_session, clock, monkeypatch):
    training_type = _create_training_type(db_session)
    record = _create_record(db_session, _create_employee(db_session, "EMP-1"), training_type, 20)
    _use_provider(monkeypatch, reminder_providers.NoopProvider(), configured=False)

    summary = reminder_service.send_expiry_reminders(db_session, clock=clock)

    assert summary["provider_configured"] is False
    assert summary["due"] == 1
    assert summary["sent"] == 0
    assert record.reminder_sent_at is None
    assert record.reminder_count == 0


def test_send_stamps_record_once_per_period(db_session, clock, monkeypatch):
    training_type = _create_training_type(db_session)
    record = _create_record(db_session, _create_employee(db_session, "EMP-1"), training_type, 45)
    provider = RecordingProvider()
    _use_provider(monkeypatch, provider)

    summary = reminder_service.send_expiry_reminders(db_session, clock=clock)
    db_session.commit()

    assert summary["sent"] == 1
    assert summary["by_period"] == {90: 0, 60: 1, 30: 0, 7: 0}
    assert summary["by_priority"]["normal"] == 1
    assert record.reminder_count == 1
    assert record.reminder_sent_at == clock.now()
    assert provider.sent[0]["recipient"] == "staff@example.com"
    assert provider.sent[0]["correlation_id"] == f"training_record:{record.id}:reminder:60"
    assert provider.sent[0]["context"]["priority"] == "normal"
    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "reminder_sent")
        .one()
    )
    assert event.entity_id == str(record.id)

    again = reminder_service.send_expiry_reminders(db_session, clock=clock)
    assert again["due"] == 0

    later = FixedClock(TODAY + timedelta(days=20))
    next_period = reminder_service.send_expiry_reminders(db_session, clock=later)
    db_session.commit()

    assert next_period["sent"] == 1
    assert next_period["by_period"][30] == 1
    assert record.reminder_count == 2
    assert len(provider.sent) == 2


def test_dry_run_counts_without_sending(db_session, clock):
    training_type = _create_training_type(db_session)
    record = _create_record(db_session, _create_employee(db_session, "EMP-1"), training_type, 3)
    provider = RecordingProvider()

    summary = reminder_service.send_expiry_reminders(db_session, provider=provider, clock=clock, dry_run=True)

    assert summary["due"] == 1
    assert summary["by_priority"]["urgent"] == 1
    assert summary["sent"] == 0
    assert provider.sent == []
    assert record.reminder_sent_at is None


def test_failed_delivery_stays_due(db_session, clock, monkeypatch):
    training_type = _create_training_type(db_session)
    record = _create_record(db_session, _create_employee(db_session, "EMP-1"), training_type, 20)
    _use_provider(monkeypatch, FailingProvider())

    summary = reminder_service.send_expiry_reminders(db_session, clock=clock)

    assert summary["sent"] == 0
    assert summary["errors"] == [{"training_record_id": record.id, "error": "boom"}]
    assert record.reminder_sent_at is None
    assert record.reminder_count == 0
    assert len(reminder_service.select_due_reminders(db_session, today=TODAY)) == 1


def test_employee_without_email_is_counted(db_session, clock):
    training_type = _create_training_type(db_session)
    record = _create_record(db_session, _create_employee(db_session, "EMP-1", email=None), training_type, 20)
    provider = RecordingProvider()

    summary = reminder_service.send_expiry_reminders(db_session, provider=provider, clock=clock)

    assert summary["no_recipient"] == 1
    assert summary["sent"] == 0
    assert provider.sent == []
    assert record.reminder_sent_at is None


def test_provider_from_environment(monkeypatch):
    monkeypatch.delenv("CERTDB_REMINDER_PROVIDER", raising=False)
    provider, configured = reminder_providers.get_reminder_provider()
    assert isinstance(provider, reminder_providers.NoopProvider)
    assert configured is False

    monkeypatch.setenv("CERTDB_REMINDER_PROVIDER", "disabled")
    assert reminder_providers.get_reminder_provider()[1] is False

    monkeypatch.setenv("CERTDB_REMINDER_PROVIDER", "Log")
    provider, configured = reminder_providers.get_reminder_provider()
    assert isinstance(provider, reminder_providers.LoggingProvider)
    assert configured is True

    monkeypatch.setenv("CERTDB_REMINDER_PROVIDER", "smtp")
    with pytest.raises(ValueError):
        reminder_providers.get_reminder_provider()
