from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from certdb.apps.audit import services as audit_services
from certdb.apps.compliance.classifier import days_until_expiry
from certdb.apps.compliance.status import CertificateStatus
from certdb.apps.personnel.models import Employee, EmployeeStatus
from certdb.apps.training.models import TrainingRecord
from certdb.clock import Clock, resolve_clock

from . import providers

logger = logging.getLogger(__name__)

# Days before expiry at which a reminder goes out, largest first.
REMINDER_PERIODS = (90, 60, 30, 7)

_SETTLED = (CertificateStatus.RENEWED, CertificateStatus.REVOKED, CertificateStatus.CANCELLED)


class ReminderPriority(str, enum.Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


def determine_priority(days_left: int) -> ReminderPriority:
    if days_left <= 7:
        return ReminderPriority.URGENT
    if days_left <= 30:
        return ReminderPriority.HIGH
    if days_left <= 60:
        return ReminderPriority.NORMAL
    return ReminderPriority.LOW


def reminder_period(days_left: Optional[int]) -> Optional[int]:
    """The tightest reminder period `days_left` falls inside, or None outside the reminder window."""
    if days_left is None or days_left <= 0 or days_left > max(REMINDER_PERIODS):
        return None
    return min(period for period in REMINDER_PERIODS if period >= days_left)


@dataclass
class ExpiryReminder:
    record_id: int
    employee_id: int
    employee_name: str
    employee_email: Optional[str]
    training_type: str
    expiry_date: date
    days_left: int
    priority: ReminderPriority
    period: int
    certificate_number: Optional[str] = None

    @property
    def subject(self) -> str:
        return f"{self.training_type} expires in {self.days_left} days"

    def context(self) -> Dict[str, Any]:
        data = asdict(self)
        data["expiry_date"] = self.expiry_date.isoformat()
        data["priority"] = self.priority.value
        return data


def _already_reminded(record: TrainingRecord, period: int) -> bool:
    # One reminder per period: a later period is only due once days_left drops into it.
    if record.reminder_sent_at is None:
        return False
    previous = reminder_period(days_until_expiry(record.expiry_date, record.reminder_sent_at.date()))
    return previous is not None and previous <= period


def select_due_reminders(db: Session, *, today: date) -> List[ExpiryReminder]:
    """
    Training records of active employees that have entered a reminder period
    they have not been reminded for yet, soonest expiry first.

    Records whose certificate was renewed, revoked or cancelled are left alone.
    """
    horizon = today + timedelta(days=max(REMINDER_PERIODS))
    records = (
        db.query(TrainingRecord)
        .join(Employee, TrainingRecord.employee_id == Employee.id)
        .options(
            joinedload(TrainingRecord.employee),
            joinedload(TrainingRecord.training_type),
            joinedload(TrainingRecord.certificate),
        )
        .filter(Employee.status == EmployeeStatus.ACTIVE)
        .filter(TrainingRecord.expiry_date > today, TrainingRecord.expiry_date <= horizon)
        .order_by(TrainingRecord.expiry_date.asc(), TrainingRecord.id.asc())
        .all()
    )

    due = []
    for record in records:
        certificate = record.certificate
        if certificate is not None and certificate.status in _SETTLED:
            continue
        days_left = days_until_expiry(record.expiry_date, today)
        period = reminder_period(days_left)
        if period is None or _already_reminded(record, period):
            continue
        due.append(
            ExpiryReminder(
                record_id=record.id,
                employee_id=record.employee_id,
                employee_name=record.employee.name,
                employee_email=record.employee.email,
                training_type=record.training_type.name if record.training_type else "Training",
                expiry_date=record.expiry_date,
                days_left=days_left,
                priority=determine_priority(days_left),
                period=period,
                certificate_number=certificate.certificate_number if certificate else record.certificate_number,
            )
        )
    return due


def send_expiry_reminders(
    db: Session,
    *,
    provider: Optional[providers.ReminderProvider] = None,
    clock: Optional[Clock] = None,
    dry_run: bool = False,
    actor: Optional[str] = "reminders",
) -> Dict[str, Any]:
    """
    Deliver every due reminder through the provider.

    A delivered reminder stamps `reminder_sent_at` and bumps `reminder_count`
    on its record. A failed delivery is collected in `errors` and left due, so
    the next run retries it. With no provider configured nothing is sent or
    stamped. The caller owns the transaction.
    """
    clock = resolve_clock(clock, db)
    configured = True
    if provider is None:
        provider, configured = providers.get_reminder_provider()

    reminders = select_due_reminders(db, today=clock.today())
    summary: Dict[str, Any] = {
        "due": len(reminders),
        "sent": 0,
        "no_recipient": 0,
        "provider_configured": configured,
        "by_period": {period: 0 for period in REMINDER_PERIODS},
        "by_priority": {priority.value: 0 for priority in ReminderPriority},
        "errors": [],
    }
    for reminder in reminders:
        summary["by_period"][reminder.period] += 1
        summary["by_priority"][reminder.priority.value] += 1

    if dry_run or not configured:
        return summary

    for reminder in reminders:
        if not reminder.employee_email:
            summary["no_recipient"] += 1
            continue
        try:
            provider.send(
                recipient=reminder.employee_email,
                subject=reminder.subject,
                context=reminder.context(),
                correlation_id=f"training_record:{reminder.record_id}:reminder:{reminder.period}",
            )
        except Exception as exc:
            logger.warning(
                "Expiry reminder delivery failed",
                extra={"training_record_id": reminder.record_id, "error": str(exc)},
            )
            summary["errors"].append({"training_record_id": reminder.record_id, "error": str(exc)})
            continue

        record = db.get(TrainingRecord, reminder.record_id)
        record.reminder_sent_at = clock.now()
        record.reminder_count = (record.reminder_count or 0) + 1
        summary["sent"] += 1
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="training_record",
            entity_id=str(record.id),
            action="reminder_sent",
            metadata={
                "period": reminder.period,
                "priority": reminder.priority.value,
                "days_left": reminder.days_left,
                "recipient": reminder.employee_email,
            },
        )
    db.flush()

    logger.info(
        "Expiry reminders sent",
        extra={
            "due": summary["due"],
            "sent": summary["sent"],
            "no_recipient": summary["no_recipient"],
            "errors": len(summary["errors"]),
        },
    )
    return summary
