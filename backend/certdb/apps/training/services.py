# backend/certdb/apps/training/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import event, select
from sqlalchemy.orm import Session, joinedload

from certdb.apps.compliance.classifier import calculate_expiry_date as _calculate_expiry_date
from certdb.apps.compliance.classifier import classify, renewal_due_date
from certdb.apps.compliance.status import (
    ADMINISTRATIVE_STATES,
    ComplianceLabel,
    ComplianceStatus,
    TrainingRecordStatus,
    to_certificate_status,
    to_compliance_label,
    to_training_record_status,
    widen,
)
from certdb.apps.personnel.models import Employee, EmployeeStatus
from certdb.clock import Clock, resolve_clock, session_clock, using_clock

from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results / errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusChange:
    """Outcome of recomputing (or explicitly moving) one training record."""

    canonical: ComplianceStatus
    previous: Optional[ComplianceLabel]
    current: ComplianceLabel
    changed: bool
    certificate_updated: bool = False
    reason: Optional[str] = None


class StatusPropagationError(Exception):
    """Raised when a training record and its certificate could not be saved together."""

    def __init__(self, message: str, *, record_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.record_id = record_id


# ---------------------------------------------------------------------------
# Classification of one record
# ---------------------------------------------------------------------------


def _training_type(record: models.TrainingRecord, db: Optional[Session]) -> Optional[models.TrainingType]:
    training_type = record.training_type
    if training_type is None and db is not None and record.training_type_id is not None:
        training_type = db.get(models.TrainingType, record.training_type_id)
    return training_type


def warning_days_for(record: models.TrainingRecord, db: Optional[Session] = None) -> Optional[int]:
    training_type = _training_type(record, db)
    if training_type is None:
        return None
    return training_type.warning_period_days


def classify_training_record(
    record: models.TrainingRecord,
    *,
    today: date,
    db: Optional[Session] = None,
) -> ComplianceStatus:
    # A training record only exists once the training was done.
    return classify(
        record.issue_date,
        record.expiry_date,
        record.completion_date,
        warning_days_for(record, db),
        today=today,
        tracks_completion=False,
    )


def recompute_training_record(
    record: models.TrainingRecord,
    *,
    today: date,
    db: Optional[Session] = None,
) -> StatusChange:
    """Re-derive `status` and `compliance_status` from the dates. Idempotent."""
    previous = record.compliance_status
    previous_status = record.status

    canonical = classify_training_record(record, today=today, db=db)
    new_status = to_training_record_status(canonical)
    new_label = to_compliance_label(canonical)

    if previous_status != new_status:
        record.status = new_status
    if previous != new_label:
        record.compliance_status = new_label

    return StatusChange(
        canonical=canonical,
        previous=ComplianceLabel(previous) if previous is not None else None,
        current=new_label,
        changed=previous_status != new_status or previous != new_label,
    )


def _certificate_held(certificate) -> bool:
    return certificate.status is not None and widen(certificate.status) in ADMINISTRATIVE_STATES


def _certificate_out_of_step(certificate, record: models.TrainingRecord, canonical: ComplianceStatus) -> bool:
    if certificate.status != to_certificate_status(canonical):
        return True
    return record.expiry_date is not None and certificate.expiry_date != record.expiry_date


def propagate_to_certificate(record: models.TrainingRecord, canonical: ComplianceStatus) -> bool:
    """
    Copy a record's date-driven status and expiry onto its certificate.

    TrainingRecord -> Certificate only. Certificates held in an
    administrative state keep both. Returns True when the certificate changed.
    """
    certificate = record.certificate
    if certificate is None or _certificate_held(certificate):
        return False
    if not _certificate_out_of_step(certificate, record, canonical):
        return False

    if record.expiry_date is not None and certificate.expiry_date != record.expiry_date:
        certificate.expiry_date = record.expiry_date
        certificate.renewal_due_date = renewal_due_date(record.expiry_date)
    new_status = to_certificate_status(canonical)
    if certificate.status != new_status:
        certificate.status = new_status
    return True


def _recompute_and_propagate(
    record: models.TrainingRecord,
    *,
    today: date,
    db: Optional[Session] = None,
) -> StatusChange:
    change = recompute_training_record(record, today=today, db=db)
    certificate_updated = propagate_to_certificate(record, change.canonical)
    if certificate_updated:
        return StatusChange(
            canonical=change.canonical,
            previous=change.previous,
            current=change.current,
            changed=change.changed,
            certificate_updated=True,
        )
    return change


def preview_training_record(
    record: models.TrainingRecord,
    *,
    today: date,
    db: Optional[Session] = None,
) -> StatusChange:
    """What recompute_training_record would do, without touching the record."""
    canonical = classify_training_record(record, today=today, db=db)
    new_label = to_compliance_label(canonical)
    changed = (
        record.status != to_training_record_status(canonical)
        or record.compliance_status != new_label
    )
    certificate = record.certificate
    certificate_updated = (
        certificate is not None
        and not _certificate_held(certificate)
        and _certificate_out_of_step(certificate, record, canonical)
    )
    return StatusChange(
        canonical=canonical,
        previous=ComplianceLabel(record.compliance_status) if record.compliance_status else None,
        current=new_label,
        changed=changed,
        certificate_updated=certificate_updated,
    )


@event.listens_for(Session, "before_flush")
def recompute_on_flush(session: Session, flush_context, instances) -> None:
    """Every new or modified training record is reclassified in the same flush."""
    records = [
        obj
        for obj in list(session.new) + list(session.dirty)
        if isinstance(obj, models.TrainingRecord)
    ]
    if not records:
        return
    today = session_clock(session).today()
    for record in records:
        _recompute_and_propagate(record, today=today, db=session)


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------


def calculate_expiry_date(training_type: models.TrainingType, base_date: date) -> Optional[date]:
    return _calculate_expiry_date(base_date, training_type.validity_months)


def fill_expiry_date(record: models.TrainingRecord, db: Optional[Session] = None) -> None:
    """Derive a missing expiry date from the type's validity period."""
    if record.expiry_date is not None:
        return
    base_date = record.completion_date or record.issue_date
    training_type = _training_type(record, db)
    if base_date is None or training_type is None:
        return
    record.expiry_date = calculate_expiry_date(training_type, base_date)


def save_training_record(
    db: Session,
    record: models.TrainingRecord,
    *,
    clock: Optional[Clock] = None,
) -> StatusChange:
    """
    Persist a record together with its certificate's status.

    Both writes happen inside one SAVEPOINT; if either fails, neither is kept
    and StatusPropagationError is raised.
    """
    today = resolve_clock(clock, db).today()
    record_id = record.id
    try:
        with using_clock(db, clock), db.begin_nested():
            db.add(record)
            fill_expiry_date(record, db)
            change = _recompute_and_propagate(record, today=today, db=db)
            db.flush()
    except Exception as exc:
        logger.warning(
            "Training record save rolled back",
            extra={"record_id": record_id, "error": str(exc)},
        )
        raise StatusPropagationError(
            f"Could not save training record {record_id or '(new)'}: {exc}",
            record_id=record_id,
        ) from exc
    return change


def mark_as_expired(
    db: Session,
    record: models.TrainingRecord,
    *,
    clock: Optional[Clock] = None,
) -> StatusChange:
    """Expire a record now by moving its expiry date to yesterday."""
    today = resolve_clock(clock, db).today()
    if record.expiry_date is None or record.expiry_date > today - timedelta(days=1):
        record.expiry_date = today - timedelta(days=1)
    return save_training_record(db, record, clock=clock)


def mark_as_active(
    db: Session,
    record: models.TrainingRecord,
    *,
    clock: Optional[Clock] = None,
) -> StatusChange:
    """
    Re-save a record whose expiry date is in the future (or absent).

    Status is never forced: an expired date stays expired and the result
    says why.
    """
    today = resolve_clock(clock, db).today()
    if record.expiry_date is not None and record.expiry_date <= today:
        canonical = classify_training_record(record, today=today, db=db)
        label = to_compliance_label(canonical)
        return StatusChange(
            canonical=canonical,
            previous=ComplianceLabel(record.compliance_status) if record.compliance_status else None,
            current=label,
            changed=False,
            reason="expiry_date is not in the future; move it forward to reactivate",
        )
    return save_training_record(db, record, clock=clock)


# ---------------------------------------------------------------------------
# Periodic sweep
# ---------------------------------------------------------------------------


def update_expired_records(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    training_type_id: Optional[int] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Recompute every training record against one "today".

    Idempotent: a second run without date changes reports no changes.
    Failures are collected per record instead of aborting the sweep.
    """
    today = resolve_clock(clock, db).today()
    summary: Dict[str, Any] = {
        "checked": 0,
        "changed": 0,
        "expired": 0,
        "expiring_soon": 0,
        "active": 0,
        "certificates_updated": 0,
        "errors": [],
    }

    query = db.query(models.TrainingRecord).options(
        joinedload(models.TrainingRecord.training_type),
        joinedload(models.TrainingRecord.certificate),
    )
    if training_type_id is not None:
        query = query.filter(models.TrainingRecord.training_type_id == training_type_id)

    for record in query.order_by(models.TrainingRecord.id).all():
        summary["checked"] += 1
        try:
            if dry_run:
                change = preview_training_record(record, today=today, db=db)
            else:
                with using_clock(db, clock), db.begin_nested():
                    change = _recompute_and_propagate(record, today=today, db=db)
                    db.flush()
        except Exception as exc:
            logger.warning(
                "Status sweep failed for training record",
                extra={"record_id": record.id, "error": str(exc)},
            )
            summary["errors"].append({"record_id": record.id, "error": str(exc)})
            continue

        if change.canonical == ComplianceStatus.EXPIRED:
            summary["expired"] += 1
        elif change.canonical == ComplianceStatus.EXPIRING_SOON:
            summary["expiring_soon"] += 1
        else:
            summary["active"] += 1
        if change.changed:
            summary["changed"] += 1
        if change.certificate_updated:
            summary["certificates_updated"] += 1

    logger.info(
        "Training status sweep finished",
        extra={
            "today": today.isoformat(),
            "checked": summary["checked"],
            "changed": summary["changed"],
            "certificates_updated": summary["certificates_updated"],
            "errors": len(summary["errors"]),
            "dry_run": dry_run,
        },
    )
    return summary


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_training_record(
    db: Session,
    data: Dict[str, Any],
    *,
    today: date,
    record_id: Optional[int] = None,
) -> Dict[str, str]:
    """
    Check a record payload before saving. Returns {field: message}; empty
    when valid.
    """
    errors: Dict[str, str] = {}

    employee_pk = data.get("employee_id")
    employee = db.get(Employee, employee_pk) if employee_pk is not None else None
    if employee is None:
        errors["employee_id"] = "Employee not found."
    elif employee.status != EmployeeStatus.ACTIVE:
        errors["employee_id"] = "Employee is not active."

    type_pk = data.get("training_type_id")
    training_type = db.get(models.TrainingType, type_pk) if type_pk is not None else None
    if training_type is None:
        errors["training_type_id"] = "Training type not found."
    elif not training_type.is_active:
        errors["training_type_id"] = "Training type is not active."

    issue_date = data.get("issue_date")
    expiry_date = data.get("expiry_date")
    completion_date = data.get("completion_date")
    if issue_date is not None and issue_date > today:
        errors["issue_date"] = "Issue date cannot be in the future."
    if issue_date is not None and expiry_date is not None and expiry_date <= issue_date:
        errors["expiry_date"] = "Expiry date must be after the issue date."
    if completion_date is not None and completion_date > today:
        errors["completion_date"] = "Completion date cannot be in the future."

    certificate_number = (data.get("certificate_number") or "").strip()
    if certificate_number:
        query = db.query(models.TrainingRecord).filter(
            models.TrainingRecord.certificate_number == certificate_number
        )
        if record_id is not None:
            query = query.filter(models.TrainingRecord.id != record_id)
        if query.first() is not None:
            errors["certificate_number"] = "Certificate number already exists."

    score = data.get("score")
    passing_score = data.get("passing_score")
    if score is not None and passing_score is not None and score < passing_score:
        errors["score"] = "Score is below the passing score."

    return errors


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_expiring_soon(db: Session, days: int = 30, *, today: date) -> List[models.TrainingRecord]:
    """Records expiring after today and no later than today + days."""
    return (
        db.query(models.TrainingRecord)
        .filter(
            models.TrainingRecord.expiry_date.isnot(None),
            models.TrainingRecord.expiry_date > today,
            models.TrainingRecord.expiry_date <= today + timedelta(days=days),
        )
        .order_by(models.TrainingRecord.expiry_date.asc())
        .all()
    )


def get_expired(db: Session, *, today: date) -> List[models.TrainingRecord]:
    return (
        db.query(models.TrainingRecord)
        .filter(
            models.TrainingRecord.expiry_date.isnot(None),
            models.TrainingRecord.expiry_date <= today,
        )
        .order_by(models.TrainingRecord.expiry_date.asc())
        .all()
    )


def _valid_record_filter(today: date):
    return (
        models.TrainingRecord.status == TrainingRecordStatus.ACTIVE,
        (models.TrainingRecord.expiry_date.is_(None)) | (models.TrainingRecord.expiry_date > today),
    )


def has_valid_certification(db: Session, employee_id: int, training_type_id: int, *, today: date) -> bool:
    return (
        db.query(models.TrainingRecord.id)
        .filter(
            models.TrainingRecord.employee_id == employee_id,
            models.TrainingRecord.training_type_id == training_type_id,
            *_valid_record_filter(today),
        )
        .first()
        is not None
    )


def get_employees_needing_training(db: Session, training_type_id: int, *, today: date) -> List[Employee]:
    """Active employees without a valid record of the given training type."""
    covered = select(models.TrainingRecord.employee_id).where(
        models.TrainingRecord.training_type_id == training_type_id,
        *_valid_record_filter(today),
    )
    return (
        db.query(Employee)
        .filter(
            Employee.status == EmployeeStatus.ACTIVE,
            Employee.id.notin_(covered),
        )
        .order_by(Employee.name.asc())
        .all()
    )
