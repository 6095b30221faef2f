# backend/certdb/apps/certificates/services.py

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import event
from sqlalchemy.orm import Session, joinedload

from certdb.apps.audit import schemas as audit_schemas
from certdb.apps.audit import services as audit_services
from certdb.apps.compliance.classifier import (
    calculate_expiry_date,
    classify,
    days_until_expiry,
    renewal_due_date,
)
from certdb.apps.compliance.status import (
    CertificateStatus,
    ComplianceStatus,
    EmployeeCertificateStatus,
    TrainingRecordStatus,
    is_current,
    to_certificate_status,
    to_compliance_label,
    to_employee_certificate_status,
    widen,
)
from certdb.apps.personnel.models import Department, Employee, EmployeeStatus
from certdb.apps.training import sequences
from certdb.apps.training import services as training_services
from certdb.apps.training.models import TrainingRecord, TrainingType
from certdb.apps.workflow import apply_transition
from certdb.clock import Clock, resolve_clock, session_clock, using_clock

from . import models, schemas

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 20


class CertificateError(Exception):
    """Raised when a certificate operation is not possible for the given data."""


# ---------------------------------------------------------------------------
# Issuing
# ---------------------------------------------------------------------------


def _training_type_for(db: Session, record: TrainingRecord) -> TrainingType:
    training_type = record.training_type
    if training_type is None and record.training_type_id is not None:
        training_type = db.get(TrainingType, record.training_type_id)
    if training_type is None:
        raise CertificateError(f"Training record {record.id} has no training type.")
    return training_type


def _allocate_number(db: Session, training_type: TrainingType, issuer: str, today: date) -> str:
    # Issuers sharing a three-letter prefix draw from different buckets but
    # can render the same text; skip numbers that are already taken.
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = sequences.generate_certificate_number(db, training_type, issuer, today=today)
        taken = (
            db.query(models.Certificate.id)
            .filter(models.Certificate.certificate_number == number)
            .first()
        )
        if taken is None:
            return number
    raise CertificateError(
        f"Could not allocate a free certificate number for training type {training_type.id}."
    )


def create_certificate_from_training_record(
    db: Session,
    record: TrainingRecord,
    *,
    clock: Optional[Clock] = None,
    issued_by: Optional[str] = None,
    actor: Optional[str] = None,
    draft: bool = False,
) -> models.Certificate:
    """
    Issue the certificate for a training record.

    The certificate starts with the record's current status; from then on
    the record's saves keep it in step. A `draft` certificate is held until
    activate_certificate() releases it.
    """
    clock = resolve_clock(clock, db)
    today = clock.today()

    if record.certificate is not None:
        raise CertificateError(f"Training record {record.id} already has a certificate.")

    training_type = _training_type_for(db, record)
    issue_date = record.completion_date or today
    expiry_date = record.expiry_date or calculate_expiry_date(issue_date, training_type.validity_months)
    issuer = (
        issued_by
        or training_type.certification_authority
        or record.issuer
        or sequences.DEFAULT_ISSUER
    )

    with using_clock(db, clock), db.begin_nested():
        certificate_number = _allocate_number(db, training_type, issuer, today)
        canonical = training_services.classify_training_record(record, today=today, db=db)

        certificate = models.Certificate(
            employee_id=record.employee_id,
            training_type_id=training_type.id,
            certificate_number=certificate_number,
            issued_by=issuer,
            issue_date=issue_date,
            expiry_date=expiry_date,
            original_expiry_date=expiry_date,
            status=CertificateStatus.DRAFT if draft else to_certificate_status(canonical),
            lifecycle_stage=models.CertificateLifecycleStage.ISSUED,
            is_verified=not draft,
            verification_date=None if draft else clock.now(),
            renewal_due_date=renewal_due_date(expiry_date),
        )
        certificate.training_record = record
        if not record.certificate_number:
            record.certificate_number = certificate_number
        db.add(certificate)
        db.flush()

    audit_services.log_event(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        action="issued",
        after={
            "certificate_number": certificate.certificate_number,
            "status": certificate.status.value,
            "training_record_id": record.id,
        },
    )
    return certificate


def batch_create_certificates(
    db: Session,
    record_ids: Iterable[int],
    *,
    clock: Optional[Clock] = None,
    issued_by: Optional[str] = None,
    actor: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Issue certificates for several records. One result dict per id; never raises."""
    results: List[Dict[str, Any]] = []
    for record_id in record_ids:
        record = db.get(TrainingRecord, record_id)
        if record is None:
            results.append(
                {"training_record_id": record_id, "status": "error", "message": "Training record not found"}
            )
            continue
        if record.certificate is not None:
            results.append(
                {
                    "training_record_id": record_id,
                    "status": "skipped",
                    "message": "Certificate already exists",
                }
            )
            continue
        try:
            certificate = create_certificate_from_training_record(
                db,
                record,
                clock=clock,
                issued_by=issued_by,
                actor=actor,
            )
        except Exception as exc:
            logger.warning(
                "Certificate creation failed",
                extra={"training_record_id": record_id, "error": str(exc)},
            )
            results.append({"training_record_id": record_id, "status": "error", "message": str(exc)})
            continue
        results.append(
            {
                "training_record_id": record_id,
                "certificate_id": certificate.id,
                "certificate_number": certificate.certificate_number,
                "status": "created",
                "message": "Certificate created successfully",
            }
        )
    return results


def auto_create_missing_certificates(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    actor: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Issue certificates for current records whose type requires one and that have none."""
    record_ids = [
        row.id
        for row in (
            db.query(TrainingRecord.id)
            .join(TrainingType, TrainingRecord.training_type_id == TrainingType.id)
            .filter(
                TrainingType.requires_certification.is_(True),
                TrainingRecord.status == TrainingRecordStatus.ACTIVE,
                ~TrainingRecord.certificate.has(),
            )
            .order_by(TrainingRecord.id)
            .all()
        )
    ]
    results = batch_create_certificates(db, record_ids, clock=clock, actor=actor)
    logger.info(
        "Missing certificates created",
        extra={
            "candidates": len(record_ids),
            "created": sum(1 for r in results if r["status"] == "created"),
            "errors": sum(1 for r in results if r["status"] == "error"),
        },
    )
    return results


# ---------------------------------------------------------------------------
# Manual state changes
# ---------------------------------------------------------------------------


def _state(certificate: models.Certificate) -> str:
    return widen(certificate.status).value


def renew_certificate(
    db: Session,
    certificate: models.Certificate,
    *,
    clock: Optional[Clock] = None,
    completion_date: Optional[date] = None,
    actor: Optional[str] = None,
) -> models.Certificate:
    """
    Issue the successor of a certificate.

    A renewal is a new training record plus a new certificate linked back
    through renewed_from_id / renewed_to_id. The old certificate moves to
    `renewed` and is archived.
    """
    clock = resolve_clock(clock, db)
    today = clock.today()

    if not certificate.is_renewable:
        raise CertificateError(f"Certificate {certificate.certificate_number} is not renewable.")
    if widen(certificate.status) not in (
        ComplianceStatus.ACTIVE,
        ComplianceStatus.EXPIRING_SOON,
        ComplianceStatus.EXPIRED,
    ):
        raise CertificateError(
            f"Certificate {certificate.certificate_number} cannot be renewed from status {_state(certificate)}."
        )

    old_record = certificate.training_record
    training_type = certificate.training_type or db.get(TrainingType, certificate.training_type_id)
    completed_on = completion_date or today
    from_state = _state(certificate)

    with using_clock(db, clock), db.begin_nested():
        new_record = TrainingRecord(
            employee_id=certificate.employee_id,
            training_type_id=certificate.training_type_id,
            training_provider_id=old_record.training_provider_id if old_record is not None else None,
            issuer=old_record.issuer if old_record is not None else certificate.issued_by,
            issue_date=completed_on,
            completion_date=completed_on,
            expiry_date=calculate_expiry_date(completed_on, training_type.validity_months),
            notes=f"Renewal of certificate {certificate.certificate_number}",
        )
        new_record.training_type = training_type
        db.add(new_record)
        db.flush()

        successor = create_certificate_from_training_record(
            db,
            new_record,
            clock=clock,
            issued_by=certificate.issued_by,
            actor=actor,
        )
        successor.renewed_from_id = certificate.id
        successor.renewal_generation = (certificate.renewal_generation or 1) + 1
        successor.notes = f"Renewal of certificate: {certificate.certificate_number}"

        apply_transition(
            db,
            actor=actor,
            entity_type="certificate",
            entity_id=str(certificate.id),
            from_state=from_state,
            to_state=CertificateStatus.RENEWED.value,
            before_obj={"renewed_to_id": certificate.renewed_to_id},
            after_obj={
                "renewed_to_id": successor.id,
                "successor_number": successor.certificate_number,
            },
        )

        certificate.status = CertificateStatus.RENEWED
        certificate.renewed_to_id = successor.id
        certificate.lifecycle_stage = models.CertificateLifecycleStage.ARCHIVED
        certificate.notes = (
            (certificate.notes + "\n" if certificate.notes else "")
            + f"Superseded by certificate: {successor.certificate_number}"
        )
        db.flush()

    logger.info(
        "Certificate renewed",
        extra={
            "certificate_id": certificate.id,
            "successor_id": successor.id,
            "renewal_generation": successor.renewal_generation,
        },
    )
    return successor


def revoke_certificate(
    db: Session,
    certificate: models.Certificate,
    *,
    reason: str,
    clock: Optional[Clock] = None,
    actor: Optional[str] = None,
) -> models.Certificate:
    today = resolve_clock(clock, db).today()
    apply_transition(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        from_state=_state(certificate),
        to_state=CertificateStatus.REVOKED.value,
        before_obj={"revocation_reason": certificate.revocation_reason},
        after_obj={"revocation_reason": reason, "revocation_date": today},
    )
    certificate.status = CertificateStatus.REVOKED
    certificate.revocation_reason = reason
    certificate.revocation_date = today
    certificate.lifecycle_stage = models.CertificateLifecycleStage.ARCHIVED
    db.flush()
    return certificate


def suspend_certificate(
    db: Session,
    certificate: models.Certificate,
    *,
    reason: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    clock: Optional[Clock] = None,
    actor: Optional[str] = None,
) -> models.Certificate:
    start = start or resolve_clock(clock, db).today()
    apply_transition(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        from_state=_state(certificate),
        to_state=CertificateStatus.SUSPENDED.value,
        before_obj={"suspension_reason": certificate.suspension_reason},
        after_obj={"suspension_reason": reason, "suspension_start": start, "suspension_end": end},
    )
    certificate.status = CertificateStatus.SUSPENDED
    certificate.suspension_reason = reason
    certificate.suspension_start = start
    certificate.suspension_end = end
    certificate.lifecycle_stage = models.CertificateLifecycleStage.UNDER_REVIEW
    db.flush()
    return certificate


def _date_driven_status(db: Session, certificate: models.Certificate, today: date) -> ComplianceStatus:
    record = certificate.training_record
    if record is not None:
        return training_services.classify_training_record(record, today=today, db=db)
    return classify(
        certificate.issue_date,
        certificate.expiry_date,
        None,
        None,
        today=today,
        tracks_completion=False,
    )


def _resume_date_driven_status(
    db: Session,
    certificate: models.Certificate,
    canonical: ComplianceStatus,
    today: date,
) -> None:
    certificate.status = to_certificate_status(canonical)
    record = certificate.training_record
    if record is not None:
        # Picks up expiry changes made to the record while the certificate was held.
        training_services.propagate_to_certificate(record, canonical)
    refresh_certificate_lifecycle(certificate, today=today)


def reinstate_certificate(
    db: Session,
    certificate: models.Certificate,
    *,
    clock: Optional[Clock] = None,
    actor: Optional[str] = None,
) -> models.Certificate:
    """Lift a suspension. The certificate resumes the status its dates give it."""
    today = resolve_clock(clock, db).today()
    canonical = _date_driven_status(db, certificate, today)

    apply_transition(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        from_state=_state(certificate),
        to_state=to_certificate_status(canonical).value,
        before_obj={"suspension_reason": certificate.suspension_reason},
        after_obj={"suspension_end": today},
    )
    if certificate.suspension_end is None or certificate.suspension_end > today:
        certificate.suspension_end = today
    _resume_date_driven_status(db, certificate, canonical, today)
    db.flush()
    return certificate


def activate_certificate(
    db: Session,
    certificate: models.Certificate,
    *,
    clock: Optional[Clock] = None,
    actor: Optional[str] = None,
) -> models.Certificate:
    """Release a draft. It takes the status its record's dates give it and is marked verified."""
    clock = resolve_clock(clock, db)
    today = clock.today()
    canonical = _date_driven_status(db, certificate, today)

    apply_transition(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        from_state=_state(certificate),
        to_state=to_certificate_status(canonical).value,
        before_obj={"is_verified": bool(certificate.is_verified)},
        after_obj={
            "certificate_number": certificate.certificate_number,
            "issue_date": certificate.issue_date,
        },
    )
    certificate.is_verified = True
    certificate.verification_date = clock.now()
    _resume_date_driven_status(db, certificate, canonical, today)
    db.flush()
    return certificate


def cancel_certificate(
    db: Session,
    certificate: models.Certificate,
    *,
    reason: str,
    actor: Optional[str] = None,
) -> models.Certificate:
    """Withdraw a certificate issued in error. Unlike revocation it implies no misconduct."""
    apply_transition(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        from_state=_state(certificate),
        to_state=CertificateStatus.CANCELLED.value,
        before_obj={"cancellation_reason": certificate.cancellation_reason},
        after_obj={"cancellation_reason": reason},
    )
    certificate.status = CertificateStatus.CANCELLED
    certificate.cancellation_reason = reason
    certificate.lifecycle_stage = models.CertificateLifecycleStage.ARCHIVED
    db.flush()
    return certificate


def mark_as_verified(
    db: Session,
    certificate: models.Certificate,
    *,
    clock: Optional[Clock] = None,
    actor: Optional[str] = None,
) -> models.Certificate:
    certificate.is_verified = True
    certificate.verification_date = resolve_clock(clock, db).now()
    db.flush()
    audit_services.log_event(
        db,
        actor=actor,
        entity_type="certificate",
        entity_id=str(certificate.id),
        action="verified",
        after={"is_verified": True},
    )
    return certificate


# ---------------------------------------------------------------------------
# Inspection / lifecycle
# ---------------------------------------------------------------------------


def is_valid(certificate: models.Certificate, *, today: date) -> bool:
    if not is_current(certificate.status):
        return False
    return certificate.expiry_date is None or certificate.expiry_date > today


def validate_certificate(certificate: models.Certificate, *, today: date) -> Dict[str, Any]:
    record = certificate.training_record
    checks: Dict[str, Any] = {
        "exists": True,
        "status": _state(certificate),
        "is_verified": bool(certificate.is_verified),
        "is_expired": not is_valid(certificate, today=today),
        "days_until_expiry": days_until_expiry(certificate.expiry_date, today),
        "training_record_exists": record is not None,
        "employee_exists": record is not None and record.employee is not None,
        "file_recorded": bool(certificate.certificate_file_path),
    }
    checks["overall_valid"] = (
        checks["is_verified"]
        and not checks["is_expired"]
        and checks["training_record_exists"]
    )
    return checks


def refresh_certificate_lifecycle(
    certificate: models.Certificate,
    *,
    today: date,
) -> models.CertificateLifecycleStage:
    """Derive the lifecycle stage from status and the renewal reminder window."""
    stage = models.CertificateLifecycleStage
    status = widen(certificate.status)

    if certificate.renewal_due_date is None and certificate.expiry_date is not None:
        certificate.renewal_due_date = renewal_due_date(certificate.expiry_date)

    if status in (ComplianceStatus.RENEWED, ComplianceStatus.REVOKED, ComplianceStatus.CANCELLED):
        new_stage = stage.ARCHIVED
    elif status == ComplianceStatus.SUSPENDED:
        new_stage = stage.UNDER_REVIEW
    elif status == ComplianceStatus.DRAFT:
        new_stage = stage.ISSUED
    elif (
        certificate.is_renewable
        and certificate.renewal_due_date is not None
        and today >= certificate.renewal_due_date
    ):
        new_stage = stage.RENEWAL_DUE
    else:
        new_stage = stage.ACTIVE

    if certificate.lifecycle_stage != new_stage:
        certificate.lifecycle_stage = new_stage
    return new_stage


def refresh_lifecycles(db: Session, *, clock: Optional[Clock] = None) -> Dict[str, int]:
    today = resolve_clock(clock, db).today()
    counts: Dict[str, int] = {}
    for certificate in db.query(models.Certificate).order_by(models.Certificate.id).all():
        stage = refresh_certificate_lifecycle(certificate, today=today)
        counts[stage.value] = counts.get(stage.value, 0) + 1
    db.flush()
    return counts


def certificate_history(db: Session, certificate: models.Certificate) -> List[audit_schemas.AuditEventRead]:
    """Issue, verification and workflow events for one certificate, oldest first."""
    return audit_services.entity_history(db, "certificate", certificate.id)


def employee_certificate_statistics(db: Session, employee_id: int, *, today: date) -> Dict[str, Any]:
    certificates = (
        db.query(models.Certificate)
        .filter(models.Certificate.employee_id == employee_id)
        .order_by(models.Certificate.issue_date.desc())
        .all()
    )
    current = [c for c in certificates if is_valid(c, today=today)]
    upcoming = sorted(
        (c for c in current if c.expiry_date is not None),
        key=lambda c: c.expiry_date,
    )
    return {
        "total_certificates": len(certificates),
        "active_certificates": sum(1 for c in certificates if c.status == CertificateStatus.ACTIVE),
        "expiring_soon_certificates": sum(
            1 for c in certificates if c.status == CertificateStatus.EXPIRING_SOON
        ),
        "expired_certificates": sum(1 for c in certificates if c.status == CertificateStatus.EXPIRED),
        "verified_certificates": sum(1 for c in certificates if c.is_verified),
        "latest_certificate": certificates[0] if certificates else None,
        "next_expiry": upcoming[0] if upcoming else None,
    }


def department_certificate_statistics(db: Session, department_id: int) -> Dict[str, Any]:
    """
    Certificate counts for one department.

    `compliance_rate` is the share of active staff holding an active
    certificate for a mandatory training type. A department with no active
    staff is fully compliant.
    """
    department = db.get(Department, department_id)
    if department is None:
        raise CertificateError("Department not found.")

    certificates = (
        db.query(models.Certificate)
        .join(Employee, models.Certificate.employee_id == Employee.id)
        .options(joinedload(models.Certificate.training_type))
        .filter(Employee.department_id == department.id)
        .all()
    )
    active_staff = {
        employee_id
        for (employee_id,) in db.query(Employee.id).filter(
            Employee.department_id == department.id,
            Employee.status == EmployeeStatus.ACTIVE,
        )
    }
    compliant = {
        c.employee_id
        for c in certificates
        if c.employee_id in active_staff
        and c.status == CertificateStatus.ACTIVE
        and c.training_type is not None
        and c.training_type.is_mandatory
    }

    total = len(certificates)
    return {
        "department_id": department.id,
        "department_name": department.name,
        "total_certificates": total,
        "active_certificates": sum(1 for c in certificates if c.status == CertificateStatus.ACTIVE),
        "expired_certificates": sum(1 for c in certificates if c.status == CertificateStatus.EXPIRED),
        "expiring_soon_certificates": sum(
            1 for c in certificates if c.status == CertificateStatus.EXPIRING_SOON
        ),
        "verified_certificates": sum(1 for c in certificates if c.is_verified),
        "employee_count": len(active_staff),
        "certificates_per_employee": round(total / len(active_staff), 2) if active_staff else 0.0,
        "compliance_rate": (
            round(len(compliant) / len(active_staff) * 100, 2) if active_staff else 100.0
        ),
    }


# ---------------------------------------------------------------------------
# Employee certificates (externally issued)
# ---------------------------------------------------------------------------


def _certificate_type_for(
    cert: models.EmployeeCertificate,
    db: Optional[Session],
) -> Optional[models.CertificateType]:
    certificate_type = cert.certificate_type
    if certificate_type is None and db is not None and cert.certificate_type_id is not None:
        certificate_type = db.get(models.CertificateType, cert.certificate_type_id)
    return certificate_type


def classify_employee_certificate(
    cert: models.EmployeeCertificate,
    *,
    today: date,
    db: Optional[Session] = None,
) -> ComplianceStatus:
    certificate_type = _certificate_type_for(cert, db)
    warning_days = certificate_type.warning_days if certificate_type is not None else None
    return classify(
        cert.issue_date,
        cert.expiry_date,
        cert.completion_date,
        warning_days,
        today=today,
        tracks_completion=True,
    )


def recompute_employee_certificate(
    cert: models.EmployeeCertificate,
    *,
    today: date,
    db: Optional[Session] = None,
) -> ComplianceStatus:
    canonical = classify_employee_certificate(cert, today=today, db=db)
    new_status = to_employee_certificate_status(canonical)
    new_label = to_compliance_label(canonical)
    if cert.status != new_status:
        cert.status = new_status
    if cert.compliance_status != new_label:
        cert.compliance_status = new_label
    return canonical


def _employee_certificate_out_of_step(cert: models.EmployeeCertificate, canonical: ComplianceStatus) -> bool:
    return (
        cert.status != to_employee_certificate_status(canonical)
        or cert.compliance_status != to_compliance_label(canonical)
    )


@event.listens_for(Session, "before_flush")
def recompute_employee_certificates_on_flush(session: Session, flush_context, instances) -> None:
    certs = [
        obj
        for obj in list(session.new) + list(session.dirty)
        if isinstance(obj, models.EmployeeCertificate)
    ]
    if not certs:
        return
    today = session_clock(session).today()
    for cert in certs:
        recompute_employee_certificate(cert, today=today, db=session)


def create_employee_certificate(
    db: Session,
    data: schemas.EmployeeCertificateCreate,
    *,
    clock: Optional[Clock] = None,
) -> models.EmployeeCertificate:
    certificate_type = db.get(models.CertificateType, data.certificate_type_id)
    if certificate_type is None:
        raise CertificateError("Invalid certificate type id.")

    cert = models.EmployeeCertificate(**data.model_dump())
    cert.certificate_type = certificate_type
    if cert.expiry_date is None:
        base_date = cert.completion_date or cert.issue_date
        if base_date is not None:
            cert.expiry_date = calculate_expiry_date(base_date, certificate_type.validity_months)

    with using_clock(db, clock):
        recompute_employee_certificate(cert, today=resolve_clock(clock, db).today(), db=db)
        db.add(cert)
        db.flush()
    return cert


def update_employee_certificate_statuses(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    certificate_type_id: Optional[int] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Recompute every employee certificate against one "today".

    The same recompute the flush hook runs, so a sweep and a save agree.
    Failures are collected per certificate.
    """
    today = resolve_clock(clock, db).today()
    summary: Dict[str, Any] = {
        "checked": 0,
        "changed": 0,
        "pending": 0,
        "active": 0,
        "expiring_soon": 0,
        "expired": 0,
        "errors": [],
    }

    query = db.query(models.EmployeeCertificate).options(
        joinedload(models.EmployeeCertificate.certificate_type)
    )
    if certificate_type_id is not None:
        query = query.filter(models.EmployeeCertificate.certificate_type_id == certificate_type_id)

    for cert in query.order_by(models.EmployeeCertificate.id).all():
        summary["checked"] += 1
        try:
            if dry_run:
                canonical = classify_employee_certificate(cert, today=today, db=db)
                changed = _employee_certificate_out_of_step(cert, canonical)
            else:
                with using_clock(db, clock), db.begin_nested():
                    canonical = classify_employee_certificate(cert, today=today, db=db)
                    changed = _employee_certificate_out_of_step(cert, canonical)
                    recompute_employee_certificate(cert, today=today, db=db)
                    db.flush()
        except Exception as exc:
            logger.warning(
                "Status sweep failed for employee certificate",
                extra={"employee_certificate_id": cert.id, "error": str(exc)},
            )
            summary["errors"].append({"employee_certificate_id": cert.id, "error": str(exc)})
            continue

        summary[canonical.value] += 1
        if changed:
            summary["changed"] += 1

    logger.info(
        "Employee certificate status sweep finished",
        extra={
            "today": today.isoformat(),
            "checked": summary["checked"],
            "changed": summary["changed"],
            "errors": len(summary["errors"]),
            "dry_run": dry_run,
        },
    )
    return summary


def add_certificate_file(
    db: Session,
    cert: models.EmployeeCertificate,
    file_meta: Union[schemas.CertificateFile, Dict[str, Any]],
) -> List[Dict[str, Any]]:
    meta = (
        file_meta
        if isinstance(file_meta, schemas.CertificateFile)
        else schemas.CertificateFile(**file_meta)
    )
    # JSON columns are not mutation-tracked: assign a new list.
    files = list(cert.certificate_files or [])
    files.append(meta.model_dump(mode="json", exclude_none=True))
    cert.certificate_files = files
    db.flush()
    return files


def remove_certificate_file(db: Session, cert: models.EmployeeCertificate, stored_name: str) -> bool:
    files = list(cert.certificate_files or [])
    remaining = [f for f in files if f.get("stored_name") != stored_name]
    if len(remaining) == len(files):
        return False
    cert.certificate_files = remaining
    db.flush()
    return True


def current_for_employee_and_type(
    db: Session,
    employee_id: int,
    certificate_type_id: int,
) -> Optional[models.EmployeeCertificate]:
    return (
        db.query(models.EmployeeCertificate)
        .filter(
            models.EmployeeCertificate.employee_id == employee_id,
            models.EmployeeCertificate.certificate_type_id == certificate_type_id,
            models.EmployeeCertificate.status.in_(
                [EmployeeCertificateStatus.ACTIVE, EmployeeCertificateStatus.EXPIRING_SOON]
            ),
        )
        .order_by(models.EmployeeCertificate.expiry_date.desc())
        .first()
    )


def history_for_employee_and_type(
    db: Session,
    employee_id: int,
    certificate_type_id: int,
) -> List[models.EmployeeCertificate]:
    return (
        db.query(models.EmployeeCertificate)
        .filter(
            models.EmployeeCertificate.employee_id == employee_id,
            models.EmployeeCertificate.certificate_type_id == certificate_type_id,
        )
        .order_by(models.EmployeeCertificate.issue_date.desc())
        .all()
    )


def is_most_recent(db: Session, cert: models.EmployeeCertificate) -> bool:
    history = history_for_employee_and_type(db, cert.employee_id, cert.certificate_type_id)
    return bool(history) and history[0].id == cert.id
