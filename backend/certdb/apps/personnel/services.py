# backend/certdb/apps/personnel/services.py

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from certdb.apps.audit import services as audit_services

from . import models, schemas

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class EmployeeHasRecordsError(Exception):
    """Raised when deleting an employee who still has compliance history."""

    def __init__(self, employee_id: str, *, training_records: int, employee_certificates: int) -> None:
        super().__init__(
            f"Employee {employee_id} has {training_records} training record(s) and "
            f"{employee_certificates} certificate(s); delete is restricted."
        )
        self.employee_id = employee_id
        self.training_records = training_records
        self.employee_certificates = employee_certificates


def _normalise_employee_id(value: str) -> str:
    return value.strip().upper()


def _publish(db: Session, *, action: str, employee: models.Employee, actor: Optional[str], extra: Optional[dict] = None):
    metadata = {"employee_id": employee.employee_id, "name": employee.name}
    if extra:
        metadata.update(extra)
    audit_services.log_event(
        db,
        actor=actor,
        entity_type="employee",
        entity_id=str(employee.id),
        action=action,
        after={"employee_id": employee.employee_id, "name": employee.name},
        metadata=metadata,
    )


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


def create_department(db: Session, data: schemas.DepartmentCreate) -> models.Department:
    code = data.code.strip().upper()
    if db.query(models.Department).filter(models.Department.code == code).first():
        raise ValueError(f"Department code {code} already exists.")
    department = models.Department(code=code, name=data.name.strip())
    db.add(department)
    db.flush()
    return department


# ---------------------------------------------------------------------------
# Employee lifecycle
# ---------------------------------------------------------------------------


def get_employee_by_staff_number(db: Session, employee_id: str) -> Optional[models.Employee]:
    return (
        db.query(models.Employee)
        .filter(models.Employee.employee_id == _normalise_employee_id(employee_id))
        .first()
    )


def create_employee(
    db: Session,
    data: schemas.EmployeeCreate,
    *,
    actor: Optional[str] = None,
) -> models.Employee:
    employee_id = _normalise_employee_id(data.employee_id)
    if get_employee_by_staff_number(db, employee_id):
        raise ValueError(f"An employee with staff number {employee_id} already exists.")

    if data.department_id is not None and db.get(models.Department, data.department_id) is None:
        raise ValueError("Invalid department id.")

    employee = models.Employee(
        employee_id=employee_id,
        name=data.name.strip(),
        email=data.email,
        position=data.position,
        department_id=data.department_id,
        status=data.status,
    )
    db.add(employee)
    db.flush()

    _publish(db, action="created", employee=employee, actor=actor)
    return employee


def update_employee(
    db: Session,
    employee: models.Employee,
    data: schemas.EmployeeUpdate,
    *,
    actor: Optional[str] = None,
) -> models.Employee:
    changes = data.model_dump(exclude_unset=True)
    old_employee_id = employee.employee_id

    new_employee_id = changes.pop("employee_id", None)
    if new_employee_id is not None:
        new_employee_id = _normalise_employee_id(new_employee_id)
        if new_employee_id != old_employee_id:
            clash = get_employee_by_staff_number(db, new_employee_id)
            if clash is not None and clash.id != employee.id:
                raise ValueError(f"An employee with staff number {new_employee_id} already exists.")
            employee.employee_id = new_employee_id

    if "department_id" in changes and changes["department_id"] is not None:
        if db.get(models.Department, changes["department_id"]) is None:
            raise ValueError("Invalid department id.")

    for field, value in changes.items():
        setattr(employee, field, value)

    db.flush()

    if employee.employee_id != old_employee_id:
        _publish(
            db,
            action="id_changed",
            employee=employee,
            actor=actor,
            extra={"old_employee_id": old_employee_id},
        )
    return employee


def delete_employee(
    db: Session,
    employee: models.Employee,
    *,
    actor: Optional[str] = None,
) -> None:
    """
    Delete an employee without compliance history.

    Training records and employee certificates are RESTRICT children; the
    check runs here so the caller gets a domain error instead of an
    IntegrityError (SQLite does not enforce foreign keys by default).
    """
    from certdb.apps.certificates.models import EmployeeCertificate
    from certdb.apps.training.models import TrainingRecord

    record_count = (
        db.query(TrainingRecord).filter(TrainingRecord.employee_id == employee.id).count()
    )
    certificate_count = (
        db.query(EmployeeCertificate).filter(EmployeeCertificate.employee_id == employee.id).count()
    )
    if record_count or certificate_count:
        raise EmployeeHasRecordsError(
            employee.employee_id,
            training_records=record_count,
            employee_certificates=certificate_count,
        )

    employee_pk = employee.id
    staff_number = employee.employee_id
    name = employee.name
    db.delete(employee)
    db.flush()

    audit_services.log_event(
        db,
        actor=actor,
        entity_type="employee",
        entity_id=str(employee_pk),
        action="deleted",
        before={"employee_id": staff_number, "name": name},
        metadata={"employee_id": staff_number, "name": name},
    )
    logger.info("Employee deleted", extra={"employee_id": staff_number})
