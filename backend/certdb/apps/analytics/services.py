# backend/certdb/apps/analytics/services.py

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from certdb.apps.compliance.classifier import add_months, classify, days_until_expiry
from certdb.apps.compliance.status import CertificateStatus, ComplianceStatus
from certdb.apps.personnel.models import Department, Employee, EmployeeStatus
from certdb.apps.training.models import TrainingRecord, TrainingType
from certdb.clock import Clock, resolve_clock

from . import models, schemas

logger = logging.getLogger(__name__)

STATISTICS_TTL = timedelta(minutes=int(os.getenv("CERTDB_STATISTICS_TTL_MINUTES", "60")))

MANDATORY_PRIORITY_BONUS = 30
EXPIRED_WEIGHT = 5
EXPIRING_WEIGHT = 3
SAFETY_BONUS = 20
MAX_PRIORITY_SCORE = 100

URGENT_RENEWAL_DAYS = 7
RENEWAL_WARNING_DAYS = 30

# Lower is more urgent.
CATEGORY_PRIORITY = {
    "safety": 1,
    "security": 2,
    "aviation": 2,
    "technical": 3,
    "quality": 4,
    "service": 5,
}


# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------


def compliance_rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


def calculate_risk_level(rate: float, is_mandatory: bool) -> models.RiskLevel:
    if not is_mandatory:
        return models.RiskLevel.LOW
    if rate >= 95:
        return models.RiskLevel.LOW
    if rate >= 80:
        return models.RiskLevel.MEDIUM
    if rate >= 60:
        return models.RiskLevel.HIGH
    return models.RiskLevel.CRITICAL


def _is_safety_related(category: Optional[str]) -> bool:
    lowered = (category or "").lower()
    return "safety" in lowered or "security" in lowered


def calculate_priority_score(
    base: int,
    is_mandatory: bool,
    expired: int,
    expiring: int,
    category: Optional[str] = None,
) -> int:
    score = base or 0
    if is_mandatory:
        score += MANDATORY_PRIORITY_BONUS
    score += EXPIRED_WEIGHT * expired
    score += EXPIRING_WEIGHT * expiring
    if _is_safety_related(category):
        score += SAFETY_BONUS
    return min(score, MAX_PRIORITY_SCORE)


def department_status_label(rate: float) -> str:
    if rate >= 90:
        return "excellent"
    if rate >= 75:
        return "good"
    if rate >= 60:
        return "fair"
    if rate >= 40:
        return "poor"
    return "critical"


_GRADES = (
    (95, "A+"),
    (90, "A"),
    (85, "A-"),
    (80, "B+"),
    (75, "B"),
    (70, "B-"),
    (65, "C+"),
    (60, "C"),
    (55, "C-"),
    (50, "D"),
)


def compliance_grade(rate: float) -> str:
    for threshold, grade in _GRADES:
        if rate >= threshold:
            return grade
    return "F"


def category_priority(category: Optional[str]) -> int:
    lowered = (category or "").lower()
    for key, priority in CATEGORY_PRIORITY.items():
        if key in lowered:
            return priority
    return 3


# ---------------------------------------------------------------------------
# Record classification helpers
# ---------------------------------------------------------------------------


@dataclass
class _ClassifiedRecord:
    record: TrainingRecord
    status: ComplianceStatus
    days_left: Optional[int]


def _is_superseded(record: TrainingRecord) -> bool:
    # Renewed certificates live on in their successor.
    certificate = record.certificate
    return certificate is not None and certificate.status == CertificateStatus.RENEWED


def _classified_records(
    db: Session,
    *,
    today: date,
    training_type_id: Optional[int] = None,
    mandatory_only: bool = False,
) -> List[_ClassifiedRecord]:
    query = db.query(TrainingRecord).options(
        joinedload(TrainingRecord.training_type),
        joinedload(TrainingRecord.employee),
        joinedload(TrainingRecord.certificate),
    )
    if training_type_id is not None:
        query = query.filter(TrainingRecord.training_type_id == training_type_id)
    if mandatory_only:
        query = query.join(TrainingType, TrainingRecord.training_type_id == TrainingType.id).filter(
            TrainingType.is_mandatory.is_(True),
            TrainingType.is_active.is_(True),
        )

    classified = []
    for record in query.order_by(TrainingRecord.id).all():
        if _is_superseded(record):
            continue
        warning_days = record.training_type.warning_period_days if record.training_type else None
        status = classify(
            record.issue_date,
            record.expiry_date,
            record.completion_date,
            warning_days,
            today=today,
            tracks_completion=False,
        )
        classified.append(
            _ClassifiedRecord(
                record=record,
                status=status,
                days_left=days_until_expiry(record.expiry_date, today),
            )
        )
    return classified


def _active_employee_count(db: Session, department_id: Optional[int] = None) -> int:
    query = db.query(Employee).filter(Employee.status == EmployeeStatus.ACTIVE)
    if department_id is not None:
        query = query.filter(Employee.department_id == department_id)
    return query.count()


def _is_active_employee(record: TrainingRecord) -> bool:
    return record.employee is not None and record.employee.status == EmployeeStatus.ACTIVE


def _quarter_start(today: date) -> date:
    return date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)


def _as_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


# ---------------------------------------------------------------------------
# Per training type
# ---------------------------------------------------------------------------


def _get_training_type(db: Session, training_type_id: int) -> TrainingType:
    training_type = db.get(TrainingType, training_type_id)
    if training_type is None:
        raise ValueError("Training type not found.")
    return training_type


def compute_compliance_stats(
    db: Session,
    training_type_id: int,
    *,
    clock: Optional[Clock] = None,
) -> schemas.ComplianceStats:
    """
    Compliance figures for one training type, classified against today.

    `active` counts distinct active employees with a currently active
    record; expiring / expired count records.
    """
    today = resolve_clock(clock, db).today()
    training_type = _get_training_type(db, training_type_id)
    total_employees = _active_employee_count(db)
    classified = _classified_records(db, today=today, training_type_id=training_type_id)

    active_employees = {
        item.record.employee_id
        for item in classified
        if item.status == ComplianceStatus.ACTIVE and _is_active_employee(item.record)
    }
    trained_employees = {
        item.record.employee_id
        for item in classified
        if item.status in (ComplianceStatus.ACTIVE, ComplianceStatus.EXPIRING_SOON)
        and _is_active_employee(item.record)
    }
    expiring = sum(1 for item in classified if item.status == ComplianceStatus.EXPIRING_SOON)
    expired = sum(1 for item in classified if item.status == ComplianceStatus.EXPIRED)
    active_certificates = sum(1 for item in classified if item.status == ComplianceStatus.ACTIVE)

    rate = compliance_rate(len(active_employees), total_employees)

    def issued_on(record: TrainingRecord) -> Optional[date]:
        return record.completion_date or record.issue_date

    records = [item.record for item in classified]
    this_year = [r for r in records if issued_on(r) and issued_on(r).year == today.year]
    total_cost_ytd = sum((_as_float(r.cost) for r in this_year), 0.0)
    quarter_start = _quarter_start(today)
    month_start = today.replace(day=1)

    upcoming = sorted(
        item.record.expiry_date
        for item in classified
        if item.days_left is not None and item.days_left > 0
    )
    issue_dates = [r.issue_date for r in records if r.issue_date is not None]

    return schemas.ComplianceStats(
        training_type_id=training_type.id,
        training_type_name=training_type.name,
        is_mandatory=bool(training_type.is_mandatory),
        total_employees=total_employees,
        active=len(active_employees),
        expiring=expiring,
        expired=expired,
        compliance_rate=rate,
        risk_level=calculate_risk_level(rate, bool(training_type.is_mandatory)),
        priority_score=calculate_priority_score(
            training_type.priority_score or 0,
            bool(training_type.is_mandatory),
            expired,
            expiring,
            training_type.category,
        ),
        total_certificates=len(records),
        active_certificates=active_certificates,
        employees_trained=len(trained_employees),
        employees_need_training=max(0, total_employees - len(trained_employees)),
        total_cost_ytd=round(total_cost_ytd, 2),
        average_cost_per_certificate=round(total_cost_ytd / len(this_year), 2) if this_year else 0.0,
        certificates_issued_this_month=sum(1 for r in this_year if issued_on(r) >= month_start),
        certificates_issued_this_quarter=sum(1 for r in this_year if issued_on(r) >= quarter_start),
        certificates_issued_this_year=len(this_year),
        next_batch_expiry_date=upcoming[0] if upcoming else None,
        certificates_expiring_next_30_days=sum(
            1 for item in classified if item.days_left is not None and 0 < item.days_left <= 30
        ),
        certificates_expiring_next_90_days=sum(
            1 for item in classified if item.days_left is not None and 0 < item.days_left <= 90
        ),
        last_certificate_issued_at=max(issue_dates) if issue_dates else None,
    )


def department_compliance(
    db: Session,
    training_type_id: int,
    *,
    clock: Optional[Clock] = None,
) -> List[schemas.DepartmentCompliance]:
    today = resolve_clock(clock, db).today()
    training_type = _get_training_type(db, training_type_id)
    target = _as_float(training_type.compliance_target_percentage)

    classified = _classified_records(db, today=today, training_type_id=training_type_id)
    trained_by_department: Dict[int, set] = {}
    for item in classified:
        employee = item.record.employee
        if item.status != ComplianceStatus.ACTIVE or not _is_active_employee(item.record):
            continue
        if employee.department_id is None:
            continue
        trained_by_department.setdefault(employee.department_id, set()).add(employee.id)

    results = []
    departments = (
        db.query(Department)
        .filter(Department.is_active.is_(True))
        .order_by(Department.name.asc())
        .all()
    )
    for department in departments:
        total = _active_employee_count(db, department.id)
        trained = len(trained_by_department.get(department.id, set()))
        rate = compliance_rate(trained, total)
        results.append(
            schemas.DepartmentCompliance(
                department_id=department.id,
                department_name=department.name,
                total_employees=total,
                trained_employees=trained,
                untrained_employees=total - trained,
                compliance_rate=rate,
                target_percentage=target,
                target_met=rate >= target,
                compliance_status=department_status_label(rate),
            )
        )
    return results


def upcoming_expiry_buckets(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    training_type_id: Optional[int] = None,
) -> schemas.ExpiryBuckets:
    """Group records by days to expiry: expired (<0), critical (0-7), urgent (8-30), warning (31-90)."""
    today = resolve_clock(clock, db).today()
    buckets = schemas.ExpiryBuckets()

    for item in _classified_records(db, today=today, training_type_id=training_type_id):
        days = item.days_left
        if days is None or days > 90:
            continue
        record = item.record
        entry = schemas.ExpiryBucketItem(
            training_record_id=record.id,
            employee_id=record.employee_id,
            employee_name=record.employee.name if record.employee else None,
            training_type_id=record.training_type_id,
            training_type_name=record.training_type.name if record.training_type else None,
            expiry_date=record.expiry_date,
            days_until_expiry=days,
        )
        if days < 0:
            buckets.expired.append(entry)
        elif days <= 7:
            buckets.critical.append(entry)
        elif days <= 30:
            buckets.urgent.append(entry)
        else:
            buckets.warning.append(entry)

    for bucket in (buckets.expired, buckets.critical, buckets.urgent, buckets.warning):
        bucket.sort(key=lambda entry: entry.days_until_expiry)
    return buckets


# ---------------------------------------------------------------------------
# Cached statistics
# ---------------------------------------------------------------------------


def refresh_statistics(
    db: Session,
    training_type: TrainingType,
    *,
    clock: Optional[Clock] = None,
    force: bool = False,
    ttl: Optional[timedelta] = None,
) -> Tuple[models.TrainingTypeStatistic, bool]:
    """
    Recompute the cached statistic row for a training type.

    Returns (row, refreshed). A row calculated within the TTL is returned
    untouched unless `force` is set.
    """
    clock = resolve_clock(clock, db)
    now = clock.now()
    ttl = ttl or STATISTICS_TTL

    statistic = (
        db.query(models.TrainingTypeStatistic)
        .filter(models.TrainingTypeStatistic.training_type_id == training_type.id)
        .first()
    )
    if statistic is not None and not force and statistic.is_fresh(now=now, ttl=ttl):
        return statistic, False

    stats = compute_compliance_stats(db, training_type.id, clock=clock)
    if statistic is None:
        statistic = models.TrainingTypeStatistic(training_type_id=training_type.id)
        db.add(statistic)

    statistic.total_employees = stats.total_employees
    statistic.total_certificates = stats.total_certificates
    statistic.active_certificates = stats.active_certificates
    statistic.expiring_certificates = stats.expiring
    statistic.expired_certificates = stats.expired
    statistic.employees_trained = stats.employees_trained
    statistic.employees_need_training = stats.employees_need_training
    statistic.compliance_rate = Decimal(str(stats.compliance_rate))
    statistic.risk_level = stats.risk_level
    statistic.calculated_priority_score = stats.priority_score
    statistic.total_cost_ytd = Decimal(str(stats.total_cost_ytd))
    statistic.average_cost_per_certificate = Decimal(str(stats.average_cost_per_certificate))
    statistic.certificates_issued_this_month = stats.certificates_issued_this_month
    statistic.certificates_issued_this_quarter = stats.certificates_issued_this_quarter
    statistic.certificates_issued_this_year = stats.certificates_issued_this_year
    statistic.next_batch_expiry_date = stats.next_batch_expiry_date
    statistic.certificates_expiring_next_30_days = stats.certificates_expiring_next_30_days
    statistic.certificates_expiring_next_90_days = stats.certificates_expiring_next_90_days
    statistic.last_certificate_issued_at = stats.last_certificate_issued_at
    statistic.calculated_at = now

    training_type.last_analytics_update = now
    db.flush()
    return statistic, True


def refresh_all_statistics(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    force: bool = False,
    training_type_id: Optional[int] = None,
) -> Dict[str, Any]:
    summary: Dict[str, Any] = {"checked": 0, "refreshed": 0, "skipped": 0, "errors": []}

    query = db.query(TrainingType).filter(TrainingType.is_active.is_(True))
    if training_type_id is not None:
        query = query.filter(TrainingType.id == training_type_id)

    for training_type in query.order_by(TrainingType.id).all():
        summary["checked"] += 1
        try:
            with db.begin_nested():
                _, refreshed = refresh_statistics(db, training_type, clock=clock, force=force)
        except Exception as exc:
            logger.warning(
                "Statistics refresh failed",
                extra={"training_type_id": training_type.id, "error": str(exc)},
            )
            summary["errors"].append({"training_type_id": training_type.id, "error": str(exc)})
            continue
        summary["refreshed" if refreshed else "skipped"] += 1

    logger.info(
        "Training type statistics refreshed",
        extra={
            "checked": summary["checked"],
            "refreshed": summary["refreshed"],
            "skipped": summary["skipped"],
            "errors": len(summary["errors"]),
        },
    )
    return summary


def get_statistic(
    db: Session,
    training_type_id: int,
    *,
    clock: Optional[Clock] = None,
) -> models.TrainingTypeStatistic:
    """The cached row, recomputed first when missing or stale."""
    training_type = _get_training_type(db, training_type_id)
    statistic, _ = refresh_statistics(db, training_type, clock=clock)
    return statistic


# ---------------------------------------------------------------------------
# Organisation-wide views
# ---------------------------------------------------------------------------


def get_compliance_overview(db: Session, *, clock: Optional[Clock] = None) -> schemas.ComplianceOverview:
    today = resolve_clock(clock, db).today()
    total_employees = _active_employee_count(db)
    mandatory_types = (
        db.query(TrainingType)
        .filter(TrainingType.is_mandatory.is_(True), TrainingType.is_active.is_(True))
        .all()
    )

    classified = _classified_records(db, today=today, mandatory_only=True)
    compliant_pairs = {
        (item.record.employee_id, item.record.training_type_id)
        for item in classified
        if item.status == ComplianceStatus.ACTIVE and _is_active_employee(item.record)
    }
    expiring = sum(1 for item in classified if item.status == ComplianceStatus.EXPIRING_SOON)
    expired = sum(1 for item in classified if item.status == ComplianceStatus.EXPIRED)

    overall = compliance_rate(len(compliant_pairs), total_employees * len(mandatory_types))
    return schemas.ComplianceOverview(
        total_employees=total_employees,
        mandatory_training_types=len(mandatory_types),
        overall_compliance_rate=overall,
        expiring_certificates=expiring,
        expired_certificates=expired,
        total_risk_alerts=expiring + expired,
        compliance_grade=compliance_grade(overall),
    )


_EMPLOYEE_SEVERITY = {"compliant": 0, "warning": 1, "at_risk": 2, "non_compliant": 3}


def _escalate(current: str, candidate: str) -> str:
    if _EMPLOYEE_SEVERITY[candidate] > _EMPLOYEE_SEVERITY[current]:
        return candidate
    return current


def _latest_record(records: List[TrainingRecord]) -> TrainingRecord:
    # A record without expiry never lapses and outranks dated ones.
    return max(records, key=lambda r: (r.expiry_date is None, r.expiry_date or date.min, r.id))


def employee_compliance_status(
    db: Session,
    employee: Employee,
    *,
    clock: Optional[Clock] = None,
) -> schemas.EmployeeCompliance:
    """Mandatory-training standing of one employee."""
    today = resolve_clock(clock, db).today()
    mandatory_types = (
        db.query(TrainingType)
        .filter(TrainingType.is_mandatory.is_(True), TrainingType.is_active.is_(True))
        .order_by(TrainingType.id)
        .all()
    )
    records_by_type: Dict[int, List[TrainingRecord]] = {}
    for record in db.query(TrainingRecord).filter(TrainingRecord.employee_id == employee.id).all():
        records_by_type.setdefault(record.training_type_id, []).append(record)

    overall = "compliant"
    completed = 0
    critical_issues: List[schemas.ComplianceIssue] = []
    warnings: List[schemas.ComplianceIssue] = []

    for training_type in mandatory_types:
        priority = category_priority(training_type.category)
        records = records_by_type.get(training_type.id)
        if not records:
            critical_issues.append(
                schemas.ComplianceIssue(
                    type="missing_mandatory",
                    training_type_id=training_type.id,
                    training=training_type.name,
                    priority=priority,
                    action="Schedule immediately",
                )
            )
            overall = _escalate(overall, "non_compliant")
            continue

        record = _latest_record(records)
        status = classify(
            record.issue_date,
            record.expiry_date,
            record.completion_date,
            training_type.warning_period_days,
            today=today,
            tracks_completion=False,
        )
        days_left = days_until_expiry(record.expiry_date, today)

        if status == ComplianceStatus.EXPIRED:
            critical_issues.append(
                schemas.ComplianceIssue(
                    type="expired",
                    training_type_id=training_type.id,
                    training=training_type.name,
                    priority=priority,
                    action="Renew immediately",
                    days_left=days_left,
                )
            )
            overall = _escalate(overall, "non_compliant")
        elif days_left is not None and days_left <= URGENT_RENEWAL_DAYS:
            critical_issues.append(
                schemas.ComplianceIssue(
                    type="urgent_renewal",
                    training_type_id=training_type.id,
                    training=training_type.name,
                    priority=priority,
                    action="Schedule renewal within 3 days",
                    days_left=days_left,
                )
            )
            overall = _escalate(overall, "at_risk")
        elif status == ComplianceStatus.EXPIRING_SOON or (
            days_left is not None and days_left <= RENEWAL_WARNING_DAYS
        ):
            warnings.append(
                schemas.ComplianceIssue(
                    type="expiring_soon",
                    training_type_id=training_type.id,
                    training=training_type.name,
                    priority=priority,
                    action="Schedule renewal",
                    days_left=days_left,
                )
            )
            overall = _escalate(overall, "warning")
        else:
            completed += 1

    total = len(mandatory_types)
    return schemas.EmployeeCompliance(
        employee_id=employee.id,
        overall_status=overall,
        compliance_score=compliance_rate(completed, total) if total else 100.0,
        total_mandatory=total,
        completed_mandatory=completed,
        critical_issues=sorted(critical_issues, key=lambda issue: issue.priority),
        warnings=sorted(warnings, key=lambda issue: issue.priority),
    )


# ---------------------------------------------------------------------------
# Trends and costs
# ---------------------------------------------------------------------------


def monthly_training_trends(
    db: Session,
    *,
    months: int = 12,
    clock: Optional[Clock] = None,
) -> List[schemas.MonthlyTrend]:
    """Records completed per month and training type, oldest month first, ending with the current one."""
    if months < 1:
        raise ValueError("months must be at least 1.")
    today = resolve_clock(clock, db).today()
    current = today.replace(day=1)
    first = add_months(current, -(months - 1))

    counts: Dict[Tuple[int, int], Dict[str, int]] = {}
    records = (
        db.query(TrainingRecord)
        .options(joinedload(TrainingRecord.training_type))
        .filter(TrainingRecord.completion_date >= first)
        .filter(TrainingRecord.completion_date < add_months(current, 1))
        .all()
    )
    for record in records:
        key = (record.completion_date.year, record.completion_date.month)
        name = record.training_type.name if record.training_type else "Unknown"
        by_type = counts.setdefault(key, {})
        by_type[name] = by_type.get(name, 0) + 1

    trends = []
    for offset in range(months):
        month_start = add_months(first, offset)
        by_type = counts.get((month_start.year, month_start.month), {})
        trends.append(
            schemas.MonthlyTrend(
                month=month_start.strftime("%Y-%m"),
                month_name=month_start.strftime("%B %Y"),
                training_types=[
                    schemas.TrainingTypeCount(training_type=name, certificates_issued=count)
                    for name, count in sorted(by_type.items(), key=lambda item: (-item[1], item[0]))
                ],
                total_certificates=sum(by_type.values()),
            )
        )
    return trends


def training_cost_analytics(db: Session, *, clock: Optional[Clock] = None) -> schemas.CostAnalytics:
    """
    Spend on training completed this calendar year, per training type.

    Records without a cost count towards the totals but not the per type
    average, max and min.
    """
    today = resolve_clock(clock, db).today()
    records = (
        db.query(TrainingRecord)
        .options(joinedload(TrainingRecord.training_type))
        .filter(TrainingRecord.completion_date >= date(today.year, 1, 1))
        .filter(TrainingRecord.completion_date <= date(today.year, 12, 31))
        .all()
    )

    grouped: Dict[int, List[TrainingRecord]] = {}
    for record in records:
        grouped.setdefault(record.training_type_id, []).append(record)

    by_type = []
    for training_type_id, group in grouped.items():
        training_type = group[0].training_type
        costs = [_as_float(r.cost) for r in group if r.cost is not None]
        total_cost = round(sum(costs, 0.0), 2)
        by_type.append(
            schemas.TrainingTypeCost(
                training_type_id=training_type_id,
                training_type=training_type.name if training_type else "Unknown",
                category=training_type.category if training_type else None,
                total_certificates=len(group),
                total_cost=total_cost,
                average_cost=round(total_cost / len(costs), 2) if costs else 0.0,
                max_cost=max(costs) if costs else None,
                min_cost=min(costs) if costs else None,
            )
        )
    by_type.sort(key=lambda row: (-row.total_cost, row.training_type))

    total_cost = round(sum((row.total_cost for row in by_type), 0.0), 2)
    return schemas.CostAnalytics(
        year=today.year,
        total_cost_this_year=total_cost,
        total_certificates_this_year=len(records),
        average_cost_per_certificate=round(total_cost / len(records), 2) if records else 0.0,
        by_training_type=by_type,
    )


def compliance_report(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    months: int = 12,
) -> schemas.ComplianceReport:
    """Overview, expiry bucket sizes and issue trends in one document, as printed by the status sweep."""
    clock = resolve_clock(clock, db)
    buckets = upcoming_expiry_buckets(db, clock=clock)
    report = schemas.ComplianceReport(
        generated_at=clock.now(),
        overview=get_compliance_overview(db, clock=clock),
        expired=len(buckets.expired),
        critical=len(buckets.critical),
        urgent=len(buckets.urgent),
        warning=len(buckets.warning),
        trends=monthly_training_trends(db, months=months, clock=clock),
    )
    logger.info(
        "Compliance report generated",
        extra={
            "overall_compliance_rate": report.overview.overall_compliance_rate,
            "expired": report.expired,
            "critical": report.critical,
        },
    )
    return report
