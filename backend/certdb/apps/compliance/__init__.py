from .classifier import (
    DEFAULT_WARNING_DAYS,
    add_months,
    calculate_expiry_date,
    classify,
    days_until_expiry,
    renewal_due_date,
)
from .status import (
    ComplianceLabel,
    ComplianceStatus,
    to_certificate_status,
    to_compliance_label,
    to_employee_certificate_status,
    to_training_record_status,
)

__all__ = [
    "ComplianceLabel",
    "ComplianceStatus",
    "DEFAULT_WARNING_DAYS",
    "add_months",
    "calculate_expiry_date",
    "classify",
    "days_until_expiry",
    "renewal_due_date",
    "to_certificate_status",
    "to_compliance_label",
    "to_employee_certificate_status",
    "to_training_record_status",
]
