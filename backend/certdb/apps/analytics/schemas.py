# backend/certdb/apps/analytics/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .models import RiskLevel

DepartmentComplianceLabel = Literal["excellent", "good", "fair", "poor", "critical"]
EmployeeComplianceLabel = Literal["compliant", "warning", "at_risk", "non_compliant"]


class ComplianceStats(BaseModel):
    training_type_id: int
    training_type_name: str
    is_mandatory: bool

    total_employees: int = Field(..., description="Active employees.")
    active: int = Field(..., description="Active employees holding a currently active record.")
    expiring: int = Field(..., description="Records inside their warning window.")
    expired: int
    compliance_rate: float
    risk_level: RiskLevel
    priority_score: int

    total_certificates: int = 0
    active_certificates: int = 0
    employees_trained: int = 0
    employees_need_training: int = 0

    total_cost_ytd: float = 0.0
    average_cost_per_certificate: float = 0.0
    certificates_issued_this_month: int = 0
    certificates_issued_this_quarter: int = 0
    certificates_issued_this_year: int = 0

    next_batch_expiry_date: Optional[date] = None
    certificates_expiring_next_30_days: int = 0
    certificates_expiring_next_90_days: int = 0
    last_certificate_issued_at: Optional[date] = None


class DepartmentCompliance(BaseModel):
    department_id: int
    department_name: str
    total_employees: int
    trained_employees: int
    untrained_employees: int
    compliance_rate: float
    target_percentage: float
    target_met: bool
    compliance_status: DepartmentComplianceLabel


class ExpiryBucketItem(BaseModel):
    training_record_id: int
    employee_id: int
    employee_name: Optional[str] = None
    training_type_id: int
    training_type_name: Optional[str] = None
    expiry_date: date
    days_until_expiry: int


class ExpiryBuckets(BaseModel):
    expired: List[ExpiryBucketItem] = Field(default_factory=list)
    critical: List[ExpiryBucketItem] = Field(default_factory=list)
    urgent: List[ExpiryBucketItem] = Field(default_factory=list)
    warning: List[ExpiryBucketItem] = Field(default_factory=list)


class ComplianceOverview(BaseModel):
    total_employees: int
    mandatory_training_types: int
    overall_compliance_rate: float
    expiring_certificates: int
    expired_certificates: int
    total_risk_alerts: int
    compliance_grade: str


class ComplianceIssue(BaseModel):
    type: Literal["missing_mandatory", "expired", "urgent_renewal", "expiring_soon"]
    training_type_id: int
    training: str
    priority: int
    action: str
    days_left: Optional[int] = None


class EmployeeCompliance(BaseModel):
    employee_id: int
    overall_status: EmployeeComplianceLabel
    compliance_score: float
    total_mandatory: int
    completed_mandatory: int
    critical_issues: List[ComplianceIssue] = Field(default_factory=list)
    warnings: List[ComplianceIssue] = Field(default_factory=list)


class TrainingTypeStatisticRead(BaseModel):
    training_type_id: int
    total_employees: int
    total_certificates: int
    active_certificates: int
    expiring_certificates: int
    expired_certificates: int
    employees_trained: int
    employees_need_training: int
    compliance_rate: float
    risk_level: RiskLevel
    calculated_priority_score: int
    calculated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TrainingTypeCount(BaseModel):
    training_type: str
    certificates_issued: int


class MonthlyTrend(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    month_name: str
    training_types: List[TrainingTypeCount] = Field(default_factory=list)
    total_certificates: int = 0


class TrainingTypeCost(BaseModel):
    training_type_id: int
    training_type: str
    category: Optional[str] = None
    total_certificates: int
    total_cost: float
    average_cost: float
    max_cost: Optional[float] = None
    min_cost: Optional[float] = None


class CostAnalytics(BaseModel):
    year: int
    total_cost_this_year: float
    total_certificates_this_year: int
    average_cost_per_certificate: float
    by_training_type: List[TrainingTypeCost] = Field(default_factory=list)


class ComplianceReport(BaseModel):
    generated_at: datetime
    overview: ComplianceOverview
    expired: int
    critical: int
    urgent: int
    warning: int
    trends: List[MonthlyTrend] = Field(default_factory=list)
