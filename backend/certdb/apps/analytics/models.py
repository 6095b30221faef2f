# backend/certdb/apps/analytics/models.py

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
)
from sqlalchemy.orm import relationship

from ...database import Base, enum_values


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TrainingTypeStatistic(Base):
    """
    Cached compliance rollup for one training type.

    A read model: recomputed by analytics.services.refresh_statistics and
    considered fresh for `ttl` after `calculated_at`.
    """

    __tablename__ = "training_type_statistics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    training_type_id = Column(
        Integer,
        ForeignKey("training_types.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    total_employees = Column(Integer, nullable=False, default=0)
    total_certificates = Column(Integer, nullable=False, default=0)
    active_certificates = Column(Integer, nullable=False, default=0)
    expiring_certificates = Column(Integer, nullable=False, default=0)
    expired_certificates = Column(Integer, nullable=False, default=0)
    employees_trained = Column(Integer, nullable=False, default=0)
    employees_need_training = Column(Integer, nullable=False, default=0)

    compliance_rate = Column(Numeric(5, 2), nullable=False, default=0)
    risk_level = Column(
        Enum(RiskLevel, name="risk_level_enum", values_callable=enum_values),
        nullable=False,
        default=RiskLevel.LOW,
    )
    calculated_priority_score = Column(Integer, nullable=False, default=0)

    total_cost_ytd = Column(Numeric(14, 2), nullable=False, default=0)
    average_cost_per_certificate = Column(Numeric(12, 2), nullable=False, default=0)

    certificates_issued_this_month = Column(Integer, nullable=False, default=0)
    certificates_issued_this_quarter = Column(Integer, nullable=False, default=0)
    certificates_issued_this_year = Column(Integer, nullable=False, default=0)

    next_batch_expiry_date = Column(Date, nullable=True)
    certificates_expiring_next_30_days = Column(Integer, nullable=False, default=0)
    certificates_expiring_next_90_days = Column(Integer, nullable=False, default=0)

    last_certificate_issued_at = Column(Date, nullable=True)
    calculated_at = Column(DateTime(timezone=True), nullable=True)

    training_type = relationship("TrainingType", back_populates="statistic")

    def is_fresh(self, now: Optional[datetime] = None, ttl: timedelta = timedelta(hours=1)) -> bool:
        if self.calculated_at is None:
            return False
        now = now or _utcnow()
        calculated_at = self.calculated_at
        if calculated_at.tzinfo is None:
            # SQLite hands back naive datetimes.
            calculated_at = calculated_at.replace(tzinfo=timezone.utc)
        return now - calculated_at < ttl

    def __repr__(self) -> str:
        return (
            f"<TrainingTypeStatistic type={self.training_type_id} "
            f"rate={self.compliance_rate} risk={self.risk_level}>"
        )
