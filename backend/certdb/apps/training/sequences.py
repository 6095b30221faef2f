"""
Certificate number sequences.

One counter per (training type, issuer, year, month). Increments are a single
``UPDATE ... SET last_number = last_number + 1`` so concurrent callers on the
same bucket each get a distinct number; the row is created on first use with
an ``INSERT ... ON CONFLICT DO NOTHING`` against the unique constraint.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import date
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import CertificateSequence, TrainingType

logger = logging.getLogger(__name__)

DEFAULT_ISSUER = os.getenv("CERTDB_DEFAULT_ISSUER", "Training Centre")

_KEY_COLUMNS = ("training_type_id", "issuer", "year", "month")


def _bucket_filter(training_type_id: int, issuer: str, year: int, month: int):
    return (
        CertificateSequence.training_type_id == training_type_id,
        CertificateSequence.issuer == issuer,
        CertificateSequence.year == year,
        CertificateSequence.month == month,
    )


def _ensure_bucket(db: Session, training_type_id: int, issuer: str, year: int, month: int) -> None:
    values = {
        "training_type_id": training_type_id,
        "issuer": issuer,
        "year": year,
        "month": month,
        "last_number": 0,
    }
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = pg_insert(CertificateSequence).values(**values).on_conflict_do_nothing(
            index_elements=list(_KEY_COLUMNS)
        )
        db.execute(stmt)
        return
    if dialect == "sqlite":
        stmt = sqlite_insert(CertificateSequence).values(**values).on_conflict_do_nothing(
            index_elements=list(_KEY_COLUMNS)
        )
        db.execute(stmt)
        return

    # Other backends: plain insert in a savepoint, losing the race is fine.
    try:
        with db.begin_nested():
            db.execute(insert(CertificateSequence).values(**values))
    except IntegrityError:
        pass


def next_number(db: Session, training_type_id: int, issuer: str, year: int, month: int) -> int:
    """
    Reserve the next number in the bucket and return it.

    The caller owns the transaction: the number is only durable once the
    surrounding unit of work commits.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month {month}.")

    _ensure_bucket(db, training_type_id, issuer, year, month)
    db.execute(
        update(CertificateSequence)
        .where(*_bucket_filter(training_type_id, issuer, year, month))
        .values(last_number=CertificateSequence.last_number + 1)
        .execution_options(synchronize_session=False)
    )
    number = db.execute(
        select(CertificateSequence.last_number).where(
            *_bucket_filter(training_type_id, issuer, year, month)
        )
    ).scalar_one()
    return int(number)


def reset_for_new_period(db: Session, training_type_id: int, issuer: str, year: int, month: int) -> None:
    """Zero the bucket for a period (creating it when it does not exist yet)."""
    _ensure_bucket(db, training_type_id, issuer, year, month)
    db.execute(
        update(CertificateSequence)
        .where(*_bucket_filter(training_type_id, issuer, year, month))
        .values(last_number=0)
        .execution_options(synchronize_session=False)
    )


def current_number(db: Session, training_type_id: int, issuer: str, year: int, month: int) -> int:
    value = db.execute(
        select(CertificateSequence.last_number).where(
            *_bucket_filter(training_type_id, issuer, year, month)
        )
    ).scalar_one_or_none()
    return int(value or 0)


def _prefix(value: Optional[str], length: int = 3) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9]", "", value or "")
    return cleaned[:length].upper()


def type_code(training_type: TrainingType) -> str:
    if training_type.code:
        return training_type.code.strip().upper()
    return _prefix(training_type.name) or "GEN"


def generate_certificate_number(
    db: Session,
    training_type: TrainingType,
    issuer: Optional[str],
    *,
    today: date,
) -> str:
    """
    Format: ``{ISS}/{TYPE}-{NNN}/{YYYY}-{MM}``, e.g. ``TRA/FA-001/2025-03``.

    Numbers come from the (type, issuer, year, month) bucket for ``today``.
    """
    issuer = (issuer or DEFAULT_ISSUER).strip()
    number = next_number(db, training_type.id, issuer, today.year, today.month)
    certificate_number = (
        f"{_prefix(issuer) or 'GEN'}/{type_code(training_type)}-{number:03d}/{today.year}-{today.month:02d}"
    )

    logger.info(
        "Generated certificate number",
        extra={
            "certificate_number": certificate_number,
            "training_type_id": training_type.id,
            "issuer": issuer,
            "period": f"{today.year}-{today.month:02d}",
        },
    )
    return certificate_number
