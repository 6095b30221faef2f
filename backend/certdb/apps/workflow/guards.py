from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_revocation(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "revocation_reason"):
        missing.append({"field": "revocation_reason", "reason": "revocation reason required"})
    if not _get_value(after_obj, "revocation_date"):
        missing.append({"field": "revocation_date", "reason": "revocation date required"})
    return missing


def guard_suspension(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "suspension_reason"):
        missing.append({"field": "suspension_reason", "reason": "suspension reason required"})
    if not _get_value(after_obj, "suspension_start"):
        missing.append({"field": "suspension_start", "reason": "suspension start required"})

    start = _get_value(after_obj, "suspension_start")
    end = _get_value(after_obj, "suspension_end")
    if start and end and end < start:
        missing.append({"field": "suspension_end", "reason": "suspension end must not precede start"})
    return missing


def guard_renewal_link(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "renewed_to_id"):
        return [{"field": "renewed_to_id", "reason": "replacement certificate required"}]
    return []


def guard_certificate_issue(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "certificate_number"):
        missing.append({"field": "certificate_number", "reason": "certificate number required"})
    if not _get_value(after_obj, "issue_date"):
        missing.append({"field": "issue_date", "reason": "issue date required"})
    return missing


def guard_cancellation(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "cancellation_reason"):
        return [{"field": "cancellation_reason", "reason": "cancellation reason required"}]
    return []
