from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from certdb.apps.audit import services as audit_services

from .registry import WORKFLOWS


@dataclass
class TransitionError(Exception):
    code: str
    detail: List[Dict[str, str]]


def allowed_targets(entity_type: str, from_state: str) -> List[str]:
    workflow = WORKFLOWS.get(entity_type) or {}
    return sorted(workflow.get("transitions", {}).get(from_state, {}).keys())


def apply_transition(
    db: Session,
    *,
    actor: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: str,
    to_state: str,
    before_obj: Any,
    after_obj: Any,
    correlation_id: Optional[str] = None,
    critical: bool = True,
) -> None:
    """
    Validate a manual state change against the registry and audit it.

    Raises TransitionError(code="invalid_transition") for unknown moves and
    TransitionError(code="missing_requirements") when a guard fails. The
    caller applies the new state only after this returns.
    """
    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    transitions = workflow.get("transitions", {})
    allowed = transitions.get(from_state, {})
    guards = allowed.get(to_state)

    if guards is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": f"Cannot transition from {from_state} to {to_state}"}],
        )

    failures: List[Dict[str, str]] = []
    for guard in guards:
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )

    if failures:
        raise TransitionError(code="missing_requirements", detail=failures)

    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": to_state}
    if isinstance(before_obj, dict):
        before_payload.update({k: _jsonable(v) for k, v in before_obj.items()})
    if isinstance(after_obj, dict):
        after_payload.update({k: _jsonable(v) for k, v in after_obj.items()})

    audit_services.log_event(
        db,
        actor=actor,
        entity_type=entity_type,
        entity_id=entity_id,
        action="transition",
        before=before_payload,
        after=after_payload,
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
        critical=critical,
    )


def _jsonable(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value
