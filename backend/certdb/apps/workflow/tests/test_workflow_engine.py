from __future__ import annotations

from datetime import date

import pytest

from certdb.apps.audit import models as audit_models
from certdb.apps.workflow import TransitionError, allowed_targets, apply_transition


def test_allowed_targets():
    assert allowed_targets("certificate", "active") == ["cancelled", "renewed", "revoked", "suspended"]
    assert allowed_targets("certificate", "draft") == ["active", "cancelled", "expired", "expiring_soon"]
    assert allowed_targets("certificate", "revoked") == []
    assert allowed_targets("unknown", "active") == []


def test_unknown_workflow_is_rejected(db_session):
    with pytest.raises(TransitionError) as exc_info:
        apply_transition(
            db_session,
            actor=None,
            entity_type="invoice",
            entity_id="1",
            from_state="draft",
            to_state="paid",
            before_obj={},
            after_obj={},
        )
    assert exc_info.value.code == "invalid_transition"


def test_guards_report_every_missing_field(db_session):
    with pytest.raises(TransitionError) as exc_info:
        apply_transition(
            db_session,
            actor="hr",
            entity_type="certificate",
            entity_id="1",
            from_state="draft",
            to_state="active",
            before_obj={},
            after_obj={"certificate_number": None},
        )
    assert exc_info.value.code == "missing_requirements"
    assert [item["field"] for item in exc_info.value.detail] == ["certificate_number", "issue_date"]
    assert db_session.query(audit_models.AuditEvent).count() == 0


def test_successful_transition_is_audited(db_session):
    apply_transition(
        db_session,
        actor="hr",
        entity_type="certificate",
        entity_id="9",
        from_state="active",
        to_state="revoked",
        before_obj={"revocation_reason": None},
        after_obj={"revocation_reason": "Fraud", "revocation_date": date(2025, 3, 15)},
        correlation_id="req-1",
    )
    db_session.commit()

    event = db_session.query(audit_models.AuditEvent).one()
    assert event.action == "transition"
    assert event.entity_id == "9"
    assert event.before == {"status": "active", "revocation_reason": None}
    assert event.after == {"status": "revoked", "revocation_reason": "Fraud", "revocation_date": "2025-03-15"}
    assert event.correlation_id == "req-1"
    assert event.metadata_json == {"workflow": "certificate"}
