from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from certdb.apps.events.broker import EventEnvelope, publish_event

from . import models, schemas

logger = logging.getLogger(__name__)


def create_audit_event(
    db: Session,
    *,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        action=data.action,
        actor=data.actor,
        before=data.before,
        after=data.after,
        correlation_id=data.correlation_id,
        metadata_json=data.metadata,
    )
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def _envelope(event: models.AuditEvent) -> EventEnvelope:
    occurred = event.occurred_at or event.created_at
    return EventEnvelope(
        id=str(event.id),
        type=f"{event.entity_type}.{event.action}".lower(),
        entityType=event.entity_type,
        entityId=event.entity_id,
        action=event.action,
        timestamp=occurred.isoformat(),
        actor={"name": event.actor} if event.actor else None,
        metadata=dict(event.metadata_json or {}),
    )


def log_event(
    db: Session,
    *,
    actor: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Record an action on a certificate, training record or employee and
    publish it on the event broker.

    Workflow transitions (revoke / suspend / renew) pass critical=True and
    the error propagates, so the state change is abandoned with it. Anything
    else is best effort: a warning is logged and None returned.
    """
    try:
        event = create_audit_event(
            db,
            data=schemas.AuditEventCreate(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                actor=actor,
                before=before,
                after=after,
                correlation_id=correlation_id,
                metadata=metadata,
            ),
        )
        publish_event(_envelope(event))
        return event
    except Exception:
        logger.warning(
            "Failed to log audit event",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def list_audit_events(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    actor: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> Sequence[models.AuditEvent]:
    """Newest first."""
    query = db.query(models.AuditEvent)
    if entity_type:
        query = query.filter(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditEvent.entity_id == entity_id)
    if action:
        query = query.filter(models.AuditEvent.action == action)
    if actor:
        query = query.filter(models.AuditEvent.actor == actor)
    if start:
        query = query.filter(models.AuditEvent.occurred_at >= start)
    if end:
        query = query.filter(models.AuditEvent.occurred_at <= end)
    query = query.order_by(models.AuditEvent.occurred_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def entity_history(db: Session, entity_type: str, entity_id) -> List[schemas.AuditEventRead]:
    """Everything recorded for one entity, oldest first."""
    events = list_audit_events(db, entity_type=entity_type, entity_id=str(entity_id))
    return [schemas.AuditEventRead.model_validate(event) for event in reversed(events)]
