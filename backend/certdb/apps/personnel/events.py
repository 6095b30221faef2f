"""
Employee lifecycle events.

The personnel services publish `employee.created`, `employee.id_changed` and
`employee.deleted` through the event broker. Anything that keeps per-employee
side state (document folders, mail groups, ...) implements
`EmployeeLifecycleSubscriber` and registers itself here; the compliance
engine itself has no such side effects.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Protocol

from certdb.apps.events.broker import EventBroker, EventEnvelope, broker

logger = logging.getLogger(__name__)

EMPLOYEE_CREATED = "employee.created"
EMPLOYEE_ID_CHANGED = "employee.id_changed"
EMPLOYEE_DELETED = "employee.deleted"


class EmployeeLifecycleSubscriber(Protocol):
    def on_employee_created(self, employee_id: str, name: str) -> None:
        ...

    def on_employee_id_changed(self, old_employee_id: str, new_employee_id: str, name: str) -> None:
        ...

    def on_employee_deleted(self, employee_id: str, name: str) -> None:
        ...


def _dispatch(subscriber: EmployeeLifecycleSubscriber, event: EventEnvelope) -> None:
    meta = event.metadata
    if event.type == EMPLOYEE_CREATED:
        subscriber.on_employee_created(meta["employee_id"], meta["name"])
    elif event.type == EMPLOYEE_ID_CHANGED:
        subscriber.on_employee_id_changed(meta["old_employee_id"], meta["employee_id"], meta["name"])
    elif event.type == EMPLOYEE_DELETED:
        subscriber.on_employee_deleted(meta["employee_id"], meta["name"])


def register_subscriber(
    subscriber: EmployeeLifecycleSubscriber,
    *,
    event_broker: Optional[EventBroker] = None,
) -> Callable[[], None]:
    """
    Attach a subscriber to all employee lifecycle events.

    Returns a callable that detaches it again. Subscriber failures are logged
    and never propagate into the employee save.
    """
    target = event_broker or broker

    def listener(event: EventEnvelope) -> None:
        try:
            _dispatch(subscriber, event)
        except Exception:
            logger.warning(
                "Employee lifecycle subscriber failed",
                exc_info=True,
                extra={
                    "event_type": event.type,
                    "entity_id": event.entityId,
                    "subscriber": type(subscriber).__name__,
                },
            )

    listeners: Dict[str, Callable[[EventEnvelope], None]] = {
        EMPLOYEE_CREATED: listener,
        EMPLOYEE_ID_CHANGED: listener,
        EMPLOYEE_DELETED: listener,
    }
    for event_type, fn in listeners.items():
        target.add_listener(event_type, fn)

    def unregister() -> None:
        for event_type, fn in listeners.items():
            target.remove_listener(event_type, fn)

    return unregister
