from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class EventEnvelope:
    id: str
    type: str
    entityType: str
    entityId: str
    action: str
    timestamp: str
    actor: Optional[Dict[str, Any]]
    metadata: Dict[str, Any]


Listener = Callable[[EventEnvelope], None]


class EventBroker:
    """
    In-process fan-out of domain events.

    Listeners are keyed by event type (`<entity>.<action>`) and called
    synchronously, in registration order, on the publishing thread.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()

    def add_listener(self, event_type: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

    def publish(self, event: EventEnvelope) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event.type, []))
        for listener in listeners:
            listener(event)


broker = EventBroker()


def publish_event(event: EventEnvelope) -> None:
    broker.publish(event)
