"""
Event Bus
=========
Process-local publish/subscribe channel owned by one orchestrator.

Events are advisory: handlers run synchronously in the publisher's thread,
a failing handler is logged and skipped, and nothing the orchestrator
computes depends on whether anyone is listening.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


class EventType(Enum):
    AGENT_REGISTERED = "agent_registered"
    AGENT_REGISTRATION_FAILED = "agent_registration_failed"
    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"
    AGENT_FAILED = "agent_failed"
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"


@dataclass(frozen=True)
class Event:
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


EventHandler = Callable[[Event], Any]
Unsubscribe = Callable[[], None]


class EventBus:
    """
    Typed pub/sub with per-type and catch-all subscriptions.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(EventType.AGENT_FAILED, handler)
        bus.publish(EventType.AGENT_FAILED, {"name": "code_quality"})
        unsubscribe()
    """

    def __init__(self):
        self._handlers: Dict[Optional[EventType], List[EventHandler]] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Unsubscribe:
        """Register ``handler`` for one event type; returns a callable that removes it."""
        return self._add(event_type, handler)

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        """Register ``handler`` for every event type."""
        return self._add(None, handler)

    def _add(self, key: Optional[EventType], handler: EventHandler) -> Unsubscribe:
        if not callable(handler):
            raise TypeError("Event handler must be callable")
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot subscribe to a closed event bus")
            self._handlers.setdefault(key, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(key, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> Optional[Event]:
        """
        Deliver an event to its subscribers.

        Returns:
            The delivered Event, or None when the bus is closed
        """
        with self._lock:
            if self._closed:
                return None
            handlers = list(self._handlers.get(event_type, [])) + list(self._handlers.get(None, []))

        event = Event(type=event_type, data=dict(data or {}))
        logger.debug(f"Event {event_type.value}: {sorted(event.data.keys())}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler {getattr(handler, '__name__', handler)!r} failed on {event_type.value}: {e}")
        return event

    def handler_count(self, event_type: Optional[EventType] = None) -> int:
        with self._lock:
            if event_type is None:
                return sum(len(h) for h in self._handlers.values())
            return len(self._handlers.get(event_type, []))

    def close(self) -> None:
        """Drop every handler; later publishes are no-ops."""
        with self._lock:
            self._handlers.clear()
            self._closed = True
