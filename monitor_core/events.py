"""
Engine event emission.

The engine announces state changes (metric registered, alert triggered,
insight generated, ...) to an event bus. Publishing is fire-and-forget:
the engine never waits for, or depends on, a subscriber.

The default in-process bus fans events out to registered handlers. A host
application that owns a real pub/sub system implements ``EventBus`` and
passes it to the engine.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Events emitted by the engine."""
    METRIC_REGISTERED = "metric_registered"
    METRIC_RECORDED = "metric_recorded"

    DASHBOARD_CREATED = "dashboard_created"
    DASHBOARD_UPDATED = "dashboard_updated"
    DASHBOARD_DELETED = "dashboard_deleted"

    ALERT_RULE_CREATED = "alert_rule_created"
    ALERT_RULE_UPDATED = "alert_rule_updated"
    ALERT_RULE_MUTED = "alert_rule_muted"
    ALERT_RULE_UNMUTED = "alert_rule_unmuted"
    ALERT_TRIGGERED = "alert_triggered"

    NOTIFICATION_CHANNEL_CREATED = "notification_channel_created"
    NOTIFICATION_CHANNEL_UPDATED = "notification_channel_updated"

    INSIGHT_GENERATED = "insight_generated"
    INSIGHT_ACKNOWLEDGED = "insight_acknowledged"

    SYSTEM_HEALTH_UPDATED = "system_health_updated"


@dataclass
class MonitorEvent:
    """A single engine event."""
    event_type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "datetime": datetime.fromtimestamp(self.timestamp).isoformat(),
            "payload": self.payload,
        }


EventHandler = Callable[[MonitorEvent], Union[None, Awaitable[None]]]


class EventBus(ABC):
    """Destination for engine events."""

    @abstractmethod
    def publish(self, event: MonitorEvent) -> None:
        """Hand off an event. Must not block and must not raise."""

    def emit(self, event_type: EventType, **payload: Any) -> MonitorEvent:
        """Build and publish an event."""
        event = MonitorEvent(event_type=event_type, payload=payload)
        self.publish(event)
        return event


class InProcessEventBus(EventBus):
    """
    In-process fan-out to subscribed handlers.

    Handlers may be plain functions or coroutine functions. Coroutines are
    scheduled on the running loop and never awaited by the publisher.
    Handler failures are logged and swallowed so a bad subscriber cannot
    break the engine.

    Usage:
        bus = InProcessEventBus()
        bus.subscribe(EventType.ALERT_TRIGGERED, on_alert)
        bus.subscribe(None, audit_everything)   # all events
    """

    def __init__(self, history_size: int = 1000):
        self._handlers: Dict[Optional[EventType], List[EventHandler]] = defaultdict(list)
        self._history: Deque[MonitorEvent] = deque(maxlen=history_size)
        self._pending: set = set()
        self._published = 0
        self._handler_errors = 0

    def subscribe(self, event_type: Optional[EventType], handler: EventHandler) -> None:
        """Register a handler for one event type, or for all with None."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Optional[EventType], handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: MonitorEvent) -> None:
        self._published += 1
        self._history.append(event)

        for handler in self._handlers.get(event.event_type, []) + self._handlers.get(None, []):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result)
            except Exception as e:
                self._handler_errors += 1
                logger.error(f"[Events] Handler error for {event.event_type.value}: {e}")

    def _schedule(self, coro: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[Events] Async handler dropped: no running event loop")
            coro.close()
            return

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._handler_errors += 1
            logger.error(f"[Events] Async handler error: {task.exception()!r}")

    def recent(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 100,
    ) -> List[MonitorEvent]:
        """Recently published events, oldest first."""
        events = list(self._history)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "published": self._published,
            "handler_errors": self._handler_errors,
            "pending_handlers": len(self._pending),
            "subscriptions": {
                (k.value if k else "*"): len(v) for k, v in self._handlers.items()
            },
        }
