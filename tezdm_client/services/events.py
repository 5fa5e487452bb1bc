"""In-process publish/subscribe channel for session-wide notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

LOGOUT = "auth:logout"
ACCOUNT_CONNECTED = "account:connected"


@dataclass(frozen=True, slots=True)
class Event:
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[Event], None]


class EventBus:
    """Deliver events synchronously to the handlers subscribed to their type."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that removes it again."""
        handlers = self._subscribers.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event_type: str, **payload: Any) -> Event:
        event = Event(event_type=event_type, payload=payload)
        for handler in list(self._subscribers.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed", extra={"event_type": event_type}
                )
        return event

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, []))


__all__ = ["ACCOUNT_CONNECTED", "Event", "EventBus", "EventHandler", "LOGOUT"]
