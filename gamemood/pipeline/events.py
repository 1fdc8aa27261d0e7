from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

BEHAVIOR_UPDATED = "behavior.updated"
MOOD_ANALYZED = "mood.analyzed"
USER_RESET = "user.reset"


@dataclass(slots=True)
class Event:
    name: str
    payload: dict[str, Any]
    timestamp: str


class EventBus:
    """Synchronous in-process publish/subscribe used for cache invalidation."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[Event], None]]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Callable[[Event], None]) -> None:
        self._subscribers[event_name].append(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        event = Event(
            name=event_name,
            payload=payload,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                handler(event)
            except Exception as exc:
                logger.warning("Event handler for %s failed: %s", event_name, exc)
