# src/notifications/service.py — v1
"""In-process notification bus for digest progress events.

Constructed once by the Runtime and passed to whoever publishes. Subscriber
failures are logged and never reach the publisher.
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, Field

from digestkit.core.clock import utc_now

logger = logging.getLogger(__name__)

EventType = Literal["digest-started", "digest-complete", "preview-updated"]


class NotificationEvent(BaseModel):
    type: EventType
    file_path: str
    digester: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


Subscriber = Callable[[NotificationEvent], Union[None, Awaitable[None]]]


class NotificationService:
    """Fan-out of events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Add a subscriber. Returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, event: NotificationEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s event after close", event.type)
            return
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Notification subscriber failed for %s", event.type)

    def close(self) -> None:
        self._subscribers.clear()
        self._closed = True
