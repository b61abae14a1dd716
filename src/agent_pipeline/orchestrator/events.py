"""Fan-out of task state transitions to registered subscribers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict[str, Any]], None]


class EventBroadcaster:
    """Subscriber-id keyed callbacks, called synchronously in registration order.

    A callback that raises is logged and skipped; the remaining subscribers
    still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, Subscriber] = {}
        self._lock = threading.Lock()

    def subscribe(self, subscriber_id: str, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers[subscriber_id] = callback
        logger.info("broadcaster event=subscribe subscriber_id=%s", subscriber_id)

    def unsubscribe(self, subscriber_id: str) -> bool:
        with self._lock:
            removed = self._subscribers.pop(subscriber_id, None) is not None
        if removed:
            logger.info("broadcaster event=unsubscribe subscriber_id=%s", subscriber_id)
        return removed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, event: dict[str, Any]) -> int:
        """Deliver `event` to every subscriber; returns how many accepted it."""
        with self._lock:
            subscribers = list(self._subscribers.items())
        delivered = 0
        for subscriber_id, callback in subscribers:
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "broadcaster event=delivery_failed subscriber_id=%s type=%s",
                    subscriber_id,
                    event.get("type"),
                )
                continue
            delivered += 1
        return delivered
