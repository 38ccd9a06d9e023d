"""Lightweight instrumentation hooks around outbound proxy calls."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Dict[str, Any]], None]


class Instrumentation:
    """Publish ``(event, payload)`` notifications to subscribers once a block finishes."""

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.remove(subscriber)

    @contextmanager
    def instrument(self, event: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Time the wrapped block; callers may add fields to the yielded payload."""
        started = time.perf_counter()
        try:
            yield payload
        finally:
            payload["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
            logger.debug("%s %s", event, payload)
            for subscriber in list(self._subscribers):
                try:
                    subscriber(event, dict(payload))
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Instrumentation subscriber failed for %s", event)


__all__ = ["Instrumentation", "Subscriber"]
