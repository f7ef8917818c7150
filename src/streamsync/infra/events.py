"""
In-process status broadcaster.

Sync code publishes provider status transitions here; listeners (a UI bridge,
tests, the CLI) subscribe per topic. Publishing never blocks on or fails
because of a listener.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import structlog

from ..shared.types import StatusMessage

logger = structlog.get_logger(__name__)

Listener = Callable[[str, StatusMessage], Any]


def provider_topic(provider_id: int) -> str:
    return f"provider:{provider_id}"


def user_providers_topic(user_id: int) -> str:
    return f"user:{user_id}:providers"


class StatusBroadcaster:
    """Topic-keyed fan-out of status messages to registered callbacks."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Listener) -> None:
        with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

    def unsubscribe(self, topic: str, callback: Listener) -> None:
        with self._lock:
            listeners = self._subscribers.get(topic)
            if not listeners:
                return
            try:
                listeners.remove(callback)
            except ValueError:
                return
            if not listeners:
                del self._subscribers[topic]

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, message: StatusMessage) -> int:
        """Deliver ``message`` to every listener of ``topic``; returns the number delivered."""
        with self._lock:
            listeners = list(self._subscribers.get(topic, ()))

        delivered = 0
        for listener in listeners:
            try:
                listener(topic, message)
                delivered += 1
            except Exception as e:
                logger.warning("status_listener_failed", topic=topic, error=str(e))
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


# Global broadcaster instance
broadcaster = StatusBroadcaster()


def publish_provider_status(
    provider_id: int,
    status: str,
    *,
    user_id: int | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Publish ``{status, provider_id, extra}`` on the provider topic (and the owner's topic)."""
    message: StatusMessage = {"status": status, "provider_id": provider_id, "extra": dict(extra or {})}
    broadcaster.publish(provider_topic(provider_id), message)
    if user_id is not None:
        broadcaster.publish(user_providers_topic(user_id), message)
