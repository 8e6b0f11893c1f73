"""Minimal in-process event bus used to publish session-level conditions."""

from __future__ import annotations

from collections import deque
from typing import Any, Callable

import structlog

log = structlog.get_logger()

SESSION_EXPIRED = "session_expired"
SESSION_RESUMED = "session_resumed"

Listener = Callable[[str, dict], Any]


class EventBus:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self.history: deque[tuple[str, dict]] = deque(maxlen=100)

    def subscribe(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def emit(self, event: str, **payload: Any) -> None:
        self.history.append((event, payload))
        log.info("event_emitted", event_name=event, **payload)
        for listener in self._listeners.get(event, []):
            try:
                listener(event, payload)
            except Exception:
                log.exception("event_listener_failed", event_name=event)
