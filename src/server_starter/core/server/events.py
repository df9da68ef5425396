from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

ERROR = "error"
STDOUT = "stdout"
STDERR = "stderr"
EXIT = "exit"

EVENTS = frozenset({ERROR, STDOUT, STDERR, EXIT})

Listener = Callable[..., Any]


class EventEmitter:
    """Named-event callbacks, called synchronously on the emitting thread.

    A raising callback is logged and skipped; it never reaches the stream or
    exit threads that emit most events.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, callback: Listener) -> Listener:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {sorted(EVENTS)}")
        with self._lock:
            self._listeners.setdefault(event, []).append(callback)
        return callback

    def off(self, event: str, callback: Listener) -> None:
        with self._lock:
            callbacks = self._listeners.get(event, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> int:
        with self._lock:
            callbacks = list(self._listeners.get(event, []))
        for callback in callbacks:
            try:
                callback(*args)
            except Exception:
                logger.warning("%s listener %r raised", event, callback, exc_info=True)
        return len(callbacks)


__all__ = ["EVENTS", "ERROR", "STDOUT", "STDERR", "EXIT", "EventEmitter"]
