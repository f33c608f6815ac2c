from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.time.timeframe import Timeframe
from observability.metrics import Metrics

log = logging.getLogger("events")


class EventName(str, Enum):
    CLOSE = "close"
    COUNTDOWN = "countdown"


@dataclass(frozen=True)
class CloseEvent:
    timeframe: Timeframe
    closed_boundary_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {"tf": str(self.timeframe), "closed_boundary_time": self.closed_boundary_time}


@dataclass(frozen=True)
class CountdownEvent:
    timeframe: Timeframe
    seconds_left: int

    def to_dict(self) -> Dict[str, Any]:
        return {"tf": str(self.timeframe), "seconds_left": self.seconds_left}


Listener = Callable[[Any], None]


class EventEmitter:
    """Pub/sub з ізольованим dispatch: виняток listener не зупиняє решту."""

    def __init__(self, metrics: Optional[Metrics] = None) -> None:
        self._metrics = metrics
        self._listeners: Dict[EventName, List[Listener]] = {name: [] for name in EventName}
        self._lock = threading.Lock()

    def on(self, event: EventName, listener: Listener) -> Listener:
        with self._lock:
            self._listeners[EventName(event)].append(listener)
        return listener

    def off(self, event: EventName, listener: Listener) -> bool:
        with self._lock:
            listeners = self._listeners[EventName(event)]
            if listener not in listeners:
                return False
            listeners.remove(listener)
            return True

    def listener_count(self, event: EventName) -> int:
        with self._lock:
            return len(self._listeners[EventName(event)])

    def emit(self, event: EventName, payload: Any) -> int:
        """Повертає кількість listener, що впали."""
        name = EventName(event)
        with self._lock:
            listeners = list(self._listeners[name])
        failed = 0
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                failed += 1
                log.exception("Listener %s впав на події %s", getattr(listener, "__name__", listener), name.value)
                if self._metrics is not None:
                    self._metrics.listener_errors_total.labels(event=name.value).inc()
        return failed
