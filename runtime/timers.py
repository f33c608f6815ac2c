from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from typing_extensions import Protocol

log = logging.getLogger("timers")

TimerCallback = Callable[[], None]


class TimerHandle(Protocol):
    """Хендл таймера: cancel() ідемпотентний."""

    def cancel(self) -> None: ...


class TimerService(Protocol):
    """Годинник (wall-clock ms) + one-shot/repeating таймери з cancel."""

    def now_ms(self) -> int: ...

    def call_later(self, delay_ms: int, callback: TimerCallback) -> TimerHandle: ...

    def call_every(self, period_ms: int, callback: TimerCallback) -> TimerHandle: ...


def _wall_now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(order=True)
class _TimerEntry:
    deadline_s: float
    seq: int
    callback: TimerCallback = field(compare=False)
    period_ms: int = field(default=0, compare=False)
    cancelled: bool = field(default=False, compare=False)


@dataclass
class _ThreadTimerHandle:
    service: "ThreadTimerService"
    entry: _TimerEntry

    def cancel(self) -> None:
        self.service._cancel(self.entry)


class ThreadTimerService:
    """Один worker-thread на всі таймери: callbacks виконуються послідовно у порядку дедлайнів."""

    def __init__(self, name: str = "timer_service") -> None:
        self._name = name
        self._heap: List[_TimerEntry] = []
        self._cond = threading.Condition()
        self._seq = itertools.count()
        # власний stop event у кожного worker
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def now_ms(self) -> int:
        return _wall_now_ms()

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        with self._cond:
            thread = self._thread
            if thread is not None and thread.is_alive():
                if not self._stop_event.is_set():
                    return
                raise RuntimeError(f"Timer service {self._name}: попередній worker ще виконує callback")
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(target=self._run_loop, args=(stop_event,), name=self._name, daemon=True)
            self._thread.start()
        log.info("Timer service %s запущено", self._name)

    def stop(self, timeout_s: float = 2.0) -> None:
        with self._cond:
            self._stop_event.set()
            for entry in self._heap:
                entry.cancelled = True
            self._heap.clear()
            self._cond.notify_all()
        thread = self._thread
        if thread is None:
            return
        if thread is threading.current_thread():
            log.info("Timer service %s зупиняється з власного callback", self._name)
            return
        thread.join(timeout=timeout_s)
        if thread.is_alive():
            log.warning("Timer service %s: worker не завершився за %.1fs, restart заблоковано", self._name, timeout_s)
            return
        self._thread = None
        log.info("Timer service %s зупинено", self._name)

    def call_later(self, delay_ms: int, callback: TimerCallback) -> TimerHandle:
        return self._schedule(max(0, int(delay_ms)), callback, period_ms=0)

    def call_every(self, period_ms: int, callback: TimerCallback) -> TimerHandle:
        if int(period_ms) <= 0:
            raise ValueError("period_ms має бути > 0")
        return self._schedule(int(period_ms), callback, period_ms=int(period_ms))

    def pending(self) -> int:
        with self._cond:
            return sum(1 for entry in self._heap if not entry.cancelled)

    def _schedule(self, delay_ms: int, callback: TimerCallback, period_ms: int) -> TimerHandle:
        entry = _TimerEntry(
            deadline_s=time.monotonic() + delay_ms / 1000.0,
            seq=next(self._seq),
            callback=callback,
            period_ms=period_ms,
        )
        with self._cond:
            heapq.heappush(self._heap, entry)
            self._cond.notify_all()
        return _ThreadTimerHandle(service=self, entry=entry)

    def _cancel(self, entry: _TimerEntry) -> None:
        with self._cond:
            entry.cancelled = True
            self._cond.notify_all()

    def _next_due(self, stop_event: threading.Event) -> Optional[_TimerEntry]:
        with self._cond:
            while not stop_event.is_set():
                while self._heap and self._heap[0].cancelled:
                    heapq.heappop(self._heap)
                if not self._heap:
                    self._cond.wait()
                    continue
                wait_s = self._heap[0].deadline_s - time.monotonic()
                if wait_s > 0:
                    self._cond.wait(timeout=wait_s)
                    continue
                entry = heapq.heappop(self._heap)
                if entry.period_ms > 0:
                    # інтервал рахується від фактичного спрацювання
                    entry.deadline_s = time.monotonic() + entry.period_ms / 1000.0
                    heapq.heappush(self._heap, entry)
                return entry
            return None

    def _run_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            entry = self._next_due(stop_event)
            if entry is None:
                return
            if entry.cancelled:
                continue
            try:
                entry.callback()
            except Exception:
                log.exception("Timer callback впав (seq=%s)", entry.seq)
