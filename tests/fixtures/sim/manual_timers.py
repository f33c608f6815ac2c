from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, List

TimerCallback = Callable[[], None]


@dataclass(order=True)
class _ManualEntry:
    due_ms: int
    seq: int
    callback: TimerCallback = field(compare=False)
    period_ms: int = field(default=0, compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerService:
    """Детермінований TimerService: час рухається лише через advance_ms()/advance_to().

    fire_lag_ms імітує запізнення таймера: callback бачить now_ms() = due + lag.
    """

    def __init__(self, start_ms: int, fire_lag_ms: int = 0) -> None:
        self._now_ms = int(start_ms)
        self._heap: List[_ManualEntry] = []
        self._seq = itertools.count()
        self.fire_lag_ms = int(fire_lag_ms)
        self.fired_total = 0

    def now_ms(self) -> int:
        return self._now_ms

    def call_later(self, delay_ms: int, callback: TimerCallback) -> _ManualEntry:
        entry = _ManualEntry(due_ms=self._now_ms + max(0, int(delay_ms)), seq=next(self._seq), callback=callback)
        heapq.heappush(self._heap, entry)
        return entry

    def call_every(self, period_ms: int, callback: TimerCallback) -> _ManualEntry:
        if period_ms <= 0:
            raise ValueError("period_ms має бути > 0")
        entry = _ManualEntry(
            due_ms=self._now_ms + int(period_ms),
            seq=next(self._seq),
            callback=callback,
            period_ms=int(period_ms),
        )
        heapq.heappush(self._heap, entry)
        return entry

    def pending(self) -> int:
        return sum(1 for entry in self._heap if not entry.cancelled)

    def advance_ms(self, delta_ms: int) -> None:
        self.advance_to(self._now_ms + int(delta_ms))

    def advance_to(self, target_ms: int) -> None:
        while self._heap and self._heap[0].due_ms <= target_ms:
            entry = heapq.heappop(self._heap)
            if entry.cancelled:
                continue
            self._now_ms = max(self._now_ms, entry.due_ms + self.fire_lag_ms)
            if entry.period_ms > 0:
                entry.due_ms = self._now_ms + entry.period_ms
                entry.seq = next(self._seq)
                heapq.heappush(self._heap, entry)
            self.fired_total += 1
            entry.callback()
        self._now_ms = max(self._now_ms, int(target_ms))
