from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple, Union

from core.time.timeframe import Timeframe
from observability.metrics import Metrics
from runtime.boundary_scheduler import BoundaryScheduler
from runtime.events import CloseEvent, CountdownEvent, EventEmitter, EventName
from runtime.timers import TimerService

log = logging.getLogger("boundary_scheduler")


class MultiBoundaryScheduler(EventEmitter):
    """Агрегує N незалежних BoundaryScheduler у один потік подій (без merge/dedup)."""

    def __init__(
        self,
        timeframes: Iterable[Union[Timeframe, str]],
        timers: TimerService,
        metrics: Optional[Metrics] = None,
        countdown: bool = True,
    ) -> None:
        super().__init__(metrics=metrics)
        schedulers = []
        for item in timeframes:
            timeframe = item if isinstance(item, Timeframe) else Timeframe.parse(item)
            scheduler = BoundaryScheduler(timeframe, timers, metrics=metrics, countdown=countdown)
            scheduler.on(EventName.CLOSE, self._forward_close)
            scheduler.on(EventName.COUNTDOWN, self._forward_countdown)
            schedulers.append(scheduler)
        self._schedulers: Tuple[BoundaryScheduler, ...] = tuple(schedulers)

    @property
    def schedulers(self) -> Tuple[BoundaryScheduler, ...]:
        return self._schedulers

    @property
    def timeframes(self) -> Tuple[Timeframe, ...]:
        return tuple(s.timeframe for s in self._schedulers)

    @property
    def is_running(self) -> bool:
        return any(s.is_running for s in self._schedulers)

    def start(self) -> int:
        started = sum(1 for s in self._schedulers if s.start())
        log.info("MultiBoundaryScheduler запущено: tfs=%s started=%s", [str(tf) for tf in self.timeframes], started)
        return started

    def stop(self) -> int:
        stopped = sum(1 for s in self._schedulers if s.stop())
        log.info("MultiBoundaryScheduler зупинено: stopped=%s", stopped)
        return stopped

    def _forward_close(self, event: CloseEvent) -> None:
        self.emit(EventName.CLOSE, event)

    def _forward_countdown(self, event: CountdownEvent) -> None:
        self.emit(EventName.COUNTDOWN, event)
