from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

from core.time.timeframe import Timeframe
from core.time.timestamps import to_utc_iso
from observability.metrics import Metrics
from runtime.events import CloseEvent, CountdownEvent, EventEmitter, EventName
from runtime.timers import TimerHandle, TimerService

log = logging.getLogger("boundary_scheduler")

COUNTDOWN_PERIOD_MS = 1_000
CLOSE_FIRE_EPSILON_MS = 1


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class BoundaryScheduler(EventEmitter):
    """Події close (на кожній межі timeframe) та countdown (щосекунди) для одного TF.

    Наступний дедлайн завжди рахується від попереднього ідеального дедлайну
    (timeframe.next), а не від фактичного часу спрацювання, тож запізнення
    таймера не накопичується. Callbacks несуть generation, що перевіряється
    під lock перед емісією: після повернення stop() подій більше немає.
    """

    def __init__(
        self,
        timeframe: Timeframe,
        timers: TimerService,
        metrics: Optional[Metrics] = None,
        countdown: bool = True,
    ) -> None:
        super().__init__(metrics=metrics)
        self.timeframe = timeframe
        self._timers = timers
        self._metrics = metrics
        self._countdown_enabled = countdown
        self._tf_label = str(timeframe)
        self._state_lock = threading.RLock()
        self._state = SchedulerState.STOPPED
        self._generation = 0
        self._close_handle: Optional[TimerHandle] = None
        self._countdown_handle: Optional[TimerHandle] = None
        self._next_close_ms: Optional[int] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def next_close_ms(self) -> Optional[int]:
        """Ідеальний дедлайн наступного close (None, якщо зупинений)."""
        return self._next_close_ms

    def start(self) -> bool:
        with self._state_lock:
            if self._state is SchedulerState.RUNNING:
                log.debug("BoundaryScheduler %s вже запущений, start() ігнорується", self._tf_label)
                return False
            self._state = SchedulerState.RUNNING
            self._generation += 1
            generation = self._generation
            now_ms = self._timers.now_ms()
            next_close = self.timeframe.next(self.timeframe.floor(now_ms))
            self._schedule_close(next_close, now_ms, generation)
            if self._countdown_enabled:
                self._countdown_handle = self._timers.call_every(
                    COUNTDOWN_PERIOD_MS, lambda: self._on_countdown(generation)
                )
            if self._metrics is not None:
                self._metrics.schedulers_running.inc()
        log.info("BoundaryScheduler %s запущено, next_close=%s", self._tf_label, to_utc_iso(next_close))
        return True

    def stop(self) -> bool:
        with self._state_lock:
            if self._state is SchedulerState.STOPPED:
                return False
            self._state = SchedulerState.STOPPED
            self._generation += 1
            if self._close_handle is not None:
                self._close_handle.cancel()
                self._close_handle = None
            if self._countdown_handle is not None:
                self._countdown_handle.cancel()
                self._countdown_handle = None
            self._next_close_ms = None
            if self._metrics is not None:
                self._metrics.schedulers_running.dec()
        log.info("BoundaryScheduler %s зупинено", self._tf_label)
        return True

    def _is_current(self, generation: int) -> bool:
        return self._state is SchedulerState.RUNNING and generation == self._generation

    def _schedule_close(self, close_ms: int, now_ms: int, generation: int) -> None:
        delay_ms = max(0, close_ms - now_ms - CLOSE_FIRE_EPSILON_MS)
        self._next_close_ms = close_ms
        self._close_handle = self._timers.call_later(delay_ms, lambda: self._on_close(close_ms, generation))

    def _on_close(self, close_ms: int, generation: int) -> None:
        with self._state_lock:
            if not self._is_current(generation):
                return
            fired_ms = self._timers.now_ms()
            if self._metrics is not None:
                self._metrics.boundary_closes_total.labels(tf=self._tf_label).inc()
                self._metrics.boundary_close_lateness_ms.labels(tf=self._tf_label).set(fired_ms - close_ms)
                self._metrics.boundary_last_close_ts_ms.labels(tf=self._tf_label).set(close_ms - 1)
            log.debug(
                "CLOSE tf=%s closed_boundary_time=%s lateness_ms=%s",
                self._tf_label,
                close_ms - 1,
                fired_ms - close_ms,
            )
            try:
                self.emit(EventName.CLOSE, CloseEvent(timeframe=self.timeframe, closed_boundary_time=close_ms - 1))
            finally:
                # listener міг викликати stop()/start()
                if self._is_current(generation):
                    following = self.timeframe.next(close_ms)
                    self._schedule_close(following, self._timers.now_ms(), generation)

    def _on_countdown(self, generation: int) -> None:
        with self._state_lock:
            if not self._is_current(generation):
                return
            now_ms = self._timers.now_ms()
            target_ms = self.timeframe.next(self.timeframe.floor(now_ms))
            seconds_left = max(0, (target_ms - now_ms) // 1000)
            if self._metrics is not None:
                self._metrics.boundary_countdown_seconds_left.labels(tf=self._tf_label).set(seconds_left)
            self.emit(EventName.COUNTDOWN, CountdownEvent(timeframe=self.timeframe, seconds_left=seconds_left))
