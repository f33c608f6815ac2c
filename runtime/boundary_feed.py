from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from config.config import Config
from core.validation.validator import ContractError, SchemaValidator
from observability.metrics import Metrics
from runtime.events import CloseEvent, CountdownEvent, EventName
from runtime.multi_boundary_scheduler import MultiBoundaryScheduler
from runtime.publisher import RedisPublisher
from runtime.status import StatusManager

log = logging.getLogger("boundary_feed")

WORKER_POLL_S = 0.2

_PendingPublish = Tuple[EventName, str, Dict[str, Any]]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class BoundaryFeed:
    """Міст між MultiBoundaryScheduler та Redis: валідація, публікація, status.

    Listeners виконуються на timer thread під lock scheduler, тож тут лише
    оновлюється status та ставиться payload у bounded чергу. Мережевий I/O
    робить окремий worker (start_worker/stop_worker).
    """

    config: Config
    scheduler: MultiBoundaryScheduler
    validator: SchemaValidator
    status: StatusManager
    publisher: Optional[RedisPublisher] = None
    metrics: Optional[Metrics] = None
    clock: Callable[[], int] = _now_ms
    _queue: "queue.Queue[_PendingPublish]" = field(init=False, repr=False)
    _worker_stop: threading.Event = field(init=False, repr=False)
    _worker: Optional[threading.Thread] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._queue = queue.Queue(maxsize=int(self.config.publish_queue_max))
        self._worker_stop = threading.Event()

    def attach(self) -> None:
        self.scheduler.on(EventName.CLOSE, self.on_close)
        self.scheduler.on(EventName.COUNTDOWN, self.on_countdown)

    def detach(self) -> None:
        self.scheduler.off(EventName.CLOSE, self.on_close)
        self.scheduler.off(EventName.COUNTDOWN, self.on_countdown)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start_worker(self) -> None:
        worker = self._worker
        if worker is not None and worker.is_alive():
            if not self._worker_stop.is_set():
                return
            raise RuntimeError("BoundaryFeed: попередній publish worker ще не завершився")
        stop_event = threading.Event()
        self._worker_stop = stop_event
        self._worker = threading.Thread(
            target=self._run_worker,
            args=(stop_event,),
            name="boundary_feed_publisher",
            daemon=True,
        )
        self._worker.start()
        log.info("BoundaryFeed publish worker запущено (queue_max=%s)", self.config.publish_queue_max)

    def stop_worker(self, timeout_s: float = 5.0) -> None:
        self._worker_stop.set()
        worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout_s)
            if worker.is_alive():
                log.warning(
                    "BoundaryFeed publish worker не завершився за %.1fs, у черзі %s подій",
                    timeout_s,
                    self.pending,
                )
                return
            self._worker = None
        flushed = self.drain(stop_on_error=True)
        if flushed:
            log.info("BoundaryFeed: при зупинці оброблено %s подій з черги", flushed)
        dropped = self.pending
        if dropped:
            log.warning("BoundaryFeed: при зупинці відкинуто %s подій", dropped)

    def drain(self, stop_on_error: bool = False) -> int:
        """Публікує все, що зараз у черзі, у поточному потоці."""
        count = 0
        while True:
            try:
                event, tf, payload = self._queue.get_nowait()
            except queue.Empty:
                return count
            count += 1
            if not self._publish(event, tf, payload) and stop_on_error:
                return count

    def sync_status(self) -> None:
        for child in self.scheduler.schedulers:
            self.status.record_scheduler_state(str(child.timeframe), child.is_running, child.next_close_ms)
        self.status.set_pipeline_state(self.scheduler.is_running)

    def on_close(self, event: CloseEvent) -> None:
        tf = str(event.timeframe)
        self.status.record_close(tf, event.closed_boundary_time)
        if self.publisher is None:
            return
        payload = {
            "tf": tf,
            "closed_boundary_time": event.closed_boundary_time,
            "open_time": event.timeframe.floor(event.closed_boundary_time),
            "event_ts": self.clock(),
        }
        self._enqueue(EventName.CLOSE, tf, payload)

    def on_countdown(self, event: CountdownEvent) -> None:
        tf = str(event.timeframe)
        self.status.record_countdown(tf, event.seconds_left)
        if self.publisher is None or not self.config.countdown_publish_enabled:
            return
        now_ms = self.clock()
        payload = {
            "tf": tf,
            "seconds_left": event.seconds_left,
            "close_time": event.timeframe.next(event.timeframe.floor(now_ms)),
            "event_ts": now_ms,
        }
        self._enqueue(EventName.COUNTDOWN, tf, payload)

    def _enqueue(self, event: EventName, tf: str, payload: Dict[str, Any]) -> None:
        try:
            self._queue.put_nowait((event, tf, payload))
        except queue.Full:
            self._record_publish_error(event, tf, "queue_full", f"черга публікації заповнена ({self._queue.maxsize})")

    def _run_worker(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                event, tf, payload = self._queue.get(timeout=WORKER_POLL_S)
            except queue.Empty:
                continue
            try:
                self._publish(event, tf, payload)
            except Exception:
                log.exception("BoundaryFeed publish worker: неочікувана помилка (event=%s tf=%s)", event.value, tf)

    def _publish(self, event: EventName, tf: str, payload: Dict[str, Any]) -> bool:
        publisher = self.publisher
        if publisher is None:
            return False
        try:
            if event is EventName.CLOSE:
                publisher.publish_close(payload, self.validator)
            else:
                publisher.publish_countdown(payload, self.validator)
        except ContractError as exc:
            self._record_publish_error(event, tf, "contract", str(exc))
            return False
        except redis.exceptions.RedisError as exc:
            self._record_publish_error(event, tf, "redis", str(exc))
            return False
        if self.metrics is not None:
            self.metrics.events_published_total.labels(event=event.value, tf=tf).inc()
        self.status.clear_degraded("publish_error")
        if event is EventName.CLOSE:
            log.info("CLOSE tf=%s closed_boundary_time=%s опубліковано", tf, payload["closed_boundary_time"])
        return True

    def _record_publish_error(self, event: EventName, tf: str, reason: str, message: str) -> None:
        log.warning("Публікація %s tf=%s не вдалася (%s): %s", event.value, tf, reason, message)
        if self.metrics is not None:
            self.metrics.publish_errors_total.labels(event=event.value, reason=reason).inc()
        self.status.append_error_throttled(
            code=f"{event.value}_publish_error",
            severity="error",
            message=message,
            context={"tf": tf, "reason": reason},
            throttle_key=f"{event.value}_publish_error:{tf}:{reason}",
            throttle_ms=int(self.config.publish_error_throttle_ms),
        )
        self.status.mark_degraded("publish_error")
