from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import redis

from config.config import Config
from core.time.timestamps import to_utc_iso
from core.validation.validator import SchemaValidator
from observability.metrics import Metrics, create_metrics, start_metrics_server
from runtime.boundary_feed import BoundaryFeed
from runtime.multi_boundary_scheduler import MultiBoundaryScheduler
from runtime.publisher import RedisPublisher
from runtime.status import StatusManager
from runtime.timers import ThreadTimerService

log = logging.getLogger("tf_clock")


@dataclass
class RuntimeHandles:
    config: Config
    status: StatusManager
    timers: ThreadTimerService
    scheduler: MultiBoundaryScheduler
    feed: BoundaryFeed
    metrics: Optional[Metrics]


def _connect_redis(config: Config, status: StatusManager) -> Optional[RedisPublisher]:
    timeout_s = float(config.redis_socket_timeout_s)
    redis_client = redis.Redis.from_url(
        config.redis_dsn(),
        decode_responses=True,
        socket_timeout=timeout_s,
        socket_connect_timeout=timeout_s,
    )
    try:
        redis_client.ping()
    except redis.exceptions.RedisError as exc:
        if config.redis_required:
            raise SystemExit(f"Redis недоступний ({config.redis_dsn()}): {exc}") from exc
        log.warning("Redis недоступний, публікація буде з помилками: %s", exc)
        status.append_error(
            code="redis_unavailable",
            severity="warning",
            message=str(exc),
            context={"dsn": f"{config.redis_host}:{config.redis_port}"},
        )
        status.mark_degraded("redis_unavailable")
    return RedisPublisher(redis_client, config)


def build_runtime(config: Config) -> RuntimeHandles:
    root_dir = Path(__file__).resolve().parents[1]
    validator = SchemaValidator(root_dir=root_dir)

    metrics = None
    if config.metrics_enabled:
        metrics = create_metrics()
        start_metrics_server(config.metrics_port)
        log.info("/metrics піднято на порту %s", config.metrics_port)

    status = StatusManager(config=config, validator=validator, publisher=None, metrics=metrics)
    status.build_initial_snapshot()

    publisher: Optional[RedisPublisher] = None
    if config.publish_enabled:
        publisher = _connect_redis(config, status)
        status.publisher = publisher
    else:
        log.info("Публікацію вимкнено: події лише у логах та status")

    timers = ThreadTimerService()
    scheduler = MultiBoundaryScheduler(
        config.parsed_timeframes(),
        timers,
        metrics=metrics,
        countdown=config.countdown_enabled,
    )
    feed = BoundaryFeed(
        config=config,
        scheduler=scheduler,
        validator=validator,
        status=status,
        publisher=publisher,
        metrics=metrics,
        clock=timers.now_ms,
    )
    feed.attach()
    if publisher is not None:
        feed.start_worker()

    timers.start()
    scheduler.start()
    feed.sync_status()
    for child in scheduler.schedulers:
        next_close = child.next_close_ms
        log.info(
            "TF %s: наступна межа %s",
            child.timeframe,
            to_utc_iso(next_close) if next_close is not None else "-",
        )
    return RuntimeHandles(
        config=config,
        status=status,
        timers=timers,
        scheduler=scheduler,
        feed=feed,
        metrics=metrics,
    )


def stop_runtime(handles: RuntimeHandles) -> None:
    handles.scheduler.stop()
    handles.feed.detach()
    handles.timers.stop()
    handles.feed.stop_worker()
    handles.feed.sync_status()
