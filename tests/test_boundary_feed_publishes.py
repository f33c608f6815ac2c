from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

import redis
from prometheus_client import CollectorRegistry

from config.config import Config
from core.validation.validator import SchemaValidator
from observability.metrics import create_metrics
from runtime.boundary_feed import BoundaryFeed
from runtime.multi_boundary_scheduler import MultiBoundaryScheduler
from runtime.publisher import RedisPublisher
from runtime.status import StatusManager
from runtime.timers import ThreadTimerService, TimerService
from tests.fixtures.sim.manual_timers import ManualTimerService
from tests.time_helpers import utc_ms

START_MS = utc_ms(2025, 3, 15, 10, 0)


class _DummyRedis:
    def __init__(self) -> None:
        self.published: List[Tuple[str, str]] = []

    def publish(self, channel: str, payload: str) -> None:
        self.published.append((channel, payload))

    def set(self, key: str, value: str) -> None:
        return None


class _BrokenRedis(_DummyRedis):
    def publish(self, channel: str, payload: str) -> None:
        raise redis.exceptions.ConnectionError("redis down")


def _build(
    config: Config,
    redis_client: _DummyRedis,
    registry: CollectorRegistry,
    timers: Optional[TimerService] = None,
    countdown: bool = True,
):
    metrics = create_metrics(registry)
    validator = SchemaValidator(root_dir=Path(__file__).resolve().parents[1])
    publisher = RedisPublisher(redis_client, config)
    status = StatusManager(config=config, validator=validator, publisher=publisher, metrics=metrics)
    status.build_initial_snapshot()
    if timers is None:
        timers = ManualTimerService(START_MS)
    scheduler = MultiBoundaryScheduler(config.parsed_timeframes(), timers, metrics=metrics, countdown=countdown)
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
    return feed, timers


def test_close_events_are_published_and_recorded() -> None:
    config = Config(timeframes=["1m", "5m"])
    redis_client = _DummyRedis()
    registry = CollectorRegistry()
    feed, timers = _build(config, redis_client, registry)

    feed.scheduler.start()
    timers.advance_ms(5 * 60_000)
    assert feed.pending == 6
    assert redis_client.published == []
    assert feed.drain() == 6
    feed.sync_status()

    closes = [json.loads(p) for ch, p in redis_client.published if ch == "tf_clock_local:boundary_close"]
    assert sorted(c["tf"] for c in closes) == ["1m"] * 5 + ["5m"]
    five = [c for c in closes if c["tf"] == "5m"][0]
    assert five["closed_boundary_time"] == utc_ms(2025, 3, 15, 10, 5) - 1
    assert five["open_time"] == START_MS
    assert not any(ch == "tf_clock_local:boundary_countdown" for ch, _ in redis_client.published)

    snapshot = feed.status.snapshot()
    assert snapshot["timeframes"]["1m"]["closes_total"] == 5
    assert snapshot["timeframes"]["5m"]["last_close_ms"] == utc_ms(2025, 3, 15, 10, 5) - 1
    assert snapshot["timeframes"]["5m"]["next_close_ms"] == utc_ms(2025, 3, 15, 10, 10)
    assert snapshot["pipeline"] == "running"
    assert registry.get_sample_value("tf_clock_events_published_total", {"event": "close", "tf": "1m"}) == 5.0


def test_countdown_publishing_is_opt_in() -> None:
    config = Config(timeframes=["1m"], countdown_publish_enabled=True)
    redis_client = _DummyRedis()
    feed, timers = _build(config, redis_client, CollectorRegistry())

    feed.scheduler.start()
    timers.advance_ms(2_000)
    feed.drain()

    countdowns = [json.loads(p) for ch, p in redis_client.published if ch == "tf_clock_local:boundary_countdown"]
    assert [c["seconds_left"] for c in countdowns] == [59, 58]
    assert feed.status.snapshot()["timeframes"]["1m"]["seconds_left"] == 58


def test_publish_failure_degrades_status_but_keeps_scheduling() -> None:
    config = Config(timeframes=["1m"])
    registry = CollectorRegistry()
    feed, timers = _build(config, _BrokenRedis(), registry)

    feed.scheduler.start()
    timers.advance_ms(3 * 60_000)
    feed.drain()

    snapshot = feed.status.snapshot()
    assert snapshot["timeframes"]["1m"]["closes_total"] == 3
    assert "publish_error" in snapshot["degraded"]
    codes = [e["code"] for e in snapshot["errors"]]
    assert codes == ["close_publish_error"]
    assert registry.get_sample_value("tf_clock_publish_errors_total", {"event": "close", "reason": "redis"}) == 3.0
    assert registry.get_sample_value("tf_clock_boundary_closes_total", {"tf": "1m"}) == 3.0


def test_feed_without_publisher_only_updates_status() -> None:
    config = Config(timeframes=["1m"], publish_enabled=False)
    registry = CollectorRegistry()
    feed, timers = _build(config, _DummyRedis(), registry)
    feed.publisher = None

    feed.scheduler.start()
    timers.advance_ms(60_000)
    feed.detach()
    timers.advance_ms(60_000)
    feed.scheduler.stop()
    feed.sync_status()

    snapshot = feed.status.snapshot()
    assert snapshot["timeframes"]["1m"]["closes_total"] == 1
    assert snapshot["timeframes"]["1m"]["running"] is False
    assert snapshot["pipeline"] == "stopped"


class _BlockingRedis(_DummyRedis):
    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def publish(self, channel: str, payload: str) -> None:
        self.entered.set()
        self.release.wait(timeout=5.0)
        super().publish(channel, payload)


def test_hung_redis_does_not_block_scheduler_or_stop() -> None:
    config = Config(timeframes=["1m", "2m"])
    redis_client = _BlockingRedis()
    feed, timers = _build(config, redis_client, CollectorRegistry())
    feed.start_worker()
    try:
        feed.scheduler.start()
        timers.advance_ms(60_000)
        assert redis_client.entered.wait(timeout=2.0)

        timers.advance_ms(60_000)
        snapshot = feed.status.snapshot()
        assert snapshot["timeframes"]["1m"]["closes_total"] == 2
        assert snapshot["timeframes"]["2m"]["closes_total"] == 1

        stopper = threading.Thread(target=feed.scheduler.stop)
        stopper.start()
        stopper.join(timeout=1.0)
        assert not stopper.is_alive()
        assert not feed.scheduler.is_running
    finally:
        redis_client.release.set()
        feed.stop_worker(timeout_s=2.0)

    closes = [json.loads(p) for ch, p in redis_client.published if ch == "tf_clock_local:boundary_close"]
    assert sorted(c["tf"] for c in closes) == ["1m", "1m", "2m"]
    assert feed.pending == 0


def test_hung_redis_on_real_timers_keeps_closes_flowing() -> None:
    config = Config(timeframes=["1s", "1s"])
    redis_client = _BlockingRedis()
    timers = ThreadTimerService(name="feed_hung_redis_timers")
    feed, _ = _build(config, redis_client, CollectorRegistry(), timers=timers, countdown=False)
    feed.start_worker()
    timers.start()
    feed.scheduler.start()
    try:
        assert redis_client.entered.wait(timeout=3.0)
        deadline = time.monotonic() + 3.0
        while feed.status.snapshot()["timeframes"]["1s"]["closes_total"] < 3 and time.monotonic() < deadline:
            time.sleep(0.02)
        assert feed.status.snapshot()["timeframes"]["1s"]["closes_total"] >= 3

        stopper = threading.Thread(target=feed.scheduler.stop)
        stopper.start()
        stopper.join(timeout=1.0)
        assert not stopper.is_alive()
    finally:
        redis_client.release.set()
        feed.scheduler.stop()
        timers.stop()
        feed.stop_worker(timeout_s=2.0)


def test_full_publish_queue_drops_and_records_error() -> None:
    config = Config(timeframes=["1m"], publish_queue_max=1)
    registry = CollectorRegistry()
    redis_client = _DummyRedis()
    feed, timers = _build(config, redis_client, registry)

    feed.scheduler.start()
    timers.advance_ms(2 * 60_000)

    assert feed.pending == 1
    assert registry.get_sample_value("tf_clock_publish_errors_total", {"event": "close", "reason": "queue_full"}) == 1.0
    assert "publish_error" in feed.status.snapshot()["degraded"]

    assert feed.drain() == 1
    assert len(redis_client.published) == 1
    assert "publish_error" not in feed.status.snapshot()["degraded"]


def test_stop_worker_flushes_queue_and_stops_on_first_redis_error() -> None:
    config = Config(timeframes=["1m"])
    registry = CollectorRegistry()
    feed, timers = _build(config, _BrokenRedis(), registry)

    feed.scheduler.start()
    timers.advance_ms(3 * 60_000)
    feed.stop_worker(timeout_s=1.0)

    assert registry.get_sample_value("tf_clock_publish_errors_total", {"event": "close", "reason": "redis"}) == 1.0
    assert feed.pending == 2
