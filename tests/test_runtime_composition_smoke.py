from __future__ import annotations

import threading
from typing import Any, Dict, List, Tuple

import redis

from app.composition import build_runtime, stop_runtime
from config.config import Config
from runtime.events import EventName


def test_build_and_stop_runtime_without_redis() -> None:
    config = Config(timeframes=["1s", "1m"], publish_enabled=False, metrics_enabled=False)
    handles = build_runtime(config)
    closed = threading.Event()
    handles.scheduler.on(EventName.CLOSE, lambda _e: closed.set())
    try:
        assert handles.timers.is_running
        assert handles.scheduler.is_running
        assert handles.feed.publisher is None
        assert handles.status.snapshot()["pipeline"] == "running"
        assert closed.wait(timeout=3.0)
    finally:
        stop_runtime(handles)

    assert not handles.timers.is_running
    assert not handles.scheduler.is_running
    assert handles.status.snapshot()["pipeline"] == "stopped"
    assert handles.status.snapshot()["timeframes"]["1s"]["closes_total"] >= 1


class _DummyRedis:
    def __init__(self) -> None:
        self.published: List[Tuple[str, str]] = []

    def ping(self) -> bool:
        raise redis.exceptions.ConnectionError("connect timeout")

    def publish(self, channel: str, payload: str) -> None:
        self.published.append((channel, payload))

    def set(self, key: str, value: str) -> None:
        return None


def test_redis_client_gets_socket_timeouts_and_publish_worker(monkeypatch) -> None:
    calls: List[Dict[str, Any]] = []
    client = _DummyRedis()

    def _from_url(url: str, **kwargs: Any) -> _DummyRedis:
        calls.append({"url": url, **kwargs})
        return client

    monkeypatch.setattr(redis.Redis, "from_url", _from_url)
    config = Config(timeframes=["1s"], metrics_enabled=False, redis_socket_timeout_s=0.5)
    handles = build_runtime(config)
    closed = threading.Event()
    handles.scheduler.on(EventName.CLOSE, lambda _e: closed.set())
    try:
        assert calls[0]["socket_timeout"] == 0.5
        assert calls[0]["socket_connect_timeout"] == 0.5
        assert "redis_unavailable" in handles.status.snapshot()["degraded"]
        assert handles.feed.publisher is not None
        assert closed.wait(timeout=3.0)
    finally:
        stop_runtime(handles)

    assert handles.feed.pending == 0
    assert any(ch == "tf_clock_local:boundary_close" for ch, _ in client.published)
