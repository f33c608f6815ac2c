from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from typing_extensions import Protocol

from config.config import Config
from core.validation.validator import SchemaValidator
from observability.metrics import Metrics

STATUS_ERRORS_MAX = 20
STATUS_DEGRADED_MAX = 20


class PublisherProtocol(Protocol):
    """Мінімальний контракт публікатора для статусу."""

    def set_snapshot(self, key: str, json_str: str) -> None: ...

    def publish(self, channel: str, json_str: str) -> None: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _trim_list(values: Any, max_len: int) -> List[Any]:
    if not isinstance(values, list):
        return []
    if max_len <= 0:
        return []
    if len(values) <= max_len:
        return list(values)
    return list(values[-max_len:])


def _default_tf_block(tf: str) -> Dict[str, Any]:
    return {
        "tf": tf,
        "running": False,
        "next_close_ms": None,
        "last_close_ms": None,
        "seconds_left": None,
        "closes_total": 0,
    }


def build_status_pubsub_payload(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Будує payload для pubsub/snapshot з обрізаними errors/degraded."""
    timeframes = snapshot.get("timeframes", {})
    return {
        "ts": int(snapshot.get("ts", 0)),
        "version": str(snapshot.get("version", "")),
        "schema_version": int(snapshot.get("schema_version", 0)),
        "pipeline": str(snapshot.get("pipeline", "stopped")),
        "process": dict(snapshot.get("process", {})),
        "timeframes": [dict(block) for block in timeframes.values()],
        "errors": _trim_list(snapshot.get("errors", []), STATUS_ERRORS_MAX),
        "degraded": _trim_list(snapshot.get("degraded", []), STATUS_DEGRADED_MAX),
    }


@dataclass
class StatusManager:
    """Менеджер status snapshot з in-memory станом."""

    config: Config
    validator: SchemaValidator
    publisher: Optional[PublisherProtocol]
    metrics: Optional[Metrics] = None

    def __post_init__(self) -> None:
        self._started_ms = _now_ms()
        self._snapshot: Dict[str, Any] = {}
        self._last_publish_ms = 0
        self._lock = threading.RLock()
        self._error_throttle_last_ts_by_key: Dict[str, int] = {}

    def build_initial_snapshot(self) -> Dict[str, Any]:
        ts_ms = _now_ms()
        snapshot = {
            "ts": ts_ms,
            "version": self.config.version,
            "schema_version": self.config.schema_version,
            "build_version": self.config.build_version,
            "pipeline": "stopped",
            "process": {
                "pid": os.getpid(),
                "start_ts_ms": self._started_ms,
                "uptime_s": 0,
                "state": "running",
            },
            "timeframes": {tf: _default_tf_block(tf) for tf in self.config.timeframes},
            "errors": [],
            "degraded": [],
        }
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._snapshot)

    def _ensure_tf(self, tf: str) -> Dict[str, Any]:
        timeframes = self._snapshot.setdefault("timeframes", {})
        block = timeframes.get(tf)
        if not isinstance(block, dict):
            block = _default_tf_block(tf)
            timeframes[tf] = block
        return block

    def _update_process_fields(self, ts_ms: int) -> None:
        uptime_s = max(0, (ts_ms - self._started_ms) // 1000)
        self._snapshot["ts"] = ts_ms
        self._snapshot["process"]["uptime_s"] = uptime_s
        if self.metrics is not None:
            self.metrics.uptime_seconds.set(uptime_s)

    def set_pipeline_state(self, running: bool) -> None:
        with self._lock:
            self._snapshot["pipeline"] = "running" if running else "stopped"

    def record_scheduler_state(self, tf: str, running: bool, next_close_ms: Optional[int]) -> None:
        with self._lock:
            block = self._ensure_tf(tf)
            block["running"] = bool(running)
            block["next_close_ms"] = next_close_ms

    def record_close(self, tf: str, closed_boundary_time: int) -> None:
        with self._lock:
            block = self._ensure_tf(tf)
            block["last_close_ms"] = int(closed_boundary_time)
            block["closes_total"] = int(block.get("closes_total", 0)) + 1

    def record_countdown(self, tf: str, seconds_left: int) -> None:
        with self._lock:
            self._ensure_tf(tf)["seconds_left"] = int(seconds_left)

    def append_error(
        self,
        code: str,
        severity: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        err = {
            "code": code,
            "severity": severity,
            "message": message,
            "ts": _now_ms(),
        }
        if context:
            err["context"] = context
        with self._lock:
            errors = self._snapshot.setdefault("errors", [])
            errors.append(err)
            self._snapshot["errors"] = _trim_list(errors, STATUS_ERRORS_MAX)
        if self.metrics is not None:
            self.metrics.errors_total.labels(code=code, severity=severity).inc()

    def append_error_throttled(
        self,
        code: str,
        severity: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        throttle_key: Optional[str] = None,
        throttle_ms: int = 60_000,
        now_ms: Optional[int] = None,
    ) -> bool:
        key = str(throttle_key or code)
        now = int(now_ms or _now_ms())
        with self._lock:
            last_ts = self._error_throttle_last_ts_by_key.get(key)
            if last_ts is not None and now - last_ts < int(throttle_ms):
                return False
            self._error_throttle_last_ts_by_key[key] = now
        self.append_error(code=code, severity=severity, message=message, context=context)
        return True

    def mark_degraded(self, tag: str) -> None:
        with self._lock:
            degraded = self._snapshot.get("degraded")
            if not isinstance(degraded, list):
                degraded = []
            if tag not in degraded:
                degraded.append(tag)
            self._snapshot["degraded"] = degraded

    def clear_degraded(self, tag: str) -> None:
        with self._lock:
            degraded = self._snapshot.get("degraded")
            if not isinstance(degraded, list):
                return
            if tag in degraded:
                degraded.remove(tag)
            self._snapshot["degraded"] = degraded

    def publish_snapshot(self) -> None:
        ts_ms = _now_ms()
        with self._lock:
            self._update_process_fields(ts_ms)
            payload_obj = build_status_pubsub_payload(self._snapshot)
        self.validator.validate_status_v1(payload_obj)
        if self.publisher is not None:
            payload = json.dumps(payload_obj, ensure_ascii=False, separators=(",", ":"))
            self.publisher.set_snapshot(self.config.key_status_snapshot(), payload)
            self.publisher.publish(self.config.ch_status(), payload)
        self._last_publish_ms = ts_ms
        if self.metrics is not None:
            self.metrics.last_status_ts_ms.set(ts_ms)

    def publish_if_due(self, interval_ms: int) -> bool:
        now_ms = _now_ms()
        if now_ms - self._last_publish_ms >= interval_ms:
            self.publish_snapshot()
            return True
        return False
