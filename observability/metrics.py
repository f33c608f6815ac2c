from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


@dataclass
class Metrics:
    """Контейнер метрик boundary clock."""

    errors_total: Counter
    uptime_seconds: Gauge
    last_status_ts_ms: Gauge
    schedulers_running: Gauge
    boundary_closes_total: Counter
    boundary_close_lateness_ms: Gauge
    boundary_last_close_ts_ms: Gauge
    boundary_countdown_seconds_left: Gauge
    listener_errors_total: Counter
    events_published_total: Counter
    publish_errors_total: Counter


def create_metrics(registry: Optional[CollectorRegistry] = None) -> Metrics:
    errors_total = Counter(
        "tf_clock_errors_total",
        "Кількість помилок",
        ["code", "severity"],
        registry=registry,
    )
    uptime_seconds = Gauge(
        "tf_clock_uptime_seconds",
        "Uptime процесу у секундах",
        registry=registry,
    )
    last_status_ts_ms = Gauge(
        "tf_clock_last_status_ts_ms",
        "Останній ts статусу у ms",
        registry=registry,
    )
    schedulers_running = Gauge(
        "tf_clock_schedulers_running",
        "Кількість запущених BoundaryScheduler",
        registry=registry,
    )
    boundary_closes_total = Counter(
        "tf_clock_boundary_closes_total",
        "Кількість close подій по TF",
        ["tf"],
        registry=registry,
    )
    boundary_close_lateness_ms = Gauge(
        "tf_clock_boundary_close_lateness_ms",
        "Різниця між фактичним спрацюванням та ідеальною межею у ms",
        ["tf"],
        registry=registry,
    )
    boundary_last_close_ts_ms = Gauge(
        "tf_clock_boundary_last_close_ts_ms",
        "Останній closed_boundary_time по TF у ms",
        ["tf"],
        registry=registry,
    )
    boundary_countdown_seconds_left = Gauge(
        "tf_clock_boundary_countdown_seconds_left",
        "Секунд до наступної межі по TF",
        ["tf"],
        registry=registry,
    )
    listener_errors_total = Counter(
        "tf_clock_listener_errors_total",
        "Кількість винятків у listener подій",
        ["event"],
        registry=registry,
    )
    events_published_total = Counter(
        "tf_clock_events_published_total",
        "Кількість опублікованих подій у Redis",
        ["event", "tf"],
        registry=registry,
    )
    publish_errors_total = Counter(
        "tf_clock_publish_errors_total",
        "Кількість помилок публікації подій",
        ["event", "reason"],
        registry=registry,
    )
    return Metrics(
        errors_total=errors_total,
        uptime_seconds=uptime_seconds,
        last_status_ts_ms=last_status_ts_ms,
        schedulers_running=schedulers_running,
        boundary_closes_total=boundary_closes_total,
        boundary_close_lateness_ms=boundary_close_lateness_ms,
        boundary_last_close_ts_ms=boundary_last_close_ts_ms,
        boundary_countdown_seconds_left=boundary_countdown_seconds_left,
        listener_errors_total=listener_errors_total,
        events_published_total=events_published_total,
        publish_errors_total=publish_errors_total,
    )


def start_metrics_server(port: int) -> None:
    """Запускає /metrics сервер."""
    start_http_server(port)
