from __future__ import annotations

import argparse
import logging
import time
from dataclasses import replace
from pathlib import Path

import redis

from app.composition import build_runtime, stop_runtime
from config.config import load_config, validate_config
from core.env_loader import load_env


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Boundary clock: close/countdown події по timeframe")
    parser.add_argument("--tf", action="append", default=None, help="Timeframe (можна повторювати): 1m, 4h, 1M ...")
    parser.add_argument("--no-publish", action="store_true", help="Не публікувати у Redis, лише логи")
    parser.add_argument("--log-level", default="INFO", help="Рівень логування (DEBUG/INFO/WARNING)")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    _setup_logging(args.log_level)
    log = logging.getLogger("tf_clock")

    root_dir = Path(__file__).resolve().parents[1]
    load_env(root_dir)

    try:
        config = load_config()
        if args.tf:
            config = replace(config, timeframes=list(args.tf))
        if args.no_publish:
            config = replace(config, publish_enabled=False, redis_required=False)
        validate_config(config)
    except ValueError as exc:
        raise SystemExit(f"Некоректна конфігурація: {exc}") from exc

    log.info("Старт boundary clock з NS=%s (profile=%s)", config.ns, config.profile)
    log.info("Timeframes: %s countdown=%s", config.timeframes, config.countdown_enabled)
    log.debug(
        "Redis channels: close=%s countdown=%s status=%s publish=%s",
        config.ch_close(),
        config.ch_countdown(),
        config.ch_status(),
        config.publish_enabled,
    )
    handles = build_runtime(config)

    try:
        while True:
            handles.feed.sync_status()
            try:
                handles.status.publish_if_due(interval_ms=config.status_publish_period_ms)
            except redis.exceptions.RedisError as exc:
                if handles.status.append_error_throttled(
                    code="status_publish_error",
                    severity="error",
                    message=str(exc),
                    throttle_ms=config.publish_error_throttle_ms,
                ):
                    log.warning("Не вдалося опублікувати status: %s", exc)
            time.sleep(0.1)
    except KeyboardInterrupt:
        log.info("Отримано KeyboardInterrupt, зупинка.")
    finally:
        stop_runtime(handles)


if __name__ == "__main__":
    main()
