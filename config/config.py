from __future__ import annotations

import importlib
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, cast

from core.time.errors import InvalidFormatError
from core.time.timeframe import Timeframe


@dataclass(frozen=True)
class Config:
    """SSOT конфіг boundary clock."""

    ns: str = "tf_clock_local"
    profile: str = "local"

    version: str = "0.1.0"
    schema_version: int = 1
    build_version: str = "dev"

    redis_url: str = ""
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_password: str = ""
    redis_required: bool = False
    redis_socket_timeout_s: float = 2.0  # connect/read timeout клієнта Redis

    metrics_enabled: bool = True
    metrics_port: int = 9210

    timeframes: List[str] = field(default_factory=lambda: ["1m", "5m", "15m", "1h", "4h", "1d"])
    countdown_enabled: bool = True  # щосекундний countdown у BoundaryScheduler
    publish_enabled: bool = True  # публікація close подій у Redis
    countdown_publish_enabled: bool = False  # countdown щосекунди по кожному TF, за замовчуванням лише у status

    close_channel: str = ""
    countdown_channel: str = ""
    status_channel: str = ""

    status_publish_period_ms: int = 5000
    publish_error_throttle_ms: int = 60_000  # throttle помилок публікації у status
    publish_queue_max: int = 1000  # черга BoundaryFeed між timer thread та Redis

    def redis_dsn(self) -> str:
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    def ch_close(self) -> str:
        if self.close_channel:
            return self.close_channel
        return f"{self.ns}:boundary_close"

    def ch_countdown(self) -> str:
        if self.countdown_channel:
            return self.countdown_channel
        return f"{self.ns}:boundary_countdown"

    def ch_status(self) -> str:
        if self.status_channel:
            return self.status_channel
        return f"{self.ns}:status"

    def key_status_snapshot(self) -> str:
        return f"{self.ns}:status:snapshot"

    def parsed_timeframes(self) -> List[Timeframe]:
        return [Timeframe.parse(tf) for tf in self.timeframes]


def _parse_bool(value: str) -> Optional[bool]:
    value = value.strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    return None


def _env_overrides_from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    prefix = env.get("TFCLOCK_CHANNEL_PREFIX", "").strip()
    if prefix:
        overrides["ns"] = prefix
    timeframes = env.get("TFCLOCK_TIMEFRAMES", "").strip()
    if timeframes:
        overrides["timeframes"] = [tf.strip() for tf in timeframes.split(",") if tf.strip()]
    for env_key, cfg_key in [
        ("TFCLOCK_COUNTDOWN_ENABLED", "countdown_enabled"),
        ("TFCLOCK_COUNTDOWN_PUBLISH_ENABLED", "countdown_publish_enabled"),
        ("TFCLOCK_PUBLISH_ENABLED", "publish_enabled"),
        ("TFCLOCK_REDIS_REQUIRED", "redis_required"),
        ("TFCLOCK_METRICS_ENABLED", "metrics_enabled"),
    ]:
        flag = _parse_bool(env.get(env_key, ""))
        if flag is not None:
            overrides[cfg_key] = flag
    redis_host = env.get("TFCLOCK_REDIS_HOST", "").strip()
    if redis_host:
        overrides["redis_host"] = redis_host
    redis_port = env.get("TFCLOCK_REDIS_PORT", "").strip()
    if redis_port:
        overrides["redis_port"] = int(redis_port)
    redis_timeout = env.get("TFCLOCK_REDIS_SOCKET_TIMEOUT_S", "").strip()
    if redis_timeout:
        overrides["redis_socket_timeout_s"] = float(redis_timeout)
    redis_password = env.get("TFCLOCK_REDIS_PASSWORD", "").strip()
    if redis_password:
        overrides["redis_password"] = redis_password
    metrics_port = env.get("TFCLOCK_METRICS_PORT", "").strip()
    if metrics_port:
        overrides["metrics_port"] = int(metrics_port)
    status_period = env.get("TFCLOCK_STATUS_PUBLISH_PERIOD_MS", "").strip()
    if status_period:
        overrides["status_publish_period_ms"] = int(status_period)
    return overrides


def _load_profile_overrides(profile: str) -> Dict[str, Any]:
    if not profile:
        return {}
    module_name = f"config.profile_{profile}"
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError:
        return {}
    if hasattr(module, "PROFILE_OVERRIDES"):
        profile_overrides = getattr(module, "PROFILE_OVERRIDES")
        if isinstance(profile_overrides, dict):
            return dict(cast(Dict[str, Any], profile_overrides))
    overrides: Dict[str, Any] = {}
    for key in ["ns", "redis_url", "redis_host", "redis_port", "metrics_port", "timeframes"]:
        if hasattr(module, key):
            overrides[key] = getattr(module, key)
    return overrides


def _profile_from_env_file() -> str:
    env_file = os.environ.get("AI_ONE_ENV_FILE", "").strip()
    if env_file.endswith(".env.local"):
        return "local"
    if env_file.endswith(".env.prod"):
        return "prod"
    return "local"


def load_config(profile: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Config:
    profile_val = str(profile or _profile_from_env_file())
    base = Config(profile=profile_val)
    env_overrides = _env_overrides_from_env(os.environ if env is None else env)
    overrides = _load_profile_overrides(profile_val)
    if "ns" in overrides and "ns" in env_overrides and overrides["ns"] != env_overrides["ns"]:
        raise ValueError("NS має задаватися одним способом: profile або TFCLOCK_CHANNEL_PREFIX")
    merged_overrides = {**env_overrides, **overrides}
    cfg = replace(base, **merged_overrides)
    validate_config(cfg)
    return cfg


def validate_config(cfg: Config) -> None:
    if not cfg.timeframes:
        raise ValueError("timeframes має бути непорожнім списком")
    for tf in cfg.timeframes:
        try:
            Timeframe.parse(tf)
        except InvalidFormatError as exc:
            raise ValueError(f"Некоректний TF у конфігу: {tf!r}") from exc
    if cfg.status_publish_period_ms <= 0:
        raise ValueError("status_publish_period_ms має бути > 0")
    if cfg.publish_error_throttle_ms < 0:
        raise ValueError("publish_error_throttle_ms має бути >= 0")
    if cfg.redis_socket_timeout_s <= 0:
        raise ValueError("redis_socket_timeout_s має бути > 0")
    if cfg.publish_queue_max <= 0:
        raise ValueError("publish_queue_max має бути > 0")
    if not 0 < cfg.metrics_port < 65536:
        raise ValueError("metrics_port поза діапазоном 1..65535")
    if cfg.redis_required and not cfg.publish_enabled:
        raise ValueError("redis_required=true потребує publish_enabled=true")
    if len(set(cfg.timeframes)) != len(cfg.timeframes):
        logging.getLogger("config").warning(
            "timeframes містить дублікати: кожен TF отримає незалежний scheduler"
        )
    if cfg.countdown_publish_enabled and not cfg.countdown_enabled:
        logging.getLogger("config").warning("countdown_publish_enabled=true без countdown_enabled: нічого публікувати")
