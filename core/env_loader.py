from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable, Set

ENV_SWITCH_KEY = "AI_ONE_ENV_FILE"

ALLOWED_ENV_KEYS: Set[str] = {
    ENV_SWITCH_KEY,
    "TFCLOCK_CHANNEL_PREFIX",
    "TFCLOCK_TIMEFRAMES",
    "TFCLOCK_COUNTDOWN_ENABLED",
    "TFCLOCK_COUNTDOWN_PUBLISH_ENABLED",
    "TFCLOCK_PUBLISH_ENABLED",
    "TFCLOCK_REDIS_HOST",
    "TFCLOCK_REDIS_PORT",
    "TFCLOCK_REDIS_PASSWORD",
    "TFCLOCK_REDIS_REQUIRED",
    "TFCLOCK_REDIS_SOCKET_TIMEOUT_S",
    "TFCLOCK_METRICS_ENABLED",
    "TFCLOCK_METRICS_PORT",
    "TFCLOCK_STATUS_PUBLISH_PERIOD_MS",
}


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    if " #" in value:
        value = value.split(" #", 1)[0].rstrip()
    return value


def _parse_env_file(path: Path) -> Dict[str, str]:
    """KEY=VALUE рядки; порожні та # коментарі пропускаються, решта має бути валідною."""
    if not path.exists():
        return {}
    data: Dict[str, str] = {}
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise RuntimeError(f"{path.name}:{lineno}: очікується KEY=VALUE")
        if key in data:
            raise RuntimeError(f"{path.name}:{lineno}: дублікат ключа {key}")
        data[key] = _unquote(value)
    return data


def _validate_allowlist(keys: Iterable[str], allowlist: Set[str]) -> None:
    unknown = sorted(key for key in keys if key not in allowlist)
    if unknown:
        raise RuntimeError(f"unknown env key: {', '.join(unknown)}")


def _resolve_switch_path(root_dir: Path, base_env: Dict[str, str]) -> Path:
    switch = os.environ.get(ENV_SWITCH_KEY) or base_env.get(ENV_SWITCH_KEY, "")
    if not switch:
        return Path()
    switch_path = Path(switch)
    if not switch_path.is_absolute():
        switch_path = root_dir / switch_path
    return switch_path


def load_env(root_dir: Path) -> Dict[str, str]:
    """.env містить лише AI_ONE_ENV_FILE; решта ключів береться з файлу-перемикача (allowlist).

    Непорожні змінні процесу мають пріоритет над файлами.
    """
    base_env = _parse_env_file(root_dir / ".env")
    _validate_allowlist(base_env.keys(), {ENV_SWITCH_KEY})
    merged = dict(base_env)
    switch_path = _resolve_switch_path(root_dir, base_env)
    if switch_path != Path():
        if not switch_path.exists():
            raise RuntimeError(f"{ENV_SWITCH_KEY} вказує на відсутній файл: {switch_path}")
        merged.update(_parse_env_file(switch_path))
    _validate_allowlist(merged.keys(), ALLOWED_ENV_KEYS)
    for key, value in merged.items():
        if not os.environ.get(key):
            os.environ[key] = value
    return merged
