from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, cast

from jsonschema import Draft7Validator

from core.time.buckets import get_bucket_open_ms, parse_tf
from core.time.epoch_rails import MAX_EPOCH_MS, MIN_EPOCH_MS
from core.time.errors import InvalidFormatError
from core.time.timeframe import UNIT_TO_MS, Timeframe, TimeUnit
from core.validation.errors import ContractError

REPO_ROOT = Path(__file__).resolve().parents[2]

_DAY_MS = UNIT_TO_MS[TimeUnit.DAY]
_EPOCH_WEEKDAY_MONDAY_SHIFT = 3  # 1970-01-01 четвер


def _format_error_message(err: Any) -> str:
    path = ".".join([str(p) for p in err.path]) if err.path else "<root>"
    return f"Порушено контракт у {path}: {err.message}"


def _require_ms_int(value: Any, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ContractError(f"Поле {field_name} має бути int ms")
    if value < MIN_EPOCH_MS:
        raise ContractError(f"Поле {field_name} має бути epoch ms, не seconds")
    if value > MAX_EPOCH_MS:
        raise ContractError(f"Поле {field_name} має бути epoch ms, не microseconds")


def _require_timeframe(value: Any) -> Timeframe:
    if not isinstance(value, str):
        raise ContractError(f"tf має бути рядком: {value!r}")
    try:
        return parse_tf(value)
    except InvalidFormatError as exc:
        raise ContractError(f"tf не є валідним timeframe: {value!r}") from exc


def _is_boundary(tf: Timeframe, ts_ms: int) -> bool:
    if tf.unit is TimeUnit.WEEK:
        if ts_ms % _DAY_MS != 0:
            return False
        return (ts_ms // _DAY_MS + _EPOCH_WEEKDAY_MONDAY_SHIFT) % 7 == 0
    if tf.is_calendar:
        return get_bucket_open_ms(str(tf), ts_ms) == ts_ms
    return ts_ms % tf.fixed_duration_ms() == 0


def _require_close_boundary(tf: Timeframe, closed_boundary_time: int) -> None:
    if not _is_boundary(tf, closed_boundary_time + 1):
        raise ContractError("closed_boundary_time + 1 має бути межею timeframe")


@dataclass
class SchemaStore:
    """Сховище JSON схем з кешем (allowlist)."""

    root_dir: Path
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def load(self, rel_path: str) -> Dict[str, Any]:
        if rel_path in self._cache:
            return self._cache[rel_path]
        schema_path = self.root_dir / rel_path
        if not schema_path.exists():
            raise ContractError(f"Schema не знайдено: {schema_path}")
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        schema_dict = cast(Dict[str, Any], schema)
        self._cache[rel_path] = schema_dict
        return schema_dict


@dataclass
class SchemaValidator:
    """Валідатор payload за JSON schema з fail-fast."""

    root_dir: Path = REPO_ROOT
    _store: SchemaStore = field(init=False)

    def __post_init__(self) -> None:
        self._store = SchemaStore(self.root_dir)

    def validate(self, rel_schema_path: str, payload: Dict[str, Any]) -> None:
        schema = self._store.load(rel_schema_path)
        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
        if errors:
            raise ContractError(_format_error_message(errors[0]))

    def validate_status_v1(self, payload: Dict[str, Any]) -> None:
        self.validate("core/contracts/public/status_v1.json", payload)
        _require_ms_int(payload.get("ts"), "ts")

    def validate_boundary_close_v1(self, payload: Dict[str, Any]) -> None:
        self.validate("core/contracts/public/boundary_close_v1.json", payload)
        tf = _require_timeframe(payload.get("tf"))
        closed = payload.get("closed_boundary_time")
        open_time = payload.get("open_time")
        _require_ms_int(closed, "closed_boundary_time")
        _require_ms_int(open_time, "open_time")
        _require_ms_int(payload.get("event_ts"), "event_ts")
        if int(open_time) > int(closed):
            raise ContractError("open_time має бути <= closed_boundary_time")
        _require_close_boundary(tf, int(closed))

    def validate_boundary_countdown_v1(self, payload: Dict[str, Any]) -> None:
        self.validate("core/contracts/public/boundary_countdown_v1.json", payload)
        tf = _require_timeframe(payload.get("tf"))
        close_time = payload.get("close_time")
        _require_ms_int(close_time, "close_time")
        _require_ms_int(payload.get("event_ts"), "event_ts")
        if not _is_boundary(tf, int(close_time)):
            raise ContractError("close_time має бути межею timeframe")
