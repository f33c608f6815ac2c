from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from core.time.epoch_rails import MAX_EPOCH_MS, MIN_EPOCH_MS
from core.validation.errors import ContractError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms_utc(dt_or_ts: Any) -> int:
    """Конвертує значення у epoch ms (UTC)."""
    if isinstance(dt_or_ts, datetime):
        if dt_or_ts.tzinfo is None:
            dt_or_ts = dt_or_ts.replace(tzinfo=timezone.utc)
        ts_ms = (dt_or_ts - _EPOCH) // timedelta(milliseconds=1)
    elif isinstance(dt_or_ts, bool):
        raise ContractError("timestamp має бути datetime або int ms")
    elif isinstance(dt_or_ts, int):
        ts_ms = int(dt_or_ts)
    elif isinstance(dt_or_ts, float):
        raise ContractError("timestamp має бути int ms, не float")
    else:
        raise ContractError("timestamp має бути datetime або int ms")
    if ts_ms < MIN_EPOCH_MS:
        raise ContractError("timestamp має бути epoch ms (>=1e12)")
    if ts_ms > MAX_EPOCH_MS:
        raise ContractError("timestamp має бути epoch ms (не microseconds)")
    return ts_ms


def from_epoch_ms_utc(ts_ms: int) -> datetime:
    """epoch ms -> aware datetime у UTC (без втрати мілісекунд)."""
    return _EPOCH + timedelta(milliseconds=int(ts_ms))


def to_utc_iso(ts_ms: int) -> str:
    dt = from_epoch_ms_utc(ts_ms)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_utc_iso(value: str) -> int:
    """ISO-рядок (Z або +00:00) -> epoch ms; naive трактується як UTC."""
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ContractError(f"Некоректний ISO timestamp: {value!r}") from exc
    return to_epoch_ms_utc(dt)
