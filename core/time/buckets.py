from __future__ import annotations

from functools import lru_cache

from core.time.timeframe import BoundaryWindow, Timeframe


@lru_cache(maxsize=128)
def parse_tf(tf: str) -> Timeframe:
    """Кешований Timeframe.parse для рядкових TF (payload, CLI)."""
    return Timeframe.parse(tf)


def get_bucket_open_ms(tf: str, ts_ms: int) -> int:
    """Повертає open_time у ms для заданого TF."""
    return parse_tf(tf).floor(ts_ms)


def get_bucket_window(tf: str, ts_ms: int) -> BoundaryWindow:
    """Вікно [open, close) bucket, що містить ts_ms."""
    return parse_tf(tf).get_open_close(ts_ms)
