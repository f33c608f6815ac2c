from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from core.time.errors import InvalidFormatError, UnsupportedUnitError

MAX_AMOUNT = 2**31 - 1

_TF_RE = re.compile(r"([0-9]+)([smhdwMy])")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


class TimeUnit(str, Enum):
    SECOND = "s"
    MINUTE = "m"
    HOUR = "h"
    DAY = "d"
    WEEK = "w"
    MONTH = "M"
    YEAR = "y"


UNIT_TO_MS: Dict[TimeUnit, int] = {
    TimeUnit.SECOND: 1_000,
    TimeUnit.MINUTE: 60_000,
    TimeUnit.HOUR: 3_600_000,
    TimeUnit.DAY: 86_400_000,
    TimeUnit.WEEK: 604_800_000,
}

_ADDITIVE_UNITS = {TimeUnit.SECOND, TimeUnit.MINUTE, TimeUnit.HOUR, TimeUnit.DAY}


class BoundaryWindow(NamedTuple):
    open_time: int
    close_time: int


def _ms_to_dt(ts_ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ts_ms)


def _dt_to_ms(dt: datetime) -> int:
    return (dt - _EPOCH) // _ONE_MS


def _date_to_ms(day: date) -> int:
    return _dt_to_ms(datetime(day.year, day.month, day.day, tzinfo=timezone.utc))


def _month_start_ms(year: int, month_index: int) -> int:
    """month_index рахується від 0 і може виходити за межі року."""
    year_shift, month0 = divmod(month_index, 12)
    return _dt_to_ms(datetime(year + year_shift, month0 + 1, 1, tzinfo=timezone.utc))


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidFormatError("amount timeframe має бути int")
    if amount <= 0:
        raise InvalidFormatError("amount timeframe має бути > 0")
    if amount > MAX_AMOUNT:
        raise InvalidFormatError(f"amount timeframe має бути <= {MAX_AMOUNT}")
    return amount


@dataclass(frozen=True)
class Timeframe:
    """Timeframe <amount><unit> з арифметикою меж періоду (epoch ms, UTC)."""

    amount: int
    unit: TimeUnit

    def __post_init__(self) -> None:
        _require_amount(self.amount)
        if not isinstance(self.unit, TimeUnit):
            try:
                unit = TimeUnit(self.unit)
            except ValueError as exc:
                raise InvalidFormatError(f"Невідома одиниця timeframe: {self.unit!r}") from exc
            object.__setattr__(self, "unit", unit)

    @classmethod
    def parse(cls, tf_text: Any) -> "Timeframe":
        """Парсить канонічний рядок (15m, 1h, 1w, 1M, 1y) без fuzzy-нормалізації."""
        if not isinstance(tf_text, str):
            raise InvalidFormatError(f"timeframe має бути рядком: {tf_text!r}")
        match = _TF_RE.fullmatch(tf_text)
        if match is None:
            raise InvalidFormatError(f"Некоректний timeframe: {tf_text!r}")
        digits, code = match.groups()
        if len(digits) > 1 and digits.startswith("0"):
            raise InvalidFormatError(f"timeframe не може мати ведучі нулі: {tf_text!r}")
        if len(digits) > len(str(MAX_AMOUNT)):
            raise InvalidFormatError(f"amount timeframe має бути <= {MAX_AMOUNT}: {tf_text!r}")
        return cls(amount=_require_amount(int(digits)), unit=TimeUnit(code))

    def __str__(self) -> str:
        return f"{self.amount}{self.unit.value}"

    @property
    def is_calendar(self) -> bool:
        return self.fixed_duration_ms() is None

    def fixed_duration_ms(self) -> Optional[int]:
        """Тривалість у ms для s/m/h/d/w; None для M/y (довжина змінна)."""
        unit_ms = UNIT_TO_MS.get(self.unit)
        if unit_ms is None:
            return None
        return self.amount * unit_ms

    def floor(self, ts_ms: int) -> int:
        """Початок періоду, що містить ts_ms."""
        size = self.fixed_duration_ms()
        if size is not None:
            return ts_ms - (ts_ms % size)
        dt = _ms_to_dt(ts_ms)
        if self.unit is TimeUnit.MONTH:
            return _month_start_ms(dt.year, dt.month - 1)
        if self.unit is TimeUnit.YEAR:
            return _month_start_ms(dt.year, 0)
        raise UnsupportedUnitError(f"floor: непідтримувана одиниця {self.unit!r}")

    def ceil(self, ts_ms: int) -> int:
        """Найменша межа >= ts_ms; для M/y завжди початок наступного календарного періоду."""
        size = self.fixed_duration_ms()
        if size is not None:
            return -((-ts_ms) // size) * size
        dt = _ms_to_dt(ts_ms)
        if self.unit is TimeUnit.MONTH:
            return _month_start_ms(dt.year, dt.month)
        if self.unit is TimeUnit.YEAR:
            return _month_start_ms(dt.year + 1, 0)
        raise UnsupportedUnitError(f"ceil: непідтримувана одиниця {self.unit!r}")

    def next(self, open_ms: int) -> int:
        """Open наступного періоду від уже вирівняного open_ms."""
        if self.unit in _ADDITIVE_UNITS:
            return open_ms + UNIT_TO_MS[self.unit] * self.amount
        dt = _ms_to_dt(open_ms)
        if self.unit is TimeUnit.WEEK:
            # тиждень починається з понеділка UTC
            shifted = (dt + timedelta(weeks=self.amount)).date()
            return _date_to_ms(shifted - timedelta(days=shifted.weekday()))
        if self.unit is TimeUnit.MONTH:
            return _month_start_ms(dt.year, dt.month - 1 + self.amount)
        if self.unit is TimeUnit.YEAR:
            return _month_start_ms(dt.year + self.amount, 0)
        raise UnsupportedUnitError(f"next: непідтримувана одиниця {self.unit!r}")

    def get_open_close(self, ts_ms: int) -> BoundaryWindow:
        open_time = self.floor(ts_ms)
        return BoundaryWindow(open_time=open_time, close_time=self.next(open_time))

    def contains(self, ts_ms: int, open_ms: int) -> bool:
        """Чи лежить ts_ms у [open_ms, next(open_ms))."""
        return open_ms <= ts_ms < self.next(open_ms)

    def progress(self, ts_ms: int, open_ms: int) -> float:
        """Частка пройденого періоду у [0, 1]."""
        close_ms = self.next(open_ms)
        if ts_ms <= open_ms:
            return 0.0
        if ts_ms >= close_ms:
            return 1.0
        return (ts_ms - open_ms) / (close_ms - open_ms)

    def remaining(self, ts_ms: int, open_ms: int) -> int:
        """Скільки ms лишилось до закриття періоду; 0 якщо вже закритий."""
        return max(0, self.next(open_ms) - ts_ms)
