from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from core.time.timeframe import UNIT_TO_MS, Timeframe, TimeUnit
from core.validation.errors import ContractError

_DAY_MS = UNIT_TO_MS[TimeUnit.DAY]


@dataclass(frozen=True)
class Trade:
    timestamp: int
    price: float
    volume: float


@dataclass
class Candle:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "open_time": self.open_time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def _require_trade(trade: Trade) -> None:
    if isinstance(trade.timestamp, bool) or not isinstance(trade.timestamp, int):
        raise ContractError("trade.timestamp має бути int ms")
    if trade.volume < 0:
        raise ContractError("trade.volume має бути >= 0")


def map_trades_to_candles(timeframe: Timeframe, trades: Iterable[Trade]) -> List[Candle]:
    """Агрегує trades у свічки timeframe (bucket = timeframe.floor(timestamp))."""
    ordered = sorted(trades, key=lambda t: t.timestamp)
    results: List[Candle] = []
    current: Optional[Candle] = None
    for trade in ordered:
        _require_trade(trade)
        open_time = timeframe.floor(trade.timestamp)
        if current is None or current.open_time != open_time:
            current = Candle(
                open_time=open_time,
                open=float(trade.price),
                high=float(trade.price),
                low=float(trade.price),
                close=float(trade.price),
                volume=float(trade.volume),
            )
            results.append(current)
            continue
        current.high = max(current.high, float(trade.price))
        current.low = min(current.low, float(trade.price))
        current.close = float(trade.price)
        current.volume += float(trade.volume)
    return results


def _require_resample_pair(src_tf: Timeframe, dst_tf: Timeframe) -> None:
    src_ms = src_tf.fixed_duration_ms()
    dst_ms = dst_tf.fixed_duration_ms()
    if src_ms is None and dst_ms is not None:
        raise ContractError(f"Ресемплінг {src_tf} -> {dst_tf}: календарний TF не ділиться на фіксований")
    if src_ms is not None and dst_ms is None and _DAY_MS % src_ms != 0:
        # bucket не ділить добу, тож може перетинати початок місяця
        raise ContractError(f"Ресемплінг {src_tf} -> {dst_tf}: {src_tf} не вирівняний по межах календаря")
    if src_ms is not None and dst_ms is not None:
        if dst_ms < src_ms:
            raise ContractError(f"Ресемплінг {src_tf} -> {dst_tf}: цільовий TF дрібніший за вхідний")
        if dst_ms % src_ms != 0:
            raise ContractError(f"Ресемплінг {src_tf} -> {dst_tf}: цільовий TF не кратний вхідному")
    if src_ms is None and dst_ms is None:
        src_months = src_tf.amount * (12 if src_tf.unit is TimeUnit.YEAR else 1)
        dst_months = dst_tf.amount * (12 if dst_tf.unit is TimeUnit.YEAR else 1)
        if dst_months < src_months:
            raise ContractError(f"Ресемплінг {src_tf} -> {dst_tf}: цільовий TF дрібніший за вхідний")


def resample_candles(candles: Iterable[Candle], src_tf: Timeframe, dst_tf: Timeframe) -> List[Candle]:
    """Ресемплінг свічок src_tf -> dst_tf (bucket = dst_tf.floor(open_time))."""
    _require_resample_pair(src_tf, dst_tf)
    results: List[Candle] = []
    current: Optional[Candle] = None
    last_open: Optional[int] = None
    for candle in candles:
        if last_open is not None and candle.open_time <= last_open:
            raise ContractError("candles мають бути відсортовані та без дублікатів open_time")
        last_open = candle.open_time
        if src_tf.floor(candle.open_time) != candle.open_time:
            raise ContractError(f"open_time {candle.open_time} не вирівняний по {src_tf}")
        open_time = dst_tf.floor(candle.open_time)
        if current is None or current.open_time != open_time:
            current = Candle(
                open_time=open_time,
                open=candle.open,
                high=candle.high,
                low=candle.low,
                close=candle.close,
                volume=candle.volume,
            )
            results.append(current)
            continue
        current.high = max(current.high, candle.high)
        current.low = min(current.low, candle.low)
        current.close = candle.close
        current.volume += candle.volume
    return results
