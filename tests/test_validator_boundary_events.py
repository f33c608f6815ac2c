from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest

from core.validation.errors import ContractError
from core.validation.validator import SchemaValidator
from tests.time_helpers import TEST_NOW_MS, utc_ms


def _validator() -> SchemaValidator:
    return SchemaValidator(root_dir=Path(__file__).resolve().parents[1])


def _close_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "tf": "5m",
        "closed_boundary_time": utc_ms(2025, 3, 15, 10, 5) - 1,
        "open_time": utc_ms(2025, 3, 15, 10, 0),
        "event_ts": utc_ms(2025, 3, 15, 10, 5),
    }
    payload.update(overrides)
    return payload


def test_close_payload_valid() -> None:
    _validator().validate_boundary_close_v1(_close_payload())


@pytest.mark.parametrize(
    "tf,closed",
    [
        ("1w", utc_ms(2024, 1, 8) - 1),
        ("1M", utc_ms(2024, 3, 1) - 1),
        ("1y", utc_ms(2025, 1, 1) - 1),
        ("4h", utc_ms(2025, 3, 15, 12) - 1),
    ],
)
def test_close_payload_calendar_boundaries(tf: str, closed: int) -> None:
    _validator().validate_boundary_close_v1(_close_payload(tf=tf, closed_boundary_time=closed, open_time=closed - 1))


@pytest.mark.parametrize(
    "overrides",
    [
        {"closed_boundary_time": utc_ms(2025, 3, 15, 10, 5)},
        {"tf": "1w", "closed_boundary_time": utc_ms(2024, 1, 11) - 1},
        {"tf": "1M", "closed_boundary_time": utc_ms(2024, 3, 2) - 1},
        {"tf": "5x"},
        {"tf": "05m"},
        {"closed_boundary_time": 1_700_000_000},
        {"closed_boundary_time": True},
        {"open_time": utc_ms(2025, 3, 15, 10, 6)},
        {"event_ts": "now"},
        {"extra": 1},
    ],
)
def test_close_payload_rejected(overrides: Dict[str, Any]) -> None:
    with pytest.raises(ContractError):
        _validator().validate_boundary_close_v1(_close_payload(**overrides))


def test_close_payload_missing_field_rejected() -> None:
    payload = _close_payload()
    payload.pop("event_ts")
    with pytest.raises(ContractError, match="event_ts"):
        _validator().validate_boundary_close_v1(payload)


def test_countdown_payload() -> None:
    validator = _validator()
    payload = {
        "tf": "1m",
        "seconds_left": 42,
        "close_time": utc_ms(2025, 3, 15, 10, 6),
        "event_ts": utc_ms(2025, 3, 15, 10, 5, 17),
    }
    validator.validate_boundary_countdown_v1(payload)
    with pytest.raises(ContractError):
        validator.validate_boundary_countdown_v1({**payload, "seconds_left": -1})
    with pytest.raises(ContractError):
        validator.validate_boundary_countdown_v1({**payload, "close_time": payload["close_time"] + 1})


def test_missing_schema_is_loud(tmp_path: Path) -> None:
    with pytest.raises(ContractError, match="Schema не знайдено"):
        SchemaValidator(root_dir=tmp_path).validate_boundary_close_v1(_close_payload())


def test_status_schema_rejects_bad_pipeline() -> None:
    payload = {
        "ts": TEST_NOW_MS,
        "version": "0.1.0",
        "schema_version": 1,
        "pipeline": "paused",
        "process": {"pid": 1, "start_ts_ms": TEST_NOW_MS, "uptime_s": 0, "state": "running"},
        "timeframes": [],
        "errors": [],
        "degraded": [],
    }
    with pytest.raises(ContractError):
        _validator().validate_status_v1(payload)
    _validator().validate_status_v1({**payload, "pipeline": "running"})
