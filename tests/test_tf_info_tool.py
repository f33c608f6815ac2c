from __future__ import annotations

import pytest

from core.time.errors import InvalidFormatError
from tests.time_helpers import utc_ms
from tools.tf_info import describe, main


def test_describe_reports_window_progress_and_remaining() -> None:
    lines = describe("1h", utc_ms(2025, 3, 15, 10, 15))
    assert lines[0] == "tf=1h at=2025-03-15T10:15:00.000Z"
    assert lines[1] == "  open=2025-03-15T10:00:00.000Z close=2025-03-15T11:00:00.000Z"
    assert lines[2] == "  progress=25.00% remaining=45m"


def test_main_prints_each_timeframe(capsys) -> None:
    main(["1d", "1M", "--at", "2024-02-29T12:00:00Z"])
    out = capsys.readouterr().out
    assert "open=2024-02-29T00:00:00.000Z close=2024-03-01T00:00:00.000Z" in out
    assert "open=2024-02-01T00:00:00.000Z close=2024-03-01T00:00:00.000Z" in out
    assert "remaining=12h" in out


def test_describe_rejects_unknown_tf() -> None:
    with pytest.raises(InvalidFormatError):
        describe("1x", utc_ms(2025, 3, 15))
