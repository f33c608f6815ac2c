from __future__ import annotations

MIN_EPOCH_MS = 1_000_000_000_000
MAX_EPOCH_MS = 9_999_999_999_999
