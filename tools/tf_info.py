from __future__ import annotations

import argparse
import time
from typing import List, Optional

from core.time.buckets import get_bucket_window, parse_tf
from core.time.durations import format_duration
from core.time.timestamps import parse_utc_iso, to_utc_iso


def describe(tf_text: str, ts_ms: int) -> List[str]:
    tf = parse_tf(tf_text)
    window = get_bucket_window(tf_text, ts_ms)
    remaining_s = tf.remaining(ts_ms, window.open_time) // 1000
    return [
        f"tf={tf} at={to_utc_iso(ts_ms)}",
        f"  open={to_utc_iso(window.open_time)} close={to_utc_iso(window.close_time)}",
        f"  progress={tf.progress(ts_ms, window.open_time) * 100:.2f}% remaining={format_duration(remaining_s)}",
    ]


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Межі timeframe для заданого моменту")
    parser.add_argument("tfs", nargs="+", help="Timeframe: 1m, 4h, 1w, 1M ...")
    parser.add_argument("--at", default="", help="ISO UTC момент, напр. 2024-02-29T12:00:00Z (за замовчуванням зараз)")
    args = parser.parse_args(argv)

    ts_ms = parse_utc_iso(args.at) if args.at else int(time.time() * 1000)
    for tf_text in args.tfs:
        for line in describe(tf_text, ts_ms):
            print(line)


if __name__ == "__main__":
    main()
