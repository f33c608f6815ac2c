from __future__ import annotations

import argparse
import json
import time
from typing import Any, Dict, Set

import redis

from config.config import Config


def _parse_message(raw: Any) -> Dict[str, Any]:
    if raw is None:
        raise RuntimeError("порожній payload")
    if isinstance(raw, str):
        text = raw
    else:
        text = str(raw)
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise RuntimeError("payload має бути об'єктом")
    return payload


def main() -> None:
    parser = argparse.ArgumentParser(description="Чекає close подій з Redis для заданих TF")
    parser.add_argument("--ns", default="tf_clock_local")
    parser.add_argument("--redis-host", default="127.0.0.1")
    parser.add_argument("--redis-port", type=int, default=6379)
    parser.add_argument("--timeout_s", type=int, default=75)
    parser.add_argument("--tfs", default="1m")
    args = parser.parse_args()

    cfg = Config(ns=args.ns)
    channel = cfg.ch_close()
    required_tfs: Set[str] = {tf.strip() for tf in args.tfs.split(",") if tf.strip()}
    if not required_tfs:
        raise RuntimeError("tfs має бути непорожнім")

    client = redis.Redis(
        host=args.redis_host,
        port=args.redis_port,
        decode_responses=True,
        socket_connect_timeout=cfg.redis_socket_timeout_s,
    )
    pubsub = client.pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe(channel)

    seen: Set[str] = set()
    deadline = time.time() + max(1, args.timeout_s)
    while time.time() < deadline and seen != required_tfs:
        message = pubsub.get_message(timeout=1.0)
        if not message or message.get("type") != "message":
            continue
        payload = _parse_message(message.get("data"))
        tf = payload.get("tf")
        print(f"CLOSE tf={tf} closed_boundary_time={payload.get('closed_boundary_time')}")
        if isinstance(tf, str) and tf in required_tfs:
            seen.add(tf)

    pubsub.close()

    missing = required_tfs - seen
    if missing:
        raise RuntimeError(f"Не отримано close для TF: {', '.join(sorted(missing))}")

    print(f"OK: отримано close для TF: {', '.join(sorted(seen))} у {channel}")


if __name__ == "__main__":
    main()
