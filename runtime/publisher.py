from __future__ import annotations

import json
from typing import Any, Dict

from config.config import Config
from core.validation.validator import SchemaValidator


class RedisPublisher:
    """Єдина точка запису у Redis для boundary подій та status."""

    def __init__(self, redis_client: Any, config: Config) -> None:
        self._redis = redis_client
        self._config = config

    @staticmethod
    def json_dumps(payload: Dict[str, Any]) -> str:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

    def set_snapshot(self, key: str, json_str: str) -> None:
        self._redis.set(key, json_str)

    def publish(self, channel: str, json_str: str) -> None:
        self._redis.publish(channel, json_str)

    def publish_close(self, payload: Dict[str, Any], validator: SchemaValidator) -> None:
        validator.validate_boundary_close_v1(payload)
        self.publish(self._config.ch_close(), self.json_dumps(payload))

    def publish_countdown(self, payload: Dict[str, Any], validator: SchemaValidator) -> None:
        validator.validate_boundary_countdown_v1(payload)
        self.publish(self._config.ch_countdown(), self.json_dumps(payload))
