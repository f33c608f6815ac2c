"""Шаблон профілю (несекретні параметри).

Скопіюй у config/profile_local.py або config/profile_prod.py та зміни значення.
"""

PROFILE_OVERRIDES = {
    "ns": "tf_clock_local",
    "redis_url": "redis://127.0.0.1:6379/0",
    "redis_host": "127.0.0.1",
    "redis_port": 6379,
    "metrics_port": 9210,
    "timeframes": ["1m", "5m", "15m", "1h", "4h", "1d", "1w", "1M"],
    "countdown_publish_enabled": False,
}
