from __future__ import annotations


def format_duration(seconds: float) -> str:
    """Форматує тривалість як '1d 2h 3m 4s', пропускаючи нульові складові."""
    total = int(abs(seconds))
    days, total = divmod(total, 86_400)
    hours, total = divmod(total, 3_600)
    minutes, secs = divmod(total, 60)
    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_countdown(seconds_left: int) -> str:
    """Countdown до закриття у форматі m:ss (хвилини без обмеження)."""
    seconds_left = max(0, int(seconds_left))
    minutes, secs = divmod(seconds_left, 60)
    return f"{minutes}:{secs:02d}"
