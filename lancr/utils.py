import time


def now_ms() -> int:
    """Current wall-clock time as milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def elapsed_seconds(started_at: int, now: int) -> int:
    """Whole seconds between two ms timestamps, floored."""
    return (now - started_at) // 1000


def format_duration(seconds: int) -> str:
    """Format seconds as HH:MM:SS"""
    hours, remainder = divmod(max(seconds, 0), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
