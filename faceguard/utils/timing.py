"""
Timing utilities.

Helper functions for time-related operations.
"""

import time


def elapsed_ms(started: float) -> float:
    """
    Milliseconds elapsed since a time.perf_counter() reading.

    Args:
        started: Value previously returned by time.perf_counter()

    Returns:
        Elapsed time in milliseconds
    """
    return (time.perf_counter() - started) * 1000.0


def format_uptime(seconds: float) -> str:
    """
    Format uptime in human-readable format.

    Args:
        seconds: Uptime in seconds

    Returns:
        Formatted string (e.g., "1d 2h 30m 45s")
    """
    seconds = int(seconds)

    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    parts = []
    if days > 0:
        parts.append(f'{days}d')
    if hours > 0:
        parts.append(f'{hours}h')
    if minutes > 0:
        parts.append(f'{minutes}m')
    parts.append(f'{secs}s')

    return ' '.join(parts)
