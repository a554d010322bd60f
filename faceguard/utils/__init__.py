"""
Utility modules package.
"""

from .timing import elapsed_ms, format_uptime

__all__ = [
    'elapsed_ms',
    'format_uptime',
]
