"""Telemetry subpackage (lightweight).

Exposes the timer and logger factory used by the optimizer and CLI.
"""

from .metrics import Timer
from .logging import get_logger

__all__ = [
    "Timer",
    "get_logger",
]
