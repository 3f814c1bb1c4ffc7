"""Wall-clock access for time-window rules."""

from collections.abc import Callable
from datetime import datetime

# Naive local time; no time-zone handling is performed anywhere.
Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Return the current local time truncated to the minute."""
    return datetime.now().replace(second=0, microsecond=0)
