"""Wall-clock helpers; services take a clock callable so tests can pin time."""

import time
from typing import Callable

Clock = Callable[[], int]


def epoch_ms() -> int:
    """Current time as integer milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


__all__ = ["Clock", "epoch_ms"]
