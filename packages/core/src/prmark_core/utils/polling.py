"""Bounded readback polling.

The rendered diff is updated asynchronously, so every step that changes the
page waits for an observable result instead of sleeping a fixed amount.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0
DEFAULT_INTERVAL = 0.25


def poll_until(
    probe: Callable[[], T],
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> T | None:
    """Call ``probe`` until it returns a truthy value or ``timeout`` elapses.

    The probe always runs at least once, even with a zero timeout. Returns the
    first truthy result, or None when time runs out.
    """
    deadline = clock() + timeout
    while True:
        result = probe()
        if result:
            return result
        remaining = deadline - clock()
        if remaining <= 0:
            return None
        sleep(min(interval, remaining))
