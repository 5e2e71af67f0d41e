"""Fixed-delay pacing for blocking external calls."""

from __future__ import annotations

import time
from collections.abc import Callable


class FixedIntervalGate:
    """Enforce a minimum interval between successive calls.

    The first call passes immediately; later calls sleep for whatever remains
    of the interval since the previous one.
    """

    def __init__(
        self,
        interval_seconds: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0.")
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    def wait(self) -> None:
        """Block until the next call is allowed, then record it."""
        if self._last_call is not None:
            remaining = self._interval_seconds - (self._clock() - self._last_call)
            if remaining > 0:
                self._sleep(remaining)
        self._last_call = self._clock()
