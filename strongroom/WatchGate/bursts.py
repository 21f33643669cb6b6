"""Log coalescing for noisy watch bursts."""

import time
from typing import Callable, Dict, Tuple


class BurstLogFilter:
    """
    Decides which per-key log lines are written.

    The first event for a key in each window is logged; the rest are counted
    and reported on the first logged line of the next window. Only logging
    is affected, never event delivery.
    """

    def __init__(self, window_seconds: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self.clock = clock
        # key -> (window start, suppressed count)
        self._windows: Dict[str, Tuple[float, int]] = {}

    def should_log(self, key: str) -> Tuple[bool, int]:
        """
        Returns:
            (log_this_line, suppressed_since_last_logged_line)
        """
        now = self.clock()
        window = self._windows.get(key)

        if window is None or now - window[0] >= self.window_seconds:
            suppressed = window[1] if window else 0
            self._windows[key] = (now, 0)
            return True, suppressed

        self._windows[key] = (window[0], window[1] + 1)
        return False, 0

    def forget(self, key: str) -> int:
        """Drop a key's window, returning its unreported count."""
        window = self._windows.pop(key, None)
        return window[1] if window else 0
