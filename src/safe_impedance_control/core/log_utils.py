import logging
import time
from typing import Callable, Dict


class ThrottledLogger:
    """
    Wraps a logger so that each message key is emitted at most once per period.

    Used for warnings raised from the control tick or from input callbacks,
    where an unthrottled logger would flood the output at the control rate.
    """

    def __init__(self, logger: logging.Logger, clock: Callable[[], float] = time.monotonic):
        self.logger = logger
        self._clock = clock
        self._last: Dict[str, float] = {}
        self.suppressed: Dict[str, int] = {}

    def log(self, level: int, key: str, period_s: float, msg: str, *args) -> bool:
        """
        Log msg unless the same key was logged less than period_s ago.

        Returns:
            True if the message was emitted
        """
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < period_s:
            self.suppressed[key] = self.suppressed.get(key, 0) + 1
            return False
        self._last[key] = now
        skipped = self.suppressed.pop(key, 0)
        if skipped:
            msg = msg + " (%d similar messages suppressed)"
            args = args + (skipped,)
        self.logger.log(level, msg, *args)
        return True

    def warning(self, key: str, period_s: float, msg: str, *args) -> bool:
        return self.log(logging.WARNING, key, period_s, msg, *args)

    def info(self, key: str, period_s: float, msg: str, *args) -> bool:
        return self.log(logging.INFO, key, period_s, msg, *args)
