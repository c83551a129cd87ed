"""
handoff.py
Single-writer / single-reader data handoff between threads.

These holders exchange data between:
- Input callbacks (target pose/wrench, running in a non-real-time thread)
- Control loop (running in the control thread at 1000 Hz)

Values are published as immutable snapshots. The lock only guards the
reference swap, it is never held while a tick computes.
"""

import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from .contracts import SafetyDiagnostics, TickOutput

T = TypeVar("T")


class LatestValue(Generic[T]):
    """
    Holds the last published snapshot.

    A reader that finds no new value simply keeps using the last one; stale
    data is an expected condition, not an error.
    """

    def __init__(self, initial: Optional[T] = None, clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._clock = clock
        self._value: Optional[T] = initial
        self._timestamp: float = clock() if initial is not None else float("-inf")
        self._version = 0

    def publish(self, value: T) -> None:
        """
        Called by the writer to replace the snapshot.

        Args:
            value: Immutable snapshot (frozen dataclass)
        """
        now = self._clock()
        with self._lock:
            self._value = value
            self._timestamp = now
            self._version += 1

    def read(self) -> Optional[T]:
        """
        Called by the reader to get the latest snapshot.

        Returns:
            Latest value, or None if nothing was published yet
        """
        with self._lock:
            return self._value

    def age(self) -> float:
        """Seconds since the last publish (inf if never published)."""
        with self._lock:
            stamp = self._timestamp
        return self._clock() - stamp

    @property
    def version(self) -> int:
        """Number of publishes so far."""
        with self._lock:
            return self._version


class DiagnosticsBuffer:
    """
    Latest safety diagnostics for a slower publisher or logger.

    Control loop writes once per tick, the publisher reads and clears the
    new-data flag. Observational only: nothing here is read back by the
    control law.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest: Optional[TickOutput] = None
        self._timestamp: float = 0.0
        self._new_data_available = False
        self.infeasible_count = 0
        self.filtered_count = 0

    def update(self, output: TickOutput, stamp: float) -> None:
        """
        Called by control loop to store the tick output.

        Args:
            output: Result of the pipeline for this tick
            stamp: Tick timestamp (seconds)
        """
        status = output.diagnostics.status.name
        with self._lock:
            self._latest = output
            self._timestamp = stamp
            self._new_data_available = True
            if status == "INFEASIBLE":
                self.infeasible_count += 1
            elif status == "FILTERED":
                self.filtered_count += 1

    def get_latest(self) -> Optional[tuple]:
        """
        Called by the publisher to get the latest record.

        Returns:
            Tuple of (TickOutput, timestamp) or None if nothing new arrived
        """
        with self._lock:
            if not self._new_data_available:
                return None
            self._new_data_available = False
            return self._latest, self._timestamp

    def peek_diagnostics(self) -> Optional[SafetyDiagnostics]:
        """Latest diagnostics without touching the new-data flag."""
        with self._lock:
            return None if self._latest is None else self._latest.diagnostics

    def has_new_data(self) -> bool:
        """Check if new data is available for publishing."""
        with self._lock:
            return self._new_data_available
