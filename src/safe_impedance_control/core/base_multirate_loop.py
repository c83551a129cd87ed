"""
base_multirate_loop.py
Base class for multi-rate control loops.

Provides generic infrastructure for:
- Decimation-based task scheduling
- Timing and rate limiting (loop_rate_limiters)
- Overrun detection and statistics tracking
- Lifecycle management (initialization, run, cleanup)
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from loop_rate_limiters import RateLimiter

from .log_utils import ThrottledLogger

logger = logging.getLogger(__name__)


class BaseMultiRateControlLoop(ABC):
    """
    Abstract base class for multi-rate control loops.

    The main loop runs at the base (fastest) frequency, with slower tasks
    scheduled using decimation factors. With realtime=False the loop does
    not sleep and time advances by exactly one base period per iteration,
    which is what simulations and tests want.
    """

    def __init__(
        self,
        base_frequency_hz: float,
        task_frequencies_hz: Dict[str, float],
        realtime: bool = True,
        config: Optional[Any] = None
    ):
        """
        Initialize multi-rate control loop.

        Args:
            base_frequency_hz: Base loop frequency (fastest rate)
            task_frequencies_hz: Dictionary mapping task names to frequencies
                e.g., {'controller': 1000.0, 'diagnostics': 50.0}
            realtime: Pace iterations against the wall clock
            config: Optional configuration object
        """
        if base_frequency_hz <= 0.0:
            raise ValueError(f"base frequency must be positive, got {base_frequency_hz}")
        self.config = config
        self.realtime = realtime

        # Timing configuration
        self.base_frequency_hz = base_frequency_hz
        self.base_dt = 1.0 / self.base_frequency_hz

        # Task configuration
        self.task_frequencies_hz = task_frequencies_hz
        self.task_decimations = {}
        self.task_counters = {}

        # Calculate decimation factors for each task
        for task_name, freq_hz in task_frequencies_hz.items():
            if freq_hz <= 0.0 or freq_hz > base_frequency_hz:
                raise ValueError(
                    f"task '{task_name}' rate {freq_hz} Hz must be in (0, {base_frequency_hz}]"
                )
            self.task_decimations[task_name] = max(1, int(round(self.base_frequency_hz / freq_hz)))
            self.task_counters[task_name] = 0

        # Loop state
        self.iteration_counter = 0
        self.overrun_count = 0
        self.max_iteration_s = 0.0
        self.should_stop = False
        self._warn = ThrottledLogger(logger)

    def _print_configuration(self):
        """Print loop configuration."""
        print("="*60)
        print("Multi-Rate Control Loop Configuration")
        print("="*60)
        print(f"Base frequency: {self.base_frequency_hz} Hz ({'realtime' if self.realtime else 'as fast as possible'})")
        for task_name, freq_hz in self.task_frequencies_hz.items():
            decimation = self.task_decimations[task_name]
            print(f"  {task_name}: {freq_hz} Hz (every {decimation} iteration(s))")
        print("="*60)
        print()

    @abstractmethod
    def initialize(self) -> bool:
        """
        Initialize all control components.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    def cleanup(self):
        """Release the robot and any other resources before shutdown."""
        pass

    @abstractmethod
    def loop_iteration(self, elapsed: float):
        """
        Execute one iteration of the control loop.

        Subclasses run their tasks through execute_task().

        Args:
            elapsed: Time elapsed since start (seconds)
        """
        pass

    def should_continue(self, elapsed: float, duration_s: Optional[float]) -> bool:
        """
        Check if loop should continue running.

        Args:
            elapsed: Time elapsed since start (seconds)
            duration_s: Target duration (None = run forever)
        """
        if self.should_stop:
            return False
        if duration_s is not None and elapsed >= duration_s:
            return False
        return True

    def execute_task(self, task_name: str, *args, **kwargs):
        """
        Execute a task if it's time based on decimation.

        Args:
            task_name: Name of the task (must be in task_frequencies_hz)
            *args, **kwargs: Arguments to pass to task method

        Returns:
            Result of task execution, or None if task not executed
        """
        if task_name not in self.task_decimations:
            raise ValueError(f"Unknown task: {task_name}")

        if self.iteration_counter % self.task_decimations[task_name] != 0:
            return None

        # Call the task method (e.g., controller_tick, diagnostics_tick)
        method = getattr(self, f"{task_name}_tick", None)
        if method is None:
            raise NotImplementedError(f"Task method '{task_name}_tick' not implemented")
        result = method(*args, **kwargs)
        self.task_counters[task_name] += 1
        return result

    def run(self, duration_s: Optional[float] = None) -> bool:
        """
        Run the multi-rate control loop.

        Args:
            duration_s: Duration to run in seconds (None = run until interrupted)

        Returns:
            False if initialization failed
        """
        if not self.initialize():
            print("✗ Initialization failed")
            return False

        self._print_configuration()
        print("Starting control loop...")
        if duration_s is None:
            print("Press Ctrl+C to stop\n")

        rate = RateLimiter(frequency=self.base_frequency_hz, warn=False) if self.realtime else None
        t_start = time.perf_counter()
        self.iteration_counter = 0
        self.should_stop = False
        elapsed = 0.0

        try:
            while True:
                if self.realtime:
                    elapsed = time.perf_counter() - t_start
                else:
                    elapsed = self.iteration_counter * self.base_dt

                if not self.should_continue(elapsed, duration_s):
                    break

                iteration_start = time.perf_counter()
                self.loop_iteration(elapsed)
                self._record_iteration_time(time.perf_counter() - iteration_start)
                self.iteration_counter += 1

                if rate is not None:
                    rate.sleep()

        except KeyboardInterrupt:
            print("\nKeyboard interrupt received...")
        finally:
            if self.realtime:
                elapsed = time.perf_counter() - t_start
            self.cleanup()
            self.print_statistics(elapsed)
        return True

    def _record_iteration_time(self, duration: float) -> None:
        self.max_iteration_s = max(self.max_iteration_s, duration)
        if self.realtime and duration > self.base_dt:
            self.overrun_count += 1
            self._warn.warning(
                "overrun", 1.0,
                "Control iteration took %.2f ms (period %.2f ms)",
                duration * 1e3, self.base_dt * 1e3,
            )

    def print_statistics(self, elapsed: float):
        """
        Print execution statistics.

        Args:
            elapsed: Total elapsed time (seconds)
        """
        print("\n" + "="*60)
        print("Execution Statistics:")
        print(f"  Total time: {elapsed:.2f}s")
        print(f"  Total iterations: {self.iteration_counter}")
        if elapsed > 0.0:
            print(f"  Average frequency: {self.iteration_counter/elapsed:.1f} Hz")
        print(f"  Slowest iteration: {self.max_iteration_s*1e3:.3f} ms")
        if self.realtime:
            print(f"  Overruns: {self.overrun_count}")
        print()

        for task_name, freq_hz in self.task_frequencies_hz.items():
            count = self.task_counters[task_name]
            expected = int(freq_hz * elapsed)
            print(f"  {task_name} calls: {count} (expected: ~{expected})")

        print("="*60)

    def stop(self):
        """Request the loop to stop at the next iteration."""
        self.should_stop = True
