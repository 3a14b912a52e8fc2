"""
Outbound rate limiting for LLM API calls.

Several worker processes (and the webhook process) may call the LLM API at
the same time while the provider enforces one global rate limit. The
limiter serializes calls and keeps a minimum interval between them.
"""

import fcntl
import logging
import os
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional

logger = logging.getLogger(__name__)


class RateLimiter(ABC):
    """Grants permission to make one outbound call at a time."""

    @abstractmethod
    @contextmanager
    def slot(self) -> Generator[None, None, None]:
        """Hold exclusive permission for the duration of one API call."""
        ...


class NullRateLimiter(RateLimiter):
    """Limiter that never waits (tests, single-process setups)."""

    @contextmanager
    def slot(self) -> Generator[None, None, None]:
        yield


class FileLockRateLimiter(RateLimiter):
    """
    Cross-process minimum-interval limiter backed by an advisory file lock.

    Holding the lock serializes calls across processes on one host; the
    companion timestamp file records when the last call started so the next
    holder can wait out the remaining interval. This is a leaky bucket with
    capacity one.
    """

    def __init__(
        self,
        lock_path: str | Path,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            lock_path: Lock file path; the timestamp lives next to it
            min_interval: Minimum seconds between the start of two calls
            clock: Wall clock (shared across processes, so not monotonic)
            sleep: Sleep function
        """
        self.lock_path = Path(lock_path).expanduser()
        self.timestamp_path = self.lock_path.with_name(self.lock_path.name + ".last")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep

    def _read_last_call(self) -> Optional[float]:
        try:
            return float(self.timestamp_path.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None

    def _write_last_call(self, value: float) -> None:
        tmp_path = self.timestamp_path.with_suffix(".tmp")
        tmp_path.write_text(f"{value:.6f}")
        os.replace(tmp_path, self.timestamp_path)

    def wait_time(self) -> float:
        """Seconds until the next call may start (0 if it may start now)."""
        last_call = self._read_last_call()
        if last_call is None:
            return 0.0
        elapsed = self._clock() - last_call
        if elapsed < 0:
            # Clock went backwards; do not wait forever
            return 0.0
        return max(0.0, self.min_interval - elapsed)

    @contextmanager
    def slot(self) -> Generator[None, None, None]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a+") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                delay = self.wait_time()
                if delay > 0:
                    logger.debug(f"Rate limiter waiting {delay:.2f}s before API call")
                    self._sleep(delay)
                self._write_last_call(self._clock())
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def create_rate_limiter(
    enabled: bool, lock_path: str | Path, min_interval: float
) -> RateLimiter:
    """
    Factory used by CLI and API wiring.

    Args:
        enabled: Whether to throttle at all
        lock_path: Lock file shared by all processes on the host
        min_interval: Minimum seconds between calls

    Returns:
        RateLimiter implementation
    """
    if not enabled or min_interval <= 0:
        return NullRateLimiter()
    return FileLockRateLimiter(lock_path, min_interval=min_interval)
