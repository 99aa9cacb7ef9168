"""Timing and byte counters for a client transfer."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from .logger import Logger


@dataclass
class ClientStats:
    """Counters collected while a file is being received."""

    logger: Optional[Logger] = None
    enabled: bool = True
    start_time: float = 0.0
    end_time: Optional[float] = None
    file_bytes_received: int = 0

    def stop(self) -> None:
        """Record the end of the transfer; disables the stats if the clock fails."""
        try:
            self.end_time = time.monotonic()
        except OSError as exc:
            self._disable("Failed to get end time. %s", exc)

    def duration(self) -> float:
        """Seconds from the start to the recorded end, or to now if not stopped."""
        if not self.enabled:
            raise ValueError("stats are disabled")
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    def _disable(self, fmt: str, exc: Exception) -> None:
        if self.logger is not None:
            self.logger.warn(fmt, exc)
            self.logger.warn("Stats will be disabled.")
        self.enabled = False


def start_stats(logger: Optional[Logger] = None) -> ClientStats:
    """Create stats whose clock starts now."""
    stats = ClientStats(logger=logger)
    try:
        stats.start_time = time.monotonic()
    except OSError as exc:
        stats._disable("Failed to get start time. %s", exc)
    return stats