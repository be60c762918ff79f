"""Global run timeout clock."""

from __future__ import annotations

import time
from enum import StrEnum


class Phase(StrEnum):
    INIT = "INIT"
    DETECT = "DETECT"
    PLAN = "PLAN"
    EXECUTE = "EXECUTE"
    SHUTDOWN = "SHUTDOWN"
    DONE = "DONE"


class Deadline:
    """Wall-clock budget for a whole run.

    A ``total_seconds`` of 0 means the run has no timeout.
    """

    def __init__(self, total_seconds: int) -> None:
        self.total_seconds = total_seconds
        self._start = time.monotonic()
        self._deadline = self._start + total_seconds if total_seconds > 0 else None
        self._current_phase = Phase.INIT

    @property
    def current_phase(self) -> Phase:
        return self._current_phase

    @property
    def unlimited(self) -> bool:
        return self._deadline is None

    def advance_phase(self, phase: Phase) -> None:
        self._current_phase = phase

    def elapsed(self) -> float:
        """Seconds elapsed since start."""
        return time.monotonic() - self._start

    def remaining(self) -> float:
        """Seconds remaining, or ``inf`` when the run is unlimited."""
        if self._deadline is None:
            return float("inf")
        return max(0.0, self._deadline - time.monotonic())

    def is_expired(self) -> bool:
        """True if the global deadline has passed."""
        return self._deadline is not None and time.monotonic() >= self._deadline

    def format_remaining(self) -> str:
        """Human-readable remaining time."""
        if self._deadline is None:
            return "no limit"
        secs = self.remaining()
        if secs <= 0:
            return "0:00"
        minutes = int(secs // 60)
        seconds = int(secs % 60)
        return f"{minutes}:{seconds:02d}"


def format_duration(seconds: float) -> str:
    """Format a duration like ``45s``, ``2m``, ``2m 5s``."""
    whole = int(round(seconds))
    if whole < 60:
        return f"{whole}s"
    minutes, secs = divmod(whole, 60)
    return f"{minutes}m {secs}s" if secs else f"{minutes}m"
