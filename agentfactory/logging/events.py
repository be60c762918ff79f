"""JSONL event log and run directory management."""

from __future__ import annotations

import json
import os
import time
import uuid
from collections.abc import Callable
from contextlib import suppress
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from agentfactory.logging.redaction import Redactor

if TYPE_CHECKING:
    from agentfactory.config.settings import LogLevel
    from agentfactory.ui.console import ConsoleUI

LEVEL_PRIORITY: dict[str, int] = {"debug": 0, "info": 1, "warn": 2, "error": 3}


def _generate_run_id() -> str:
    """Generate a run ID in format YYYYMMDDTHHMMZ_<8hex>."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%MZ")
    hex_part = uuid.uuid4().hex[:8]
    return f"{ts}_{hex_part}"


class RunDir:
    """Manages the .factory/runs/<run_id>/ directory structure."""

    def __init__(self, base: Path | None = None, run_id: str | None = None) -> None:
        self.run_id = run_id or _generate_run_id()
        base = base or Path(".factory/runs")
        self.path = base / self.run_id
        self.path.mkdir(parents=True, exist_ok=True)

    @property
    def events_path(self) -> Path:
        return self.path / "events.jsonl"

    @property
    def summary_path(self) -> Path:
        return self.path / "summary.json"


class EventLog:
    """Leveled, append-only JSONL event log with an optional console sink."""

    def __init__(
        self,
        run_dir: RunDir,
        path: Path | None = None,
        level: LogLevel = "info",
        ui: ConsoleUI | None = None,
        quiet: bool = False,
        redactor: Redactor | None = None,
    ) -> None:
        self.run_dir = run_dir
        self.path = path or run_dir.events_path
        self.level = level
        self.ui = None if quiet else ui
        self._redactor = redactor or Redactor()
        self._seq = 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_APPEND | os.O_CREAT | os.O_WRONLY, 0o600)
        self._file = os.fdopen(fd, "a", encoding="utf-8")
        # Best effort; some filesystems may not support chmod semantics.
        with suppress(OSError):
            os.chmod(self.path, 0o600)

    def enabled(self, level: str) -> bool:
        return LEVEL_PRIORITY[level] >= LEVEL_PRIORITY[self.level]

    def emit(
        self,
        phase: str,
        event_type: str,
        summary: str,
        data: dict[str, Any] | None = None,
        level: LogLevel = "info",
        duration_ms: int | None = None,
    ) -> dict[str, Any] | None:
        """Append an event to the log. Returns the event dict, or None if filtered."""
        if not self.enabled(level):
            return None

        self._seq += 1
        event: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "run_id": self.run_dir.run_id,
            "phase": phase,
            "seq": self._seq,
            "level": level,
            "type": event_type,
            "summary": self._redactor.text(summary),
            "data": self._redactor.structured(data or {}),
        }
        if duration_ms is not None:
            event["duration_ms"] = duration_ms

        if not self._file.closed:
            self._file.write(json.dumps(event) + "\n")
            self._file.flush()

        if self.ui is not None:
            self.ui.log_event(
                level,
                event["summary"],
                data=event["data"],
                duration_ms=duration_ms,
                show_data=self.level == "debug",
            )
        return event

    def timer(self, phase: str, label: str) -> Callable[[], int]:
        """Start a timer; the returned function stops it and returns elapsed ms."""
        start = time.perf_counter()

        def stop() -> int:
            elapsed = int(round((time.perf_counter() - start) * 1000))
            self.emit(phase, "timing", label, level="debug", duration_ms=elapsed)
            return elapsed

        return stop

    def close(self) -> None:
        """Flush and close the log file."""
        if self._file.closed:
            return
        self._file.flush()
        self._file.close()
