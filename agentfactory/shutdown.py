"""Cooperative shutdown: signals set a token that loops check at boundaries."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from types import FrameType
from typing import Any

from agentfactory.errors import CancelReason, RunCancelled

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """One-shot stop flag. The first reason recorded wins."""

    def __init__(self) -> None:
        self._reason: CancelReason | None = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.SIGNAL) -> None:
        if self._reason is None:
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise RunCancelled(self._reason)


class ShutdownController:
    """Routes SIGINT/SIGTERM into a cancellation token for the duration of a run.

    Uses the event loop's signal handlers where available and falls back to
    ``signal.signal`` (e.g. on Windows). Handlers are restored on exit.
    """

    def __init__(
        self,
        token: CancellationToken,
        on_signal: Callable[[signal.Signals], None] | None = None,
    ) -> None:
        self.token = token
        self.on_signal = on_signal
        self.received: signal.Signals | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_signals: list[signal.Signals] = []
        self._previous: dict[signal.Signals, Any] = {}

    def _handle(self, signum: signal.Signals) -> None:
        first = self.received is None
        self.received = signum
        self.token.cancel(CancelReason.SIGNAL)
        if first and self.on_signal is not None:
            self.on_signal(signum)

    def _handle_sync(self, signum: int, frame: FrameType | None) -> None:
        self._handle(signal.Signals(signum))

    def install(self) -> None:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        for sig in HANDLED_SIGNALS:
            if self._loop is not None:
                try:
                    self._loop.add_signal_handler(sig, self._handle, sig)
                    self._loop_signals.append(sig)
                    continue
                except (NotImplementedError, RuntimeError, ValueError):
                    pass
            try:
                self._previous[sig] = signal.signal(sig, self._handle_sync)
            except ValueError:
                # Not the main thread; signals cannot be routed here.
                continue

    def uninstall(self) -> None:
        if self._loop is not None:
            for sig in self._loop_signals:
                self._loop.remove_signal_handler(sig)
        self._loop_signals.clear()
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()

    def __enter__(self) -> ShutdownController:
        self.install()
        return self

    def __exit__(self, *exc: object) -> None:
        self.uninstall()
