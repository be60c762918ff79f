"""Exception taxonomy for a factory run.

Every error that can end a run derives from ``FactoryError`` and carries the
process exit code the orchestrator should use.
"""

from __future__ import annotations

from enum import StrEnum


class FactoryError(Exception):
    """Base class for errors that terminate a run."""

    exit_code: int = 1


class PlanningExhausted(FactoryError):
    """No plan draft was approved within the configured planning cycles."""

    def __init__(self, cycles: int) -> None:
        super().__init__(f"Failed to approve plan after {cycles} cycle(s)")
        self.cycles = cycles


class VerificationExhausted(FactoryError):
    """A task never satisfied the verifier within its verification cycles."""

    def __init__(self, task_id: str, cycles: int) -> None:
        super().__init__(f"Task {task_id} failed verification after {cycles} cycle(s)")
        self.task_id = task_id
        self.cycles = cycles


class InvalidPlanError(FactoryError):
    """The persisted plan file does not validate."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid plan file: " + "; ".join(errors[:5]))
        self.errors = errors


class PersistenceError(FactoryError):
    """Writing or renaming the plan file failed. Never recoverable."""


class PromptError(FactoryError):
    """A prompt template is missing or could not be rendered."""


class CancelReason(StrEnum):
    SIGNAL = "signal"
    TIMEOUT = "timeout"
    BUDGET = "budget"


class RunCancelled(FactoryError):
    """Raised at a checkpoint once the run has been asked to stop."""

    def __init__(self, reason: CancelReason) -> None:
        super().__init__(f"Run cancelled ({reason.value})")
        self.reason = reason
        # A signal is a voluntary stop; a timeout or budget overrun is a failure.
        self.exit_code = 0 if reason is CancelReason.SIGNAL else 1
