"""Agent runner protocol and shared result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

# Contractual markers scanned for in agent output.
COMPLETION_MARKER = "<promise>COMPLETE</promise>"
APPROVAL_SENTINEL = "NO_CRITICAL_ISSUES"
PASS_SENTINEL = "VERIFICATION_PASSED"


class AgentError(RuntimeError):
    """Raised when a single agent invocation fails.

    Enclosing retry loops catch this; it never ends a run by itself.
    """

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.exit_code = exit_code


@dataclass
class Usage:
    """Token usage."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class AgentResult:
    """Output of one successful agent invocation."""

    output: str
    exit_code: int = 0
    duration: float = 0.0
    usage: Usage = field(default_factory=Usage)


@runtime_checkable
class AgentRunner(Protocol):
    """Sends a prompt to the coding agent, working in ``cwd``."""

    model: str

    async def run(self, prompt: str, cwd: Path) -> AgentResult: ...
