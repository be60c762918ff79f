"""Per-run state shared by every phase, plus token and cost accounting."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from agentfactory.errors import CancelReason
from agentfactory.llm.base import Usage

if TYPE_CHECKING:
    from agentfactory.config.settings import FactorySettings
    from agentfactory.deadline import Deadline
    from agentfactory.llm.base import AgentResult, AgentRunner
    from agentfactory.logging.events import EventLog
    from agentfactory.planning.models import Plan
    from agentfactory.planning.store import PlanStore
    from agentfactory.prompts import PromptLibrary
    from agentfactory.shutdown import CancellationToken
    from agentfactory.ui.console import ConsoleUI

# Pricing per million tokens (input, output), approximate.
PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-haiku-4-5-20251001": (0.80, 4.0),
    "gpt-4o": (2.50, 10.0),
    "gpt-4o-mini": (0.15, 0.60),
}
FREE_MODEL_SUFFIX = "-free"
DEFAULT_PRICING = (3.0, 15.0)


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost of the given token counts for ``model``."""
    if model.endswith(FREE_MODEL_SUFFIX):
        return 0.0
    # Strip a "provider/" prefix, as used by opencode model ids.
    input_price, output_price = PRICING.get(model.rsplit("/", 1)[-1], DEFAULT_PRICING)
    return (input_tokens / 1_000_000 * input_price) + (output_tokens / 1_000_000 * output_price)


class TokenTracker:
    """Accumulates token usage across all agent calls."""

    def __init__(self, model: str = "") -> None:
        self.model = model
        self.input_tokens = 0
        self.output_tokens = 0

    def add(self, usage: Usage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> float:
        return estimate_cost(self.model, self.input_tokens, self.output_tokens)


@dataclass
class RunContext:
    """Everything a phase needs, passed explicitly instead of held globally.

    ``plan`` is the last plan snapshot known to be valid; the shutdown path
    flushes it to disk.
    """

    settings: FactorySettings
    workspace: Path
    store: PlanStore
    runner: AgentRunner
    prompts: PromptLibrary
    event_log: EventLog
    token: CancellationToken
    deadline: Deadline
    ui: ConsoleUI | None = None
    tokens: TokenTracker = field(default_factory=TokenTracker)
    plan: Plan | None = None

    async def invoke(self, prompt: str) -> AgentResult:
        """Run the agent in the workspace and account for its token usage.

        AgentError propagates to the calling loop.
        """
        result = await self.runner.run(prompt, self.workspace)
        self.tokens.add(result.usage)
        return result

    def checkpoint(self) -> None:
        """Raise RunCancelled if a signal, the deadline or the budget says stop."""
        if not self.token.cancelled:
            if self.deadline.is_expired():
                self.token.cancel(CancelReason.TIMEOUT)
            elif (
                self.settings.max_cost is not None
                and self.tokens.cost_usd >= self.settings.max_cost
            ):
                self.token.cancel(CancelReason.BUDGET)
        self.token.raise_if_cancelled()
