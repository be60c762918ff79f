"""Offline runner for ``--mock-llm``."""

from __future__ import annotations

from pathlib import Path

from agentfactory.llm.base import AgentResult

MOCK_RESPONSE = "MOCK_RESPONSE"


class MockRunner:
    """Returns a fixed reply without contacting any model."""

    def __init__(self, model: str = "mock", response: str = MOCK_RESPONSE) -> None:
        self.model = model
        self.response = response
        self.calls: list[str] = []

    async def run(self, prompt: str, cwd: Path) -> AgentResult:
        self.calls.append(prompt)
        return AgentResult(output=self.response)
