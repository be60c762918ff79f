"""Anthropic messages API runner (text-only)."""

from __future__ import annotations

import time
from pathlib import Path

import anthropic

from agentfactory.llm.base import AgentError, AgentResult, Usage

MAX_TOKENS = 8192
SYSTEM_PROMPT = "You are a software engineering agent. The working directory is {cwd}."


class AnthropicRunner:
    """Agent runner using the Anthropic SDK."""

    def __init__(self, model: str, api_key: str, timeout: float = 1800) -> None:
        self.model = model
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout if timeout > 0 else None,
        )

    async def run(self, prompt: str, cwd: Path) -> AgentResult:
        start = time.monotonic()
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=SYSTEM_PROMPT.format(cwd=cwd),
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise AgentError(str(e), backend="anthropic", exit_code=e.status_code) from e
        except anthropic.AnthropicError as e:
            raise AgentError(str(e), backend="anthropic") from e

        content = "".join(block.text for block in response.content if block.type == "text")

        return AgentResult(
            output=content.strip(),
            duration=time.monotonic() - start,
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
        )
