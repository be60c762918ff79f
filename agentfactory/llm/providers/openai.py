"""OpenAI-compatible chat completion runner.

Text-only: the model cannot touch the workspace, so this backend suits the
planning roles (architect, critic) or endpoints that wrap a tool-using agent
behind the chat completions API.
"""

from __future__ import annotations

import time
from pathlib import Path

import openai

from agentfactory.llm.base import AgentError, AgentResult, Usage

SYSTEM_PROMPT = "You are a software engineering agent. The working directory is {cwd}."


class OpenAIRunner:
    """Agent runner using the OpenAI SDK (any OpenAI-compatible base URL)."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 1800,
    ) -> None:
        self.model = model
        self._client = openai.AsyncOpenAI(
            # Local endpoints often accept any key.
            api_key=api_key or "not-needed",
            base_url=base_url,
            timeout=timeout if timeout > 0 else None,
        )

    async def run(self, prompt: str, cwd: Path) -> AgentResult:
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(cwd=cwd)},
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.APIStatusError as e:
            raise AgentError(str(e), backend="openai", exit_code=e.status_code) from e
        except openai.OpenAIError as e:
            raise AgentError(str(e), backend="openai") from e

        if not response.choices:
            raise AgentError("Empty response from model", backend="openai")

        usage = Usage()
        if response.usage:
            usage = Usage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
            )

        return AgentResult(
            output=(response.choices[0].message.content or "").strip(),
            duration=time.monotonic() - start,
            usage=usage,
        )
