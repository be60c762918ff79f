"""opencode CLI runner: the default, file-editing agent backend."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

from agentfactory.llm.base import AgentError, AgentResult

MAX_OUTPUT_LENGTH = 200_000


class OpencodeRunner:
    """Runs ``opencode run -m <model>`` with the prompt on stdin."""

    def __init__(
        self,
        model: str,
        base_url: str | None = None,
        binary: str = "opencode",
        timeout: float = 1800,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.binary = binary
        self.timeout = timeout

    def build_command(self) -> list[str]:
        cmd = [self.binary, "run"]
        if self.model:
            cmd += ["-m", self.model]
        return cmd

    def build_env(self) -> dict[str, str]:
        env = os.environ.copy()
        if self.base_url:
            env["OPENAI_BASE_URL"] = self.base_url
        return env

    async def run(self, prompt: str, cwd: Path) -> AgentResult:
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(),
                cwd=str(cwd),
                env=self.build_env(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise AgentError(f"Agent binary not found: {self.binary}", backend="opencode") from e
        except OSError as e:
            raise AgentError(f"Failed to start agent: {e}", backend="opencode") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")),
                timeout=self.timeout if self.timeout > 0 else None,
            )
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise AgentError(
                f"Agent timed out after {self.timeout}s", backend="opencode"
            ) from e

        output = stdout.decode("utf-8", errors="replace").strip()
        if len(output) > MAX_OUTPUT_LENGTH:
            output = output[-MAX_OUTPUT_LENGTH:]
        exit_code = proc.returncode or 0
        if exit_code != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise AgentError(
                f"opencode exited with code {exit_code}: {detail}",
                backend="opencode",
                exit_code=exit_code,
            )

        return AgentResult(output=output, exit_code=0, duration=time.monotonic() - start)
