"""Tests for agent runners, with subprocess and SDK calls faked."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import anthropic
import openai
import pytest

from agentfactory.config.settings import FactorySettings
from agentfactory.llm import create_runner
from agentfactory.llm.base import AgentError, AgentRunner
from agentfactory.llm.providers.anthropic import AnthropicRunner
from agentfactory.llm.providers.mock import MOCK_RESPONSE, MockRunner
from agentfactory.llm.providers.openai import OpenAIRunner
from agentfactory.llm.providers.opencode import OpencodeRunner

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the agent")


def fake_agent(tmp_path: Path, body: str) -> str:
    """Write an executable stand-in for the opencode binary."""
    script = tmp_path / "fake-opencode"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


class TestCreateRunner:
    def test_mock(self, settings: FactorySettings) -> None:
        runner = create_runner(settings)
        assert isinstance(runner, MockRunner)
        assert isinstance(runner, AgentRunner)

    def test_opencode_default(self, settings: FactorySettings) -> None:
        settings = settings.model_copy(update={"mock_llm": False, "model": "opencode/glm-4.7-free"})
        runner = create_runner(settings)
        assert isinstance(runner, OpencodeRunner)
        assert runner.model == "opencode/glm-4.7-free"

    def test_openai(self, settings: FactorySettings) -> None:
        settings = settings.model_copy(
            update={"mock_llm": False, "backend": "openai", "base_url": "http://localhost:8080/v1"}
        )
        assert isinstance(create_runner(settings), OpenAIRunner)

    def test_anthropic(self, settings: FactorySettings) -> None:
        settings = settings.model_copy(
            update={"mock_llm": False, "backend": "anthropic", "anthropic_api_key": "sk-ant-test"}
        )
        assert isinstance(create_runner(settings), AnthropicRunner)

    def test_anthropic_without_key(self, settings: FactorySettings) -> None:
        settings = settings.model_copy(
            update={"mock_llm": False, "backend": "anthropic", "anthropic_api_key": None}
        )
        with pytest.raises(ValueError, match="Anthropic API key"):
            create_runner(settings)


@pytest.mark.asyncio
class TestMockRunner:
    async def test_canned_reply(self, tmp_path: Path) -> None:
        runner = MockRunner()
        result = await runner.run("hello", tmp_path)
        assert result.output == MOCK_RESPONSE
        assert runner.calls == ["hello"]


class TestOpencodeCommand:
    def test_command_includes_model(self) -> None:
        runner = OpencodeRunner(model="opencode/glm-4.7-free")
        assert runner.build_command() == ["opencode", "run", "-m", "opencode/glm-4.7-free"]

    def test_command_without_model(self) -> None:
        assert OpencodeRunner(model="", binary="oc").build_command() == ["oc", "run"]

    def test_env_sets_base_url(self) -> None:
        env = OpencodeRunner(model="m", base_url="http://localhost:1234/v1").build_env()
        assert env["OPENAI_BASE_URL"] == "http://localhost:1234/v1"
        assert env.get("PATH") == os.environ.get("PATH")


@posix_only
@pytest.mark.asyncio
class TestOpencodeRun:
    async def test_prompt_on_stdin(self, tmp_path: Path) -> None:
        binary = fake_agent(tmp_path, 'read line\necho "got: $line"\npwd > where.txt\n')
        workspace = tmp_path / "ws"
        workspace.mkdir()

        result = await OpencodeRunner(model="m", binary=binary).run("build it\n", workspace)

        assert result.output == "got: build it"
        assert (workspace / "where.txt").is_file()
        assert result.exit_code == 0

    async def test_nonzero_exit(self, tmp_path: Path) -> None:
        binary = fake_agent(tmp_path, "cat >/dev/null\necho 'rate limited' >&2\nexit 3\n")

        with pytest.raises(AgentError) as exc_info:
            await OpencodeRunner(model="m", binary=binary).run("x", tmp_path)

        assert exc_info.value.exit_code == 3
        assert "rate limited" in str(exc_info.value)

    async def test_missing_binary(self, tmp_path: Path) -> None:
        runner = OpencodeRunner(model="m", binary=str(tmp_path / "nope"))
        with pytest.raises(AgentError, match="not found"):
            await runner.run("x", tmp_path)

    async def test_timeout(self, tmp_path: Path) -> None:
        binary = fake_agent(tmp_path, "sleep 5\n")
        runner = OpencodeRunner(model="m", binary=binary, timeout=0.2)
        with pytest.raises(AgentError, match="timed out"):
            await runner.run("x", tmp_path)


def openai_client(create: Any) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.mark.asyncio
class TestOpenAIRunner:
    async def test_maps_response(self, tmp_path: Path) -> None:
        seen: dict[str, Any] = {}

        async def create(**kwargs: Any) -> SimpleNamespace:
            seen.update(kwargs)
            return SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="  plan ready  "))],
                usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3),
            )

        runner = OpenAIRunner(model="gpt-4o", api_key="sk-test")
        runner._client = openai_client(create)  # type: ignore[assignment]

        result = await runner.run("draft a plan", tmp_path)

        assert result.output == "plan ready"
        assert result.usage.input_tokens == 7
        assert result.usage.output_tokens == 3
        assert seen["model"] == "gpt-4o"
        assert seen["messages"][-1] == {"role": "user", "content": "draft a plan"}
        assert str(tmp_path) in seen["messages"][0]["content"]

    async def test_sdk_error_becomes_agent_error(self, tmp_path: Path) -> None:
        async def create(**kwargs: Any) -> SimpleNamespace:
            raise openai.OpenAIError("connection reset")

        runner = OpenAIRunner(model="gpt-4o")
        runner._client = openai_client(create)  # type: ignore[assignment]

        with pytest.raises(AgentError, match="connection reset") as exc_info:
            await runner.run("x", tmp_path)
        assert exc_info.value.backend == "openai"

    async def test_empty_choices(self, tmp_path: Path) -> None:
        async def create(**kwargs: Any) -> SimpleNamespace:
            return SimpleNamespace(choices=[], usage=None)

        runner = OpenAIRunner(model="gpt-4o")
        runner._client = openai_client(create)  # type: ignore[assignment]

        with pytest.raises(AgentError, match="Empty response"):
            await runner.run("x", tmp_path)


@pytest.mark.asyncio
class TestAnthropicRunner:
    async def test_joins_text_blocks(self, tmp_path: Path) -> None:
        async def create(**kwargs: Any) -> SimpleNamespace:
            assert kwargs["max_tokens"] > 0
            return SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="VERIFICATION"),
                    SimpleNamespace(type="tool_use", id="tu_1"),
                    SimpleNamespace(type="text", text="_PASSED"),
                ],
                usage=SimpleNamespace(input_tokens=11, output_tokens=4),
            )

        runner = AnthropicRunner(model="claude-sonnet-4-5", api_key="sk-ant-test")
        runner._client = SimpleNamespace(messages=SimpleNamespace(create=create))  # type: ignore[assignment]

        result = await runner.run("verify", tmp_path)

        assert result.output == "VERIFICATION_PASSED"
        assert result.usage.total == 15

    async def test_sdk_error_becomes_agent_error(self, tmp_path: Path) -> None:
        async def create(**kwargs: Any) -> SimpleNamespace:
            raise anthropic.AnthropicError("overloaded")

        runner = AnthropicRunner(model="claude-sonnet-4-5", api_key="sk-ant-test")
        runner._client = SimpleNamespace(messages=SimpleNamespace(create=create))  # type: ignore[assignment]

        with pytest.raises(AgentError, match="overloaded") as exc_info:
            await runner.run("x", tmp_path)
        assert exc_info.value.backend == "anthropic"
