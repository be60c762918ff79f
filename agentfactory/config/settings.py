"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings

from agentfactory.workspace import Scenario

LogLevel = Literal["debug", "info", "warn", "error"]
Backend = Literal["opencode", "openai", "anthropic"]


class FactorySettings(BaseSettings):
    """Factory configuration from environment variables and .env files."""

    model_config = {"env_prefix": "FACTORY_", "env_file": ".env", "extra": "ignore"}

    # Agent invocation
    model: str = "opencode/glm-4.7-free"
    base_url: str | None = None
    backend: Backend = "opencode"
    opencode_binary: str = "opencode"
    agent_timeout: int = 1800
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None

    # Retry bounds
    planning_cycles: int = 3
    verification_cycles: int = 3
    worker_iterations: int = 10
    timeout: int = 3600
    max_cost: float | None = None

    # Paths
    project_dir: str = "target_project"
    prompts_dir: str = "prompts"
    runs_dir: str = ".factory/runs"
    log_file: str | None = None

    # Behaviour
    log_level: LogLevel = "info"
    quiet: bool = False
    dry_run: bool = False
    plan_only: bool = False
    mock_llm: bool = False
    verbose_planning: bool = False
    force_scenario: Scenario | None = None

    @model_validator(mode="after")
    def check_values(self) -> FactorySettings:
        # Accept the standard unprefixed variables as fallback
        if not self.base_url:
            self.base_url = os.environ.get("OPENAI_BASE_URL") or None
        if not self.openai_api_key:
            self.openai_api_key = os.environ.get("OPENAI_API_KEY") or None
        if not self.anthropic_api_key:
            self.anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY") or None

        for name in ("planning_cycles", "verification_cycles", "timeout", "agent_timeout"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.worker_iterations < 1:
            raise ValueError("worker_iterations must be >= 1")
        if self.max_cost is not None and self.max_cost <= 0:
            raise ValueError("max_cost must be positive when set")

        if not self.mock_llm:
            if self.backend == "openai" and not self.openai_api_key and not self.base_url:
                raise ValueError(
                    "The openai backend needs FACTORY_OPENAI_API_KEY (or OPENAI_API_KEY) "
                    "or a custom base URL"
                )
            if self.backend == "anthropic" and not self.anthropic_api_key:
                raise ValueError(
                    "The anthropic backend needs FACTORY_ANTHROPIC_API_KEY (or ANTHROPIC_API_KEY)"
                )
        return self

    def secrets(self) -> dict[str, str]:
        """Known secret values, for output redaction."""
        found: dict[str, str] = {}
        if self.openai_api_key:
            found["OPENAI_API_KEY"] = self.openai_api_key
        if self.anthropic_api_key:
            found["ANTHROPIC_API_KEY"] = self.anthropic_api_key
        return found


def load_settings(**overrides: object) -> FactorySettings:
    """Load settings with optional overrides (useful for CLI args)."""
    return FactorySettings(**{k: v for k, v in overrides.items() if v is not None})  # type: ignore[arg-type]
