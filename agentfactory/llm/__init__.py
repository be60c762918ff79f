"""Agent runner abstraction and factory."""

from agentfactory.config.settings import FactorySettings
from agentfactory.llm.base import AgentRunner
from agentfactory.llm.providers.anthropic import AnthropicRunner
from agentfactory.llm.providers.mock import MockRunner
from agentfactory.llm.providers.openai import OpenAIRunner
from agentfactory.llm.providers.opencode import OpencodeRunner


def create_runner(settings: FactorySettings) -> AgentRunner:
    """Create an agent runner based on settings."""
    if settings.mock_llm:
        return MockRunner(model=settings.model)

    if settings.backend == "opencode":
        return OpencodeRunner(
            model=settings.model,
            base_url=settings.base_url,
            binary=settings.opencode_binary,
            timeout=settings.agent_timeout,
        )
    elif settings.backend == "openai":
        return OpenAIRunner(
            model=settings.model,
            api_key=settings.openai_api_key,
            base_url=settings.base_url,
            timeout=settings.agent_timeout,
        )
    elif settings.backend == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError("Anthropic API key required but not set (FACTORY_ANTHROPIC_API_KEY)")
        return AnthropicRunner(
            model=settings.model,
            api_key=settings.anthropic_api_key,
            timeout=settings.agent_timeout,
        )
    else:
        raise ValueError(f"Unknown backend: {settings.backend}")
