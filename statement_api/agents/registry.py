"""Agent registry for managing agent types and instances.

This module provides a registry for agent classes, allowing dynamic registration and retrieval of agent implementations by name. The ``normalizer_agent`` setting picks the agent the pipeline uses.
"""

from typing import ClassVar

from statement_api.agents.base import BaseAgent
from statement_api.core.errors import ConfigurationError
from statement_api.core.settings import Settings


class AgentRegistry:
    """Registry for agent classes."""

    _registry: ClassVar[dict[str, type[BaseAgent]]] = {}

    @classmethod
    def register(cls, name: str, agent_cls: type[BaseAgent]) -> None:
        """Register an agent class with a given name."""
        cls._registry[name] = agent_cls

    @classmethod
    def get(cls, name: str) -> type[BaseAgent]:
        """Retrieve an agent class by name."""
        try:
            return cls._registry[name]
        except KeyError:
            msg = f"Unknown normalizer agent: {name}. Available: {', '.join(cls.available()) or 'none'}"
            raise ConfigurationError(msg, details={"agent": name}) from None

    @classmethod
    def available(cls) -> list[str]:
        """List all available agent names."""
        return list(cls._registry.keys())

    @classmethod
    def build(cls, settings: Settings) -> BaseAgent:
        """Instantiate the agent selected in settings."""
        return cls.get(settings.normalizer_agent).from_settings(settings)
