"""Base agent abstraction for statement normalization agents.

This module defines the abstract base class for all agents that turn document analysis output
into the bank statement JSON shape.
"""

from abc import ABC, abstractmethod
from typing import Any

from statement_api.core.settings import Settings


class BaseAgent(ABC):
    """Abstract base class for all agents."""

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings) -> "BaseAgent":
        """Build the agent and its backend client from application settings."""

    @abstractmethod
    async def normalize(self, analysis: dict[str, Any], file_name: str) -> dict[str, Any]:
        """Return statement JSON (``fileName`` plus ``accounts``) extracted from an analysis result."""
