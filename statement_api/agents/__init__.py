"""Agents package: provides agent registry, base class, and agent implementations for statement normalization."""

from .base import BaseAgent  # noqa: F401
from .registry import AgentRegistry  # noqa: F401
from .statement_agent import GroqStatementAgent  # noqa: F401
