"""Agents package: provides the agent registry, base class, and LLM-backed extraction agents."""

from .base import BaseAgent, ContentBlock, ExtractionRequest, ExtractionResult  # noqa: F401
from .groq_agent import GroqStatementAgent  # noqa: F401
from .registry import AgentRegistry  # noqa: F401
