"""Base agent abstraction for statement extraction agents.

This module defines the provider-neutral extraction request (a system instruction plus text,
image and document content blocks) and the abstract base class every LLM-backed agent
implements.
"""

from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel, Field

from statement_ingest.core.settings import Settings


class ContentBlock(BaseModel):
    """One part of the user message sent to the extraction call."""

    type: Literal["text", "image", "document"]
    text: str | None = None
    media_type: str | None = None
    data: bytes | None = None


class ExtractionRequest(BaseModel):
    """Everything an agent needs to run one extraction call."""

    system: str
    blocks: list[ContentBlock] = Field(default_factory=list)
    max_tokens: int = 4096
    temperature: float = 0.0


class ExtractionResult(BaseModel):
    """Raw text returned by the extraction call plus token accounting."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str | None = None


class BaseAgent(ABC):
    """Abstract base class for all extraction agents."""

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: "Settings") -> "BaseAgent":
        """Build an agent instance from application settings."""

    @abstractmethod
    def complete(self, request: ExtractionRequest) -> ExtractionResult:
        """Run the extraction call and return its raw text."""
