"""Generation service abstraction for pluggable model backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from promptlab.schemas.prompt import (
    Attachment,
    ChatMessage,
    GenerationConfig,
    LLMConfig,
    TokenUsage,
)


@dataclass
class GenerationRequest:
    """Everything a backend needs for one call.

    Exactly one of ``prompt`` (single-turn) or ``messages`` (chat history)
    is set.
    """

    model: LLMConfig
    prompt: str | None = None
    messages: list[ChatMessage] | None = None
    system_instruction: str = ""
    config: GenerationConfig = field(default_factory=GenerationConfig)
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def is_chat(self) -> bool:
        return self.messages is not None


@dataclass
class GenerationResult:
    """Response from a generation call."""

    text: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    raw_response: object = None


class GenerationService(ABC):
    """
    Abstract generation backend - plug in any model provider.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Token counting

    Failures are raised as exceptions; the workflow executor records the
    exception message verbatim in the run log.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Run one generation call.

        Args:
            request: Model config, prompt text or chat history, system
                instruction, sampling parameters and attachments

        Returns:
            GenerationResult with the text and token usage
        """
        pass
