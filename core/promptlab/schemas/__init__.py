"""Schema definitions for prompts, model configs and attachments."""

from promptlab.schemas.prompt import (
    Attachment,
    ChatMessage,
    GenerationConfig,
    LLMConfig,
    PromptVersion,
    TokenUsage,
)

__all__ = [
    "Attachment",
    "ChatMessage",
    "GenerationConfig",
    "LLMConfig",
    "PromptVersion",
    "TokenUsage",
]
