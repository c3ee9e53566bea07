"""Generation service abstraction."""

from promptlab.llm.litellm import LiteLLMGenerationService
from promptlab.llm.mock import MockGenerationService
from promptlab.llm.provider import GenerationRequest, GenerationResult, GenerationService

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "GenerationService",
    "LiteLLMGenerationService",
    "MockGenerationService",
]
