"""
Prompt Schema - Reusable prompt versions and the model configs they run on.

These records come from the workbench's project/version store. The workflow
engine only reads them: a Generate node references a PromptVersion by id, and
the PromptVersion references an LLMConfig by id.

Stored documents use the editor's camelCase keys (``systemInstruction``,
``modelId`` ...); snake_case names are accepted as well.
"""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

CAMEL_CASE_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "protected_namespaces": (),
    "extra": "ignore",
}


class GenerationConfig(BaseModel):
    """Sampling parameters stored with a prompt version."""

    model_config = CAMEL_CASE_CONFIG

    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int | None = None
    response_mime_type: Literal["text/plain", "application/json"] = "text/plain"


class ChatMessage(BaseModel):
    """One turn of a chat-style prompt."""

    model_config = CAMEL_CASE_CONFIG

    id: str = ""
    role: Literal["user", "model"] = "user"
    content: str = ""
    is_error: bool = False


class PromptVersion(BaseModel):
    """
    An immutable, versioned prompt definition.

    ``content`` is the primary template for text prompts; chat prompts carry
    their turns in ``messages``. For workflow versions ``content`` holds the
    JSON-serialized graph (see ``promptlab.workflow.graph.WorkflowGraph``).
    """

    model_config = CAMEL_CASE_CONFIG

    id: str
    project_id: str = ""
    parent_id: str | None = None
    name: str = ""
    type: Literal["text", "chat", "workflow"] = "text"
    system_instruction: str = ""
    content: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)
    model: str = Field(default="", description="Id of the LLMConfig this prompt runs on")
    config: GenerationConfig | None = None
    notes: str | None = None

    @property
    def is_chat(self) -> bool:
        return bool(self.messages)


LLMProviderName = Literal["gemini", "openai-compatible"]


class LLMConfig(BaseModel):
    """Connection details for one model backend."""

    model_config = CAMEL_CASE_CONFIG

    id: str
    name: str = ""
    provider: LLMProviderName = "gemini"
    api_key: str | None = None
    base_url: str | None = None
    model_id: str
    is_default: bool = False


class Attachment(BaseModel):
    """A file attached to a run; ``data`` is a base64 data URI."""

    model_config = CAMEL_CASE_CONFIG

    id: str = ""
    name: str
    type: Literal["image", "text", "audio", "video"]
    mime_type: str = ""
    data: str


class TokenUsage(BaseModel):
    model_config = CAMEL_CASE_CONFIG

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
