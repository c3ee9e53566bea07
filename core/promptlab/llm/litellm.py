"""LiteLLM-backed generation service.

One service talks to every configured backend through LiteLLM's unified
``acompletion`` interface:

- ``gemini``             -> ``gemini/<model_id>`` with the Google API key
- ``openai-compatible``  -> ``openai/<model_id>`` against ``base_url``
"""

from __future__ import annotations

import logging
from typing import Any

import litellm

from promptlab.config import get_api_key
from promptlab.errors import GenerationError
from promptlab.llm.attachments import user_content
from promptlab.llm.provider import GenerationRequest, GenerationResult, GenerationService
from promptlab.schemas.prompt import ChatMessage, LLMConfig, TokenUsage

logger = logging.getLogger(__name__)

_CHAT_ROLES = {"user": "user", "model": "assistant"}


def _estimate_tokens(text: str) -> int:
    """Rough token count used when a provider reports no usage."""
    return (len(text) + 3) // 4


class LiteLLMGenerationService(GenerationService):
    """
    Generation service for Gemini and OpenAI-compatible endpoints.

    Example:
        service = LiteLLMGenerationService()
        result = await service.generate(GenerationRequest(model=config, prompt="Hi"))
    """

    def __init__(self, timeout: float | None = None, extra_kwargs: dict[str, Any] | None = None):
        """
        Args:
            timeout: Per-call timeout in seconds passed to LiteLLM
            extra_kwargs: Additional keyword arguments for every acompletion call
        """
        self.timeout = timeout
        self.extra_kwargs = extra_kwargs or {}

    def _resolve_route(self, config: LLMConfig) -> tuple[str, dict[str, Any]]:
        """Map an LLMConfig to a LiteLLM model string and connection kwargs."""
        if config.provider == "openai-compatible":
            if not config.base_url or not config.api_key:
                raise GenerationError("Custom endpoints require both a base URL and an API key")
            return f"openai/{config.model_id}", {
                "api_base": config.base_url.rstrip("/"),
                "api_key": config.api_key,
            }

        api_key = config.api_key or get_api_key("gemini")
        if not api_key:
            raise GenerationError("Missing Google API key")
        return f"gemini/{config.model_id}", {"api_key": api_key}

    def _build_messages(self, request: GenerationRequest) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})

        if request.messages is None:
            messages.append(
                {"role": "user", "content": user_content(request.prompt or "", request.attachments)}
            )
            return messages

        history: list[ChatMessage] = request.messages
        for index, msg in enumerate(history):
            content: Any = msg.content
            # Attachments ride on the last turn, and only if the user sent it
            if request.attachments and index == len(history) - 1 and msg.role == "user":
                content = user_content(msg.content, request.attachments)
            messages.append({"role": _CHAT_ROLES[msg.role], "content": content})
        return messages

    def _sampling_kwargs(self, request: GenerationRequest) -> dict[str, Any]:
        config = request.config
        kwargs: dict[str, Any] = {
            "temperature": config.temperature,
            "top_p": config.top_p,
        }
        if request.model.provider == "gemini":
            kwargs["top_k"] = config.top_k
        if config.max_output_tokens:
            kwargs["max_tokens"] = config.max_output_tokens
        if config.response_mime_type == "application/json":
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        model, connection = self._resolve_route(request.model)
        messages = self._build_messages(request)

        kwargs: dict[str, Any] = {**connection, **self._sampling_kwargs(request)}
        kwargs.update(self.extra_kwargs)
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            response = await litellm.acompletion(model=model, messages=messages, **kwargs)
        except Exception as e:
            logger.error(f"LLM generation error ({model}): {e}", extra={"model": model})
            raise

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        if not usage:
            prompt_text = "".join(str(m["content"]) for m in messages)
            input_tokens = _estimate_tokens(prompt_text)
            output_tokens = _estimate_tokens(text)
        total_tokens = getattr(usage, "total_tokens", 0) or input_tokens + output_tokens

        return GenerationResult(
            text=text,
            token_usage=TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=total_tokens,
            ),
            model=model,
            raw_response=response,
        )
