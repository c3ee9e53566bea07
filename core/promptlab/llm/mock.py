"""Deterministic generation service for tests and offline runs."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from promptlab.llm.provider import GenerationRequest, GenerationResult, GenerationService
from promptlab.schemas.prompt import TokenUsage


class MockGenerationService(GenerationService):
    """
    Returns canned text without calling any backend.

    Responses are chosen in this order:
    1. ``failures[model_id]`` / ``failures[prompt]`` - raise that message
    2. ``responder(request)`` if given
    3. ``responses`` popped in order, then ``default``

    Every request is recorded in ``requests``.
    """

    def __init__(
        self,
        default: str = "mock response",
        responses: list[str] | None = None,
        responder: Callable[[GenerationRequest], str] | None = None,
        failures: dict[str, str] | None = None,
        delay: float = 0.0,
    ):
        self.default = default
        self._responses = list(responses or [])
        self._responder = responder
        self._failures = failures or {}
        self._delay = delay
        self.requests: list[GenerationRequest] = []

    @property
    def prompts(self) -> list[str | None]:
        """Rendered prompt text of each recorded request."""
        return [r.prompt for r in self.requests]

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self._delay:
            await asyncio.sleep(self._delay)

        for key in (request.model.model_id, request.prompt):
            if key is not None and key in self._failures:
                raise RuntimeError(self._failures[key])

        if self._responder is not None:
            text = self._responder(request)
        elif self._responses:
            text = self._responses.pop(0)
        else:
            text = self.default

        prompt_len = len(request.prompt or "") + sum(len(m.content) for m in request.messages or [])
        input_tokens = (prompt_len + 3) // 4
        output_tokens = (len(text) + 3) // 4
        return GenerationResult(
            text=text,
            token_usage=TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            model=f"mock/{request.model.model_id}",
        )
