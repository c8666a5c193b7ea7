"""
OpenAI LLM Provider for Discubot.

Alternative provider selected with ``DISCUBOT_LLM_PROVIDER=openai``.
"""

from __future__ import annotations

from typing import Any

from .base import BaseLLMProvider, LLMConfig, LLMResponse, Message


class OpenAILLMProvider(BaseLLMProvider):
    """Chat Completions provider; JSON mode when ``response_format == "json"``."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        organization: str | None = None,
        timeout: float = 60.0,
    ):
        super().__init__(api_key, model, timeout)
        self._organization = organization

    @property
    def name(self) -> str:
        return "openai"

    def _build_client(self) -> Any:
        from openai import AsyncOpenAI

        return AsyncOpenAI(
            api_key=self._api_key,
            organization=self._organization,
            timeout=self._timeout,
            max_retries=0,
        )

    async def _generate(self, client: Any, messages: list[Message], config: LLMConfig) -> LLMResponse:
        extra: dict[str, Any] = {}
        if config.response_format == "json":
            extra["response_format"] = {"type": "json_object"}

        response = await client.chat.completions.create(
            model=config.model or self.default_model,
            messages=[m.to_dict() for m in messages],
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            **extra,
        )

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={"input_tokens": usage.prompt_tokens, "output_tokens": usage.completion_tokens} if usage else {},
            finish_reason=choice.finish_reason or "stop",
            provider=self.name,
        )
