"""
Anthropic LLM Provider for Discubot.

Default provider for discussion analysis.
"""

from __future__ import annotations

from typing import Any

from .base import BaseLLMProvider, LLMConfig, LLMResponse, Message, MessageRole

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicLLMProvider(BaseLLMProvider):
    """Messages API provider; the system prompt travels outside the message list."""

    def __init__(self, api_key: str, model: str = DEFAULT_ANTHROPIC_MODEL, timeout: float = 60.0):
        super().__init__(api_key, model, timeout)

    @property
    def name(self) -> str:
        return "anthropic"

    def _build_client(self) -> Any:
        from anthropic import AsyncAnthropic

        return AsyncAnthropic(api_key=self._api_key, timeout=self._timeout, max_retries=0)

    async def _generate(self, client: Any, messages: list[Message], config: LLMConfig) -> LLMResponse:
        system = "\n\n".join(m.content for m in messages if m.role == MessageRole.SYSTEM)
        conversation = [m.to_dict() for m in messages if m.role != MessageRole.SYSTEM]

        response = await client.messages.create(
            model=config.model or self.default_model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            system=system,
            messages=conversation,
        )

        text = "".join(
            getattr(block, "text", "")
            for block in response.content or []
            if getattr(block, "type", "text") == "text"
        )
        return LLMResponse(
            content=text,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            finish_reason=response.stop_reason or "end_turn",
            provider=self.name,
        )
