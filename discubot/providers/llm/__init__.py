"""
LLM providers for Discubot.

Usage:
    from discubot.providers.llm import AnthropicLLMProvider, Message

    provider = AnthropicLLMProvider(api_key="sk-ant-...")
    response = await provider.complete([Message.user("Summarize ...")])
"""

from .anthropic import DEFAULT_ANTHROPIC_MODEL, AnthropicLLMProvider
from .base import (
    BaseLLMProvider,
    LLMConfig,
    LLMProvider,
    LLMResponse,
    Message,
    MessageRole,
    is_transient_provider_error,
    to_analysis_error,
)
from .openai import OpenAILLMProvider

__all__ = [
    "DEFAULT_ANTHROPIC_MODEL",
    "AnthropicLLMProvider",
    "BaseLLMProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLMProvider",
    "is_transient_provider_error",
    "to_analysis_error",
]
