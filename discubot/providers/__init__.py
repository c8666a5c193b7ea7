"""
Discubot providers.

External model services used by the analysis layer.
"""

from .llm import AnthropicLLMProvider, LLMProvider, OpenAILLMProvider

__all__ = [
    "AnthropicLLMProvider",
    "LLMProvider",
    "OpenAILLMProvider",
]
