"""
LLM Provider Protocol for Discubot.

Defines the narrow interface the AI analysis service uses to reach a
language model, plus the translation of SDK failures into AnalysisError
with a meaningful ``retryable`` flag.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from discubot.errors import AnalysisError

logger = logging.getLogger(__name__)

# SDK exception class names that always indicate a transient failure
_TRANSIENT_ERROR_NAMES = frozenset({"APITimeoutError", "APIConnectionError", "RateLimitError", "InternalServerError"})


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(MessageRole.USER, content)


@dataclass
class LLMResponse:
    """
    Text returned by one completion, normalised across SDKs.

    ``usage`` always uses the keys ``input_tokens`` and ``output_tokens``
    whatever the SDK calls them.
    """

    content: str
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str = "stop"
    provider: str = ""

    @property
    def total_tokens(self) -> int:
        return sum(self.usage.get(k, 0) for k in ("input_tokens", "output_tokens"))


@dataclass
class LLMConfig:
    """Per-call knobs. ``model=None`` uses the provider's default model."""

    model: str | None = None
    temperature: float = 0.2
    max_tokens: int = 2048
    # "json" asks for JSON mode where the SDK supports it
    response_format: str | None = None


@runtime_checkable
class LLMProvider(Protocol):
    """What the analysis service needs from a model: a name and one completion call."""

    @property
    def name(self) -> str:
        ...

    async def complete(self, messages: list[Message], config: LLMConfig | None = None) -> LLMResponse:
        ...


class BaseLLMProvider(ABC):
    """
    Shared plumbing for SDK-backed providers.

    Subclasses build their SDK client and map one request/response pair;
    the base creates the client lazily (so importing a provider never
    needs its SDK) and turns every SDK failure into an AnalysisError.
    SDK-level retries are disabled: the analysis service owns retrying.
    """

    def __init__(self, api_key: str, default_model: str, timeout: float = 60.0):
        self._api_key = api_key
        self.default_model = default_model
        self._timeout = timeout
        self._client: Any = None

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def _build_client(self) -> Any:
        ...

    @abstractmethod
    async def _generate(self, client: Any, messages: list[Message], config: LLMConfig) -> LLMResponse:
        ...

    async def complete(
        self,
        messages: list[Message],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """
        Run one completion.

        Raises:
            AnalysisError: retryable for timeouts, connection errors, 429, 5xx
        """
        if self._client is None:
            self._client = self._build_client()
        try:
            return await self._generate(self._client, messages, config or LLMConfig())
        except Exception as e:
            logger.error(f"[ai] {self.name} completion error: {type(e).__name__}: {e}")
            raise to_analysis_error(e, self.name) from e

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', model='{self.default_model}')"


def is_transient_provider_error(error: BaseException) -> bool:
    """Timeouts, connection failures, 429 and 5xx are worth retrying."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if type(error).__name__ in _TRANSIENT_ERROR_NAMES:
        return True
    status = getattr(error, "status_code", None)
    return isinstance(status, int) and (status == 429 or status >= 500)


def to_analysis_error(error: BaseException, provider: str) -> AnalysisError:
    """Wrap an SDK exception, keeping whether it is worth retrying."""
    if isinstance(error, AnalysisError):
        return error
    return AnalysisError(
        f"{type(error).__name__}: {error}",
        retryable=is_transient_provider_error(error),
        source=provider,
        status_code=getattr(error, "status_code", None),
    )


__all__ = [
    "BaseLLMProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "MessageRole",
    "is_transient_provider_error",
    "to_analysis_error",
]
