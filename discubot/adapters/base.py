"""
Source Adapter contract for Discubot.

A source adapter normalizes one kind of inbound discussion event into a
ParsedDiscussion and talks back to the source (thread fetch, reply, status
marker). The set of sources is closed (SourceType); adapters are resolved
through the registry in ``discubot.adapters.registry``.

Contract:
    parse_incoming   raise MalformedInputError for irrelevant/invalid payloads,
                     a retryable error when a dependency needed to resolve the
                     payload is temporarily unavailable
    fetch_thread     paginate fully, sort chronologically, NotFoundError when
                     the thread is empty, retryable errors for 429/5xx
    post_reply       best effort, returns False instead of raising
    update_status    best effort, "already in that state" counts as success
    validate_config  pure structural check, never touches the network
    test_connection  one cheap authenticated call, False on any exception

Adapters hold no per-tenant state: an HTTP client is built per call from
the AdapterConfig token.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from discubot.config.schemas import AdapterConfig
from discubot.errors import (
    ConfigurationError,
    DiscubotError,
    MalformedInputError,
    NotFoundError,
    RateLimitedError,
    TransientError,
)
from discubot.models import DiscussionStatus, DiscussionThread, ParsedDiscussion, SourceType

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50


@dataclass
class ConfigValidation:
    """Result of ``validate_config``."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_messages(cls, errors: list[str], warnings: list[str]) -> ConfigValidation:
        return cls(valid=not errors, errors=errors, warnings=warnings)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


class SourceAdapter(ABC):
    """
    Abstract base class for discussion sources.

    Subclasses set ``source_type`` and implement the six operations.
    """

    source_type: SourceType

    @abstractmethod
    async def parse_incoming(
        self,
        payload: dict[str, Any],
        config: AdapterConfig | None = None,
    ) -> ParsedDiscussion:
        """
        Normalize a raw inbound payload.

        Raises:
            MalformedInputError: Payload is irrelevant or incomplete
            DiscubotError: Retryable when a dependency was unreachable
        """
        ...

    @abstractmethod
    async def fetch_thread(self, thread_id: str, config: AdapterConfig) -> DiscussionThread:
        """
        Fetch the complete thread, root first, replies chronological.

        Raises:
            NotFoundError: Thread has no messages
            DiscubotError: Retryable for rate limits and 5xx
        """
        ...

    @abstractmethod
    async def post_reply(self, thread_id: str, message: str, config: AdapterConfig) -> bool:
        ...

    @abstractmethod
    async def update_status(
        self,
        thread_id: str,
        status: DiscussionStatus,
        config: AdapterConfig,
    ) -> bool:
        ...

    @abstractmethod
    def validate_config(self, config: AdapterConfig) -> ConfigValidation:
        ...

    @abstractmethod
    async def test_connection(self, config: AdapterConfig) -> bool:
        ...

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _check_source_type(self, config: AdapterConfig, errors: list[str]) -> None:
        if config.source_type != self.source_type:
            errors.append(
                f"Source type mismatch: expected '{self.source_type.value}', "
                f"got '{config.source_type.value}'"
            )

    def _require_token(self, config: AdapterConfig) -> str:
        token = config.token
        if not token:
            raise ConfigurationError(
                f"{self.source_type.display_name} API token is not configured",
                source=self.source_type.value,
            )
        return token

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source_type={self.source_type.value!r})"


def extract_title(text: str | None, default: str) -> str:
    """First line of ``text``, shortened to fit a task title."""
    if not text:
        return default
    first_line = text.strip().split("\n", 1)[0].strip()
    if not first_line:
        return default
    if len(first_line) > TITLE_MAX_LENGTH:
        return first_line[: TITLE_MAX_LENGTH - 3] + "..."
    return first_line


def split_thread_id(thread_id: str, expected: str) -> tuple[str, str]:
    """
    Split a composite ``a:b`` thread id.

    Raises:
        MalformedInputError: If either part is missing
    """
    first, _, second = thread_id.partition(":")
    if not first or not second:
        raise MalformedInputError(f'Invalid thread ID format, expected "{expected}"')
    return first, second


def to_domain_error(error: DiscubotError, source: SourceType) -> DiscubotError:
    """
    Translate an integration client error into the domain taxonomy.

    The ``retryable`` flag and ``kind`` survive the translation.
    """
    message = getattr(error, "message", str(error))
    status_code = getattr(error, "status_code", None)

    if error.kind == "not_found":
        return NotFoundError(message, source=source.value)
    if error.kind == "rate_limited":
        return RateLimitedError(
            message,
            retry_after=getattr(error, "retry_after", None),
            source=source.value,
            status_code=status_code,
        )
    if error.kind == "configuration":
        return ConfigurationError(message, source=source.value, status_code=status_code)
    if error.kind == "malformed_input":
        return MalformedInputError(message, source=source.value, status_code=status_code)
    if error.retryable:
        return TransientError(message, source=source.value, status_code=status_code)
    return DiscubotError(message, retryable=False, source=source.value, status_code=status_code)


__all__ = [
    "ConfigValidation",
    "SourceAdapter",
    "extract_title",
    "split_thread_id",
    "to_domain_error",
]
