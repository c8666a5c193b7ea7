"""
Error taxonomy for Discubot.

Every error raised by the core carries an explicit ``retryable`` flag and a
``kind`` string. Callers (webhook handlers, the retry helper, the processor)
decide what to do from those two attributes instead of inspecting types.

Kinds:
    malformed_input  payload doesn't match the expected shape
    not_found        thread/comment genuinely absent at the source
    transient        rate limits, timeouts, 5xx; retried with backoff
    configuration    missing default output, missing credentials
    analysis         language model failures
    processing       wrapper raised by the processor, keeps the stage
"""

from __future__ import annotations

from typing import Any


class DiscubotError(Exception):
    """Base exception for all Discubot errors."""

    kind: str = "error"

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        source: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.source = source
        self.status_code = status_code
        self.context = context or {}

    def __str__(self) -> str:
        if self.source:
            return f"[{self.source}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for audit records."""
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "source": self.source,
            "status_code": self.status_code,
        }


class MalformedInputError(DiscubotError):
    """Inbound payload is irrelevant or doesn't match the expected shape."""

    kind = "malformed_input"

    def __init__(self, message: str, **kwargs: Any):
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)


class NotFoundError(DiscubotError):
    """The thread or comment is genuinely absent at the source."""

    kind = "not_found"

    def __init__(self, message: str, **kwargs: Any):
        kwargs["retryable"] = False
        kwargs.setdefault("status_code", 404)
        super().__init__(message, **kwargs)


class TransientError(DiscubotError):
    """Temporary failure reaching a dependency."""

    kind = "transient"

    def __init__(self, message: str, **kwargs: Any):
        kwargs["retryable"] = True
        super().__init__(message, **kwargs)


class RateLimitedError(TransientError):
    """The dependency asked us to slow down."""

    kind = "rate_limited"

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ConfigurationError(DiscubotError):
    """Requires operator action, never retried."""

    kind = "configuration"

    def __init__(self, message: str, **kwargs: Any):
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)


class ConflictError(DiscubotError):
    """The request doesn't fit the record's current state."""

    kind = "conflict"

    def __init__(self, message: str, **kwargs: Any):
        kwargs["retryable"] = False
        kwargs.setdefault("status_code", 409)
        super().__init__(message, **kwargs)


class AnalysisError(DiscubotError):
    """Language model call failed or returned an unusable response."""

    kind = "analysis"


class ProcessingError(DiscubotError):
    """
    Raised by the processor when a run stops before completion.

    Attributes:
        stage: Pipeline stage where the run stopped
        cause: Underlying error, if any
    """

    kind = "processing"

    def __init__(
        self,
        message: str,
        stage: str,
        *,
        retryable: bool = False,
        cause: BaseException | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, retryable=retryable, **kwargs)
        self.stage = stage
        self.cause = cause

    @property
    def cause_kind(self) -> str:
        return getattr(self.cause, "kind", "unknown") if self.cause else self.kind

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["stage"] = self.stage
        data["cause_kind"] = self.cause_kind
        return data


def is_retryable(error: BaseException) -> bool:
    """Return the error's ``retryable`` flag; unknown errors are not retried."""
    return bool(getattr(error, "retryable", False))


def error_kind(error: BaseException) -> str:
    """Return the taxonomy kind of an error."""
    return getattr(error, "kind", "unknown")


__all__ = [
    "AnalysisError",
    "ConfigurationError",
    "ConflictError",
    "DiscubotError",
    "MalformedInputError",
    "NotFoundError",
    "ProcessingError",
    "RateLimitedError",
    "TransientError",
    "error_kind",
    "is_retryable",
]
