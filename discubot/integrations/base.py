"""
Base classes for Discubot integrations.

Every HTTP client Discubot uses (Slack Web API, Figma REST, Notion REST)
builds on ``IntegrationClient``:

- one lazily created ``httpx.AsyncClient`` per client instance, with an
  injectable transport for tests
- JSON in, JSON out: ``_request`` returns the decoded response body
- HTTP failures mapped to IntegrationError subclasses whose ``kind`` and
  ``retryable`` flag the adapters carry into the domain taxonomy
- transient failures (timeouts, network errors, 429, 5xx) retried
  ``config.max_retries`` times; callers that run their own retry loop
  construct clients with ``max_retries=0``
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from discubot.errors import DiscubotError
from discubot.pipeline.retry import ExponentialBackoff, RetryPolicy, retry_call

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class IntegrationError(DiscubotError):
    """An external API call failed."""

    kind = "integration"

    def __init__(
        self,
        message: str,
        integration: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        retryable: bool = False,
    ):
        super().__init__(message, retryable=retryable, source=integration, status_code=status_code)
        self.integration = integration
        self.response_body = response_body

    def __str__(self) -> str:
        suffix = f" (status={self.status_code})" if self.status_code else ""
        return f"[{self.integration}] {self.message}{suffix}"


class AuthenticationError(IntegrationError):
    """Credentials rejected (401/403); needs operator action."""

    kind = "configuration"

    def __init__(self, message: str, integration: str, **kwargs: Any):
        super().__init__(message, integration, retryable=False, **kwargs)


class RateLimitError(IntegrationError):
    kind = "rate_limited"

    def __init__(self, message: str, integration: str, *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, integration, retryable=True, **kwargs)
        self.retry_after = retry_after


class NotFoundError(IntegrationError):
    kind = "not_found"

    def __init__(self, message: str, integration: str, **kwargs: Any):
        kwargs.setdefault("status_code", 404)
        super().__init__(message, integration, retryable=False, **kwargs)


class ValidationError(IntegrationError):
    """The API refused the request body (400/422)."""

    kind = "malformed_input"

    def __init__(self, message: str, integration: str, **kwargs: Any):
        super().__init__(message, integration, retryable=False, **kwargs)


_STATUS_ERRORS: dict[int, tuple[type[IntegrationError], str]] = {
    400: (ValidationError, "Request rejected"),
    401: (AuthenticationError, "Authentication failed"),
    403: (AuthenticationError, "Access denied"),
    404: (NotFoundError, "Resource not found"),
    422: (ValidationError, "Request rejected"),
}


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def error_for_response(integration: str, response: httpx.Response) -> IntegrationError:
    """Map a failed HTTP response to the matching IntegrationError."""
    status = response.status_code
    body = response.text[:1000]

    if status == 429:
        return RateLimitError(
            "Rate limit exceeded",
            integration,
            status_code=status,
            response_body=body,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )

    known = _STATUS_ERRORS.get(status)
    if known is not None:
        error_cls, label = known
        return error_cls(f"{label}: {body}", integration, status_code=status, response_body=body)

    return IntegrationError(
        f"Request failed: {body}",
        integration,
        status_code=status,
        response_body=body,
        retryable=status >= 500,
    )


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class IntegrationConfig:
    """Connection settings shared by all clients."""

    api_key: str | None = None
    base_url: str = ""
    timeout: float = 30.0

    # 0 = the caller owns retries
    max_retries: int = 2
    retry_delay: float = 1.0
    max_retry_delay: float = 30.0


# =============================================================================
# Base Client
# =============================================================================


class IntegrationClient(ABC):
    """
    Base for JSON-over-HTTP API clients.

    Subclasses provide ``name`` and ``_get_auth_headers()``, and may
    override ``_check_payload`` for APIs that report errors inside a 200
    response (Slack's ``ok: false``).
    """

    def __init__(
        self,
        config: IntegrationConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def _get_auth_headers(self) -> dict[str, str]:
        ...

    def _default_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers={**self._default_headers(), **self._get_auth_headers()},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> IntegrationClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Requests
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Call the API and return the decoded JSON body.

        Retryable failures are retried per ``config.max_retries``.

        Raises:
            IntegrationError: On a non-retryable failure, or the last
                retryable one once retries are used up
        """
        policy = RetryPolicy(
            max_attempts=self.config.max_retries + 1,
            backoff=ExponentialBackoff(base=self.config.retry_delay, max_delay=self.config.max_retry_delay),
        )
        return await retry_call(
            lambda: self._send(method, path, params=params, json=json),
            policy,
            operation_name=f"[{self.name}] {method} {path}",
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            response = await self._http().request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise IntegrationError(f"Request timeout: {e}", self.name, retryable=True) from e
        except httpx.NetworkError as e:
            raise IntegrationError(f"Network error: {e}", self.name, retryable=True) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"[{self.name}] {method} {path} -> {response.status_code} in {elapsed_ms:.0f}ms")

        if not response.is_success:
            raise error_for_response(self.name, response)

        if not response.content:
            payload: dict[str, Any] = {}
        else:
            try:
                payload = response.json()
            except ValueError as e:
                raise IntegrationError(
                    "Response is not JSON",
                    self.name,
                    status_code=response.status_code,
                    response_body=response.text[:500],
                ) from e

        self._check_payload(payload, response)
        return payload

    def _check_payload(self, payload: dict[str, Any], response: httpx.Response) -> None:
        """Hook for APIs that signal errors in successful responses."""

    async def health_check(self) -> bool:
        """One cheap authenticated call; subclasses override."""
        return True


__all__ = [
    "AuthenticationError",
    "IntegrationClient",
    "IntegrationConfig",
    "IntegrationError",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
    "error_for_response",
    "parse_retry_after",
]
