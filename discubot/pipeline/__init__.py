"""
Discubot pipeline primitives.

Building blocks used by the processor:
- Retry: bounded exponential backoff around external calls
- RateLimiter: per-credential spacing of destination calls
- DomainRouter: domain-based fan-out of tasks to outputs
- ProcessingContext: run state, timings and routing audit
"""

from .context import ProcessingContext
from .ratelimit import CallSlot, RateLimiter
from .retry import (
    NO_RETRY,
    REPROCESS_RETRY,
    RETRY_WITH_BACKOFF,
    BackoffStrategy,
    ConstantBackoff,
    ExponentialBackoff,
    NoBackoff,
    RetryPolicy,
    retry_call,
)
from .routing import (
    DomainRouter,
    RoutingDecision,
    RoutingError,
    find_default_output,
    validate_outputs,
)

__all__ = [
    # Context
    "ProcessingContext",
    # Rate limiting
    "CallSlot",
    "RateLimiter",
    # Retry
    "NO_RETRY",
    "REPROCESS_RETRY",
    "RETRY_WITH_BACKOFF",
    "BackoffStrategy",
    "ConstantBackoff",
    "ExponentialBackoff",
    "NoBackoff",
    "RetryPolicy",
    "retry_call",
    # Routing
    "DomainRouter",
    "RoutingDecision",
    "RoutingError",
    "find_default_output",
    "validate_outputs",
]
