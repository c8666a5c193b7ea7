"""
Domain routing for Discubot.

Decides which flow outputs receive a detected task, based only on the
task's flat domain label:

1. A non-null domain selects every active output whose domain filter
   contains it. Overlapping filters all receive the task (fan-out).
2. When nothing matched (including a null domain) the single active
   default output is selected.
3. When there is no default either, routing fails with a configuration
   error; the task is never silently dropped.

Decisions are recorded for the audit trail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from discubot.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from discubot.config.schemas import FlowOutput

logger = logging.getLogger(__name__)


class RoutingError(ConfigurationError):
    """Raised when routing cannot determine any output."""

    def __init__(self, router_name: str, message: str, domain: str | None = None):
        self.router_name = router_name
        self.domain = domain
        super().__init__(message, source=router_name)


@dataclass(frozen=True)
class RoutingDecision:
    """
    Records a routing decision for observability.

    ``matched_by`` is "domain" for filter matches and "default" when the
    default output was used.
    """

    domain: str | None
    outputs: tuple[FlowOutput, ...]
    matched_by: str
    reason: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def output_ids(self) -> list[str]:
        return [o.id for o in self.outputs]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "domain": self.domain,
            "matched_by": self.matched_by,
            "output_ids": self.output_ids,
            "reason": self.reason,
        }


def find_default_output(outputs: Sequence[FlowOutput]) -> FlowOutput | None:
    """
    Return the single active default output.

    Raises:
        RoutingError: If more than one active output is marked default
    """
    defaults = [o for o in outputs if o.active and o.is_default]
    if len(defaults) > 1:
        raise RoutingError(
            "domain_router",
            f"Multiple default outputs configured: {[o.id for o in defaults]}",
        )
    return defaults[0] if defaults else None


def validate_outputs(outputs: Sequence[FlowOutput]) -> FlowOutput:
    """
    Enforce the exactly-one-default invariant before processing.

    Returns:
        The default output

    Raises:
        RoutingError: If there are no active outputs, no default, or several
    """
    active = [o for o in outputs if o.active]
    if not active:
        raise RoutingError("domain_router", "Flow has no active outputs")

    default = find_default_output(active)
    if default is None:
        raise RoutingError("domain_router", "Flow has no default output")
    return default


class DomainRouter:
    """
    Routes detected tasks to flow outputs by domain.

    Example:
        router = DomainRouter()
        decision = router.route("design", flow_outputs)
        for output in decision.outputs:
            await creator.create_task(task, thread, summary, output.output_config, ...)
    """

    name = "domain_router"

    def route(self, domain: str | None, outputs: Sequence[FlowOutput]) -> RoutingDecision:
        """
        Compute the outputs that should receive a task.

        Args:
            domain: Task domain label, or None when the model was unsure
            outputs: The flow's outputs

        Returns:
            RoutingDecision listing every selected output

        Raises:
            RoutingError: If nothing matched and no default exists
        """
        active = [o for o in outputs if o.active]

        if domain:
            matched = tuple(o for o in active if o.accepts(domain))
            if matched:
                logger.debug(f"[router] domain={domain} -> {[o.id for o in matched]}")
                return RoutingDecision(
                    domain=domain,
                    outputs=matched,
                    matched_by="domain",
                    reason=f"{len(matched)} output(s) filter on '{domain}'",
                )

        default = find_default_output(active)
        if default is None:
            raise RoutingError(
                self.name,
                f"No output matches domain {domain!r} and no default output is configured",
                domain=domain,
            )

        reason = "domain is null" if not domain else f"no output filters on '{domain}'"
        logger.debug(f"[router] domain={domain} -> default {default.id} ({reason})")
        return RoutingDecision(
            domain=domain,
            outputs=(default,),
            matched_by="default",
            reason=reason,
        )


__all__ = [
    "DomainRouter",
    "RoutingDecision",
    "RoutingError",
    "find_default_output",
    "validate_outputs",
]
