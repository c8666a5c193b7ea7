"""
Processing context for Discubot.

Request-scoped state for one processor run: execution id, the state
machine position, per-stage timings and routing decisions. Its audit dict
is stored on the Job record so operators can diagnose a run without logs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from discubot.models import ProcessingState

if TYPE_CHECKING:
    from .routing import RoutingDecision


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ProcessingContext:
    """
    State carried through one discussion processing run.

    Provides:
    - Unique execution ID for tracing
    - Current state and the history of transitions
    - Per-stage timings
    - Routing decisions for the audit trail
    """

    discussion_key: str
    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)

    state: ProcessingState = ProcessingState.RECEIVED
    transitions: list[dict[str, Any]] = field(default_factory=list)
    stage_timings: dict[str, float] = field(default_factory=dict)
    routing_decisions: list[RoutingDecision] = field(default_factory=list)

    _stage_started: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the run started."""
        delta = datetime.now(UTC) - self.started_at
        return delta.total_seconds() * 1000

    def transition(self, state: ProcessingState) -> None:
        """Move to ``state``, recording how long the previous state took."""
        now = time.monotonic()
        self.stage_timings[self.state.value] = (now - self._stage_started) * 1000
        self.transitions.append(
            {
                "from": self.state.value,
                "to": state.value,
                "at": _utc_now().isoformat(),
            }
        )
        self.state = state
        self._stage_started = now

    def record_decision(self, decision: RoutingDecision) -> None:
        self.routing_decisions.append(decision)

    def to_audit_dict(self) -> dict[str, Any]:
        """Generate audit record for storage."""
        return {
            "execution_id": str(self.execution_id),
            "discussion_key": self.discussion_key,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.elapsed_ms,
            "state": self.state.value,
            "transitions": list(self.transitions),
            "stage_timings": dict(self.stage_timings),
            "routing_decisions": [d.to_dict() for d in self.routing_decisions],
        }
