"""
Per-credential call spacing for Discubot outbound calls.

Destination boards document a per-credential quota (Notion: roughly one
call every 200ms per integration token). Calls sharing a key are spaced by
a minimum interval; calls on different keys proceed independently.

Each key keeps the earliest time its next call may start. A caller
reserves that slot and pushes it one interval further before sleeping, so
concurrent callers on one key queue up in arrival order and nothing is
held while they wait.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# Per-key state
# =============================================================================


@dataclass
class CallSlot:
    """Next start time for calls on one key (monotonic clock)."""

    interval: float
    next_start: float = 0.0
    last_reserved: float = 0.0

    def delay(self, now: float) -> float:
        """Seconds until a call could start on this key."""
        return max(0.0, self.next_start - now)

    def reserve(self, now: float) -> float:
        """Take the next slot; returns how long the caller must wait for it."""
        start = max(now, self.next_start)
        self.next_start = start + self.interval
        self.last_reserved = now
        return start - now

    def idle(self, now: float) -> bool:
        return self.next_start <= now


# =============================================================================
# Rate Limiter
# =============================================================================


class RateLimiter:
    """
    Spaces calls that share a key.

    Example:
        limiter = RateLimiter.min_interval(0.2)
        await limiter.wait(f"notion:{token_fingerprint}")

    Args:
        interval: Minimum seconds between call starts on one key
        max_keys: Idle keys are forgotten once this many are tracked
    """

    def __init__(self, interval: float, *, max_keys: int = 10000):
        if interval <= 0:
            raise ValueError("min interval must be positive")
        self.interval = interval
        self.max_keys = max_keys
        self._slots: dict[str, CallSlot] = {}

    @classmethod
    def min_interval(cls, seconds: float) -> RateLimiter:
        """Limiter enforcing ``seconds`` between calls on the same key."""
        return cls(seconds)

    @classmethod
    def per_second(cls, calls: float) -> RateLimiter:
        if calls <= 0:
            raise ValueError("calls per second must be positive")
        return cls(1.0 / calls)

    def _slot(self, key: str) -> CallSlot:
        slot = self._slots.get(key)
        if slot is None:
            if len(self._slots) >= self.max_keys:
                self._forget_idle()
            slot = CallSlot(interval=self.interval)
            self._slots[key] = slot
        return slot

    def _forget_idle(self) -> None:
        """Drop the least recently used half of the idle keys."""
        now = time.monotonic()
        idle = sorted(
            (k for k, s in self._slots.items() if s.idle(now)),
            key=lambda k: self._slots[k].last_reserved,
        )
        for key in idle[: max(1, len(idle) // 2)]:
            del self._slots[key]

    async def wait(self, key: str, timeout: float | None = None) -> bool:
        """
        Wait for this key's next slot.

        Args:
            key: Rate limit key (one per credential set)
            timeout: Give up without reserving if the wait would be longer

        Returns:
            True once the call may start, False if the timeout would be exceeded
        """
        slot = self._slot(key)
        now = time.monotonic()
        if timeout is not None and slot.delay(now) > timeout:
            logger.debug(f"[ratelimit] {key} busy for {slot.delay(now):.3f}s, over timeout {timeout}s")
            return False

        delay = slot.reserve(now)
        if delay > 0:
            logger.debug(f"[ratelimit] Spacing call on {key} by {delay:.3f}s")
            await asyncio.sleep(delay)
        return True

    def try_acquire(self, key: str) -> bool:
        """Reserve the slot only if a call could start right now."""
        slot = self._slot(key)
        now = time.monotonic()
        if slot.delay(now) > 0:
            return False
        slot.reserve(now)
        return True

    def check(self, key: str) -> float:
        """Seconds a call on ``key`` would wait, without reserving."""
        slot = self._slots.get(key)
        return slot.delay(time.monotonic()) if slot else 0.0

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or all keys."""
        if key is None:
            self._slots.clear()
        else:
            self._slots.pop(key, None)

    def __len__(self) -> int:
        return len(self._slots)

    def get_config(self) -> dict[str, Any]:
        return {
            "interval": self.interval,
            "keys": len(self._slots),
        }


__all__ = [
    "CallSlot",
    "RateLimiter",
]
