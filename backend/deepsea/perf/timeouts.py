from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

MIN_CALL_TIMEOUT_MS = 100


class PerfTimeoutError(TimeoutError):
    """Raised when a performance timeout is exceeded."""


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def remaining_budget_ms(start_ms: int, budget_ms_total: int, now_ms: Callable[[], int] = monotonic_ms) -> int:
    remaining = int(budget_ms_total - (now_ms() - start_ms))
    return remaining if remaining > 0 else 0


async def enforce_timeout(
    coro_fn: Callable[[], Awaitable[T]],
    timeout_ms: int,
) -> T:
    try:
        return await asyncio.wait_for(coro_fn(), timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError as exc:  # noqa: PERF203
        raise PerfTimeoutError(f"operation exceeded {timeout_ms} ms") from exc


class Deadline:
    """Wall-clock budget measured from a fixed start, read at explicit checkpoints."""

    def __init__(self, budget_ms: int, now_ms: Callable[[], int] = monotonic_ms, start_ms: int | None = None):
        self.now_ms = now_ms
        self.start_ms = now_ms() if start_ms is None else start_ms
        self.budget_ms = max(0, int(budget_ms))

    def elapsed_ms(self) -> int:
        return max(0, self.now_ms() - self.start_ms)

    def remaining_ms(self) -> int:
        return remaining_budget_ms(self.start_ms, self.budget_ms, self.now_ms)

    def exceeded(self) -> bool:
        return self.elapsed_ms() > self.budget_ms


def clamp_timeout_ms(deadline: Deadline, requested_timeout_ms: int) -> int:
    remaining = deadline.remaining_ms()
    if remaining <= 0:
        return MIN_CALL_TIMEOUT_MS
    return max(MIN_CALL_TIMEOUT_MS, min(requested_timeout_ms, remaining))


__all__ = [
    "PerfTimeoutError",
    "Deadline",
    "clamp_timeout_ms",
    "enforce_timeout",
    "monotonic_ms",
    "remaining_budget_ms",
]
