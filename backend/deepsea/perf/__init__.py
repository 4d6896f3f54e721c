from .timeouts import (
    Deadline,
    PerfTimeoutError,
    clamp_timeout_ms,
    enforce_timeout,
    monotonic_ms,
    remaining_budget_ms,
)

__all__ = [
    "Deadline",
    "PerfTimeoutError",
    "clamp_timeout_ms",
    "enforce_timeout",
    "monotonic_ms",
    "remaining_budget_ms",
]
