"""Data models for the batch execution engine.

``BatchOptions`` and ``RetryPolicy`` configure a run; ``BatchResult`` and
its ``BatchFailure``/``BatchStats`` members report on it. Results always
account for every deduplicated input item exactly once::

    stats.succeeded_count + stats.failed_count + stats.skipped_count == stats.total
"""

from __future__ import annotations

import random
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from compsync.exceptions import ConfigError, RetryExhaustedError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with optional full jitter.

    The delay before retry ``n`` (1-based) is
    ``min(max_delay, base_delay * multiplier ** (n - 1))``; with ``jitter``
    the actual delay is drawn uniformly from ``[0, that]``. The default
    ``base_delay`` of 0 makes retries immediate.

    Attributes:
        base_delay: Delay before the first retry, in seconds.
        multiplier: Growth factor per retry.
        max_delay: Upper bound for any single delay, in seconds.
        jitter: Whether to apply full jitter.
    """

    base_delay: float = 0.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigError("retry delays must be >= 0")
        if self.multiplier < 1:
            raise ConfigError("retry multiplier must be >= 1")

    def delay(self, attempt: int, rng: Callable[[float, float], float] = random.uniform) -> float:
        """Return the sleep before retry number ``attempt`` (1-based)."""
        if self.base_delay <= 0:
            return 0.0
        ceiling = min(self.max_delay, self.base_delay * self.multiplier ** max(attempt - 1, 0))
        if self.jitter:
            return rng(0.0, ceiling)
        return ceiling

    @staticmethod
    def should_retry(exc: BaseException) -> bool:
        """Return False for errors flagged ``retryable = False``."""
        return bool(getattr(exc, "retryable", True))


@dataclass(frozen=True)
class BatchOptions:
    """Settings for a single batch run.

    Attributes:
        concurrency: Maximum operations in flight (>= 1).
        max_retries: Extra attempts per item after the first (>= 0).
        continue_on_error: When False, stop scheduling after the first
            item that fails for good.
        retry: Backoff policy between attempts.
        timeout: Seconds after which the run is cancelled, or None.
    """

    concurrency: int = 5
    max_retries: int = 0
    continue_on_error: bool = True
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"timeout must be > 0, got {self.timeout}")


@dataclass
class BatchFailure(Generic[T]):
    """One item that failed.

    Attributes:
        item: The input item.
        error: The final error; a ``RetryExhaustedError`` when more than one
            attempt was made.
        attempts: Number of attempts made.
        index: Position of the item in the deduplicated input.
    """

    item: T
    error: BaseException
    attempts: int
    index: int

    @property
    def cause(self) -> BaseException:
        """The innermost error, unwrapping retry-exhaustion wrappers."""
        error = self.error
        while isinstance(error, RetryExhaustedError):
            error = error.last_error
        return error

    @property
    def message(self) -> str:
        return str(self.cause) or type(self.cause).__name__


@dataclass
class BatchStats:
    """Aggregate counts and timing for a batch run."""

    total: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duration_ms: float = 0.0

    @property
    def average_item_ms(self) -> float:
        """Wall-clock duration divided by item count (throughput, not latency)."""
        if self.total == 0:
            return 0.0
        return self.duration_ms / self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "skipped": self.skipped_count,
            "duration_ms": round(self.duration_ms, 3),
            "average_item_ms": round(self.average_item_ms, 3),
        }


@dataclass
class BatchResult(Generic[T]):
    """Outcome of a batch run.

    List order is not significant; failures carry their input ``index``.

    Attributes:
        succeeded: Items whose operation completed.
        failed: Items that failed for good.
        skipped: Items never started (fail-fast stop or cancellation).
        stats: Counts and timing.
        values: Return value of the operation per successful item key.
    """

    succeeded: list[T] = field(default_factory=list)
    failed: list[BatchFailure[T]] = field(default_factory=list)
    skipped: list[T] = field(default_factory=list)
    stats: BatchStats = field(default_factory=BatchStats)
    values: dict[Hashable, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True when nothing failed and nothing was skipped."""
        return not self.failed and not self.skipped

    def errors_by_key(self, key: Callable[[T], Hashable]) -> dict[Hashable, str]:
        """Map each failed item's key to its innermost error message."""
        return {key(f.item): f.message for f in self.failed}
