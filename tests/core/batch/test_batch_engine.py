"""Tests for run_batch — bounded concurrency, retries, fail-fast, cancellation.

Every test checks result completeness: succeeded + failed + skipped
equals the deduplicated input size.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from compsync.core.batch import BatchExecutor, BatchOptions, BatchResult, run_batch
from compsync.core.events import (
    BATCH_COMPLETE,
    BATCH_ITEM,
    BATCH_RETRY,
    BATCH_START,
    CollectingListener,
    EventStream,
)
from compsync.exceptions import (
    BatchCancelledError,
    ConfigError,
    PermissionDenied,
    RetryExhaustedError,
)


def _assert_complete(result: BatchResult, total: int) -> None:
    stats = result.stats
    assert stats.total == total
    assert stats.succeeded_count == len(result.succeeded)
    assert stats.failed_count == len(result.failed)
    assert stats.skipped_count == len(result.skipped)
    assert len(result.succeeded) + len(result.failed) + len(result.skipped) == total


class _Tracker:
    """Async op that records the maximum number of concurrent invocations."""

    def __init__(self, delay: float = 0.001) -> None:
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: list[object] = []

    async def __call__(self, item: object) -> object:
        self.calls.append(item)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return item


@dataclass(frozen=True)
class _Named:
    name: str
    payload: int = 0


# ---------------------------------------------------------------------------
# Concurrency and deduplication
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_never_exceeds_limit(self) -> None:
        tracker = _Tracker()
        result = asyncio.run(run_batch(range(50), tracker, BatchOptions(concurrency=5)))
        assert tracker.max_in_flight <= 5
        assert tracker.max_in_flight > 1
        _assert_complete(result, 50)
        assert sorted(result.succeeded) == list(range(50))

    def test_concurrency_one_is_sequential(self) -> None:
        tracker = _Tracker()
        asyncio.run(run_batch(range(10), tracker, BatchOptions(concurrency=1)))
        assert tracker.max_in_flight == 1
        assert tracker.calls == list(range(10))

    def test_empty_input(self) -> None:
        result = asyncio.run(run_batch([], _Tracker(), BatchOptions()))
        _assert_complete(result, 0)
        assert result.stats.duration_ms == 0.0
        assert result.stats.average_item_ms == 0.0


class TestDeduplication:
    def test_duplicates_collapse_to_one_execution(self) -> None:
        tracker = _Tracker()
        result = asyncio.run(run_batch([1, 2, 2, 3, 1], tracker))
        assert sorted(tracker.calls) == [1, 2, 3]
        _assert_complete(result, 3)

    def test_default_key_uses_name_attribute(self) -> None:
        tracker = _Tracker()
        items = [_Named("a", 1), _Named("a", 2), _Named("b")]
        result = asyncio.run(run_batch(items, tracker))
        assert [i.name for i in tracker.calls] == ["a", "b"]
        assert tracker.calls[0].payload == 1
        _assert_complete(result, 2)

    def test_custom_key(self) -> None:
        tracker = _Tracker()
        result = asyncio.run(run_batch(["a", "A", "b"], tracker, key=str.lower))
        _assert_complete(result, 2)

    def test_values_keyed_by_item_key(self) -> None:
        async def double(n: int) -> int:
            return n * 2

        result = asyncio.run(run_batch([1, 2, 3], double))
        assert result.values == {1: 2, 2: 4, 3: 6}


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class _Flaky:
    """Fails the first ``failures`` calls per item, then succeeds."""

    def __init__(self, failures: int, error: type[Exception] = RuntimeError) -> None:
        self.failures = failures
        self.error = error
        self.attempts: dict[object, int] = {}

    async def __call__(self, item: object) -> object:
        self.attempts[item] = self.attempts.get(item, 0) + 1
        if self.attempts[item] <= self.failures:
            raise self.error(f"boom {item}")
        return item


class TestRetries:
    def test_succeeds_within_budget(self) -> None:
        op = _Flaky(failures=2)
        result = asyncio.run(run_batch(["x"], op, BatchOptions(max_retries=2)))
        assert result.succeeded == ["x"]
        assert op.attempts["x"] == 3

    def test_attempts_bounded_by_max_retries_plus_one(self) -> None:
        op = _Flaky(failures=10)
        result = asyncio.run(run_batch(["x"], op, BatchOptions(max_retries=3)))
        assert op.attempts["x"] == 4
        failure = result.failed[0]
        assert failure.attempts == 4
        assert isinstance(failure.error, RetryExhaustedError)
        assert failure.error.attempts == 4
        assert isinstance(failure.cause, RuntimeError)
        assert failure.message == "boom x"

    def test_single_attempt_failure_not_wrapped(self) -> None:
        op = _Flaky(failures=1)
        result = asyncio.run(run_batch(["x"], op, BatchOptions(max_retries=0)))
        assert isinstance(result.failed[0].error, RuntimeError)
        assert result.failed[0].attempts == 1

    def test_non_retryable_error_not_retried(self) -> None:
        async def denied(item: str) -> None:
            raise PermissionDenied(item, f"Permission denied writing {item}")

        result = asyncio.run(run_batch(["x"], denied, BatchOptions(max_retries=5)))
        failure = result.failed[0]
        assert failure.attempts == 1
        assert isinstance(failure.error, PermissionDenied)

    def test_retry_events_emitted(self) -> None:
        events = EventStream()
        listener = CollectingListener()
        events.subscribe(listener)
        asyncio.run(run_batch(["x"], _Flaky(failures=2), BatchOptions(max_retries=2), events=events))
        retries = listener.of_type(BATCH_RETRY)
        assert [e.data["attempt"] for e in retries] == [2, 3]


# ---------------------------------------------------------------------------
# continue_on_error
# ---------------------------------------------------------------------------


class TestContinueOnError:
    def test_continue_runs_everything(self) -> None:
        async def op(n: int) -> int:
            if n % 3 == 0:
                raise ValueError(f"bad {n}")
            return n

        result = asyncio.run(run_batch(range(9), op, BatchOptions(concurrency=2)))
        assert sorted(f.item for f in result.failed) == [0, 3, 6]
        assert len(result.succeeded) == 6
        assert result.skipped == []
        _assert_complete(result, 9)

    def test_fail_fast_stops_new_scheduling(self) -> None:
        started: list[int] = []

        async def op(n: int) -> int:
            started.append(n)
            await asyncio.sleep(0)
            if n == 0:
                raise ValueError("first fails")
            return n

        options = BatchOptions(concurrency=1, continue_on_error=False)
        result = asyncio.run(run_batch(range(10), op, options))
        assert started == [0]
        assert [f.item for f in result.failed] == [0]
        assert sorted(result.skipped) == list(range(1, 10))
        _assert_complete(result, 10)

    def test_fail_fast_lets_in_flight_items_finish(self) -> None:
        async def op(n: int) -> int:
            if n == 0:
                raise ValueError("fails immediately")
            await asyncio.sleep(0.01)
            return n

        options = BatchOptions(concurrency=3, continue_on_error=False)
        result = asyncio.run(run_batch(range(10), op, options))
        assert sorted(result.succeeded) == [1, 2]
        assert [f.item for f in result.failed] == [0]
        assert len(result.skipped) == 7
        _assert_complete(result, 10)

    def test_failure_index_is_input_position(self) -> None:
        async def op(item: str) -> str:
            if item == "c":
                raise ValueError("c")
            return item

        result = asyncio.run(run_batch(["a", "b", "c", "d"], op))
        assert result.failed[0].index == 2


# ---------------------------------------------------------------------------
# Cancellation and timeout
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_pre_set_cancel_skips_everything(self) -> None:
        async def main() -> BatchResult:
            cancel = asyncio.Event()
            cancel.set()
            return await run_batch(range(5), _Tracker(), cancel=cancel)

        result = asyncio.run(main())
        assert sorted(result.skipped) == list(range(5))
        _assert_complete(result, 5)

    def test_cancel_mid_run(self) -> None:
        async def main() -> BatchResult:
            cancel = asyncio.Event()

            async def op(n: int) -> int:
                if n == 3:
                    cancel.set()
                await asyncio.sleep(0.05)
                return n

            return await run_batch(range(20), op, BatchOptions(concurrency=2), cancel=cancel)

        result = asyncio.run(main())
        cancelled = [f for f in result.failed if isinstance(f.error, BatchCancelledError)]
        assert cancelled
        assert result.skipped
        _assert_complete(result, 20)

    def test_timeout_cancels_in_flight(self) -> None:
        async def slow(n: int) -> int:
            await asyncio.sleep(10)
            return n

        options = BatchOptions(concurrency=2, timeout=0.05)
        result = asyncio.run(run_batch(range(6), slow, options))
        assert len(result.failed) == 2
        assert all(isinstance(f.error, BatchCancelledError) for f in result.failed)
        assert len(result.skipped) == 4
        _assert_complete(result, 6)

    def test_op_that_finishes_anyway_reports_success(self) -> None:
        async def stubborn(n: int) -> int:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                return n
            return n

        options = BatchOptions(concurrency=1, timeout=0.05)
        result = asyncio.run(run_batch([1, 2], stubborn, options))
        assert result.succeeded == [1]
        assert result.skipped == [2]
        _assert_complete(result, 2)


# ---------------------------------------------------------------------------
# Stats, events, options
# ---------------------------------------------------------------------------


class TestStatsAndEvents:
    def test_average_is_duration_over_total(self) -> None:
        result = asyncio.run(run_batch(range(8), _Tracker(delay=0.01), BatchOptions(concurrency=4)))
        stats = result.stats
        assert stats.duration_ms > 0
        assert stats.average_item_ms == pytest.approx(stats.duration_ms / 8)

    def test_lifecycle_events(self) -> None:
        events = EventStream()
        listener = CollectingListener()
        events.subscribe(listener)
        asyncio.run(run_batch(["a", "b"], _Tracker(), events=events))
        assert listener.events[0].type == BATCH_START
        assert listener.events[0].data["total"] == 2
        assert len(listener.of_type(BATCH_ITEM)) == 2
        complete = listener.of_type(BATCH_COMPLETE)
        assert complete[-1].data["succeeded"] == 2

    def test_executor_reuses_options(self) -> None:
        tracker = _Tracker()
        executor = BatchExecutor(BatchOptions(concurrency=2))
        result = asyncio.run(executor.run(range(6), tracker))
        assert tracker.max_in_flight <= 2
        _assert_complete(result, 6)


class TestOptionsValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [{"concurrency": 0}, {"max_retries": -1}, {"timeout": 0}],
    )
    def test_invalid_options_rejected(self, kwargs) -> None:
        with pytest.raises(ConfigError):
            BatchOptions(**kwargs)
