"""Bounded-concurrency batch runner with retries and partial-failure reporting.

``run_batch`` deduplicates its input, then starts ``concurrency`` workers
that pull items from a shared iterator. Each worker runs one item at a
time, so no more than ``concurrency`` operations are ever in flight.

Failure semantics:

- A failing item is retried up to ``max_retries`` more times unless its
  error is flagged ``retryable = False``.
- With ``continue_on_error=False`` the first item that fails for good
  stops new scheduling. In-flight items run to completion and unstarted
  items are reported as skipped.
- Setting the cancel event (directly or through ``timeout``) skips
  unstarted items and cancels in-flight ones on a best-effort basis.

The engine performs no side effects of its own: everything observable
happens inside ``op``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Iterable
from typing import Any, TypeVar

from compsync.core.batch.models import BatchFailure, BatchOptions, BatchResult
from compsync.core.events import (
    BATCH_COMPLETE,
    BATCH_ITEM,
    BATCH_RETRY,
    BATCH_START,
    EventStream,
)
from compsync.exceptions import BatchCancelledError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[T], Awaitable[Any]]
KeyFunc = Callable[[T], Hashable]


def default_key(item: Any) -> Hashable:
    """Key items by their ``name`` attribute when they have a string one."""
    name = getattr(item, "name", None)
    if isinstance(name, str):
        return name
    return item


class _ItemFailed(Exception):
    def __init__(self, error: BaseException, attempts: int) -> None:
        self.error = error
        self.attempts = attempts
        super().__init__(str(error))


async def run_batch(
    items: Iterable[T],
    op: Operation,
    options: BatchOptions | None = None,
    *,
    key: KeyFunc | None = None,
    cancel: asyncio.Event | None = None,
    events: EventStream | None = None,
) -> BatchResult[T]:
    """Run ``op`` over ``items`` with bounded concurrency.

    Args:
        items: Input items. Duplicates (by ``key``) are dropped, first wins.
        op: Async operation applied to each item.
        options: Concurrency, retry and error-handling settings.
        key: Identity function for deduplication; defaults to the item's
            ``name`` attribute or the item itself.
        cancel: Event that, once set, stops the run early.
        events: Optional progress event stream.

    Returns:
        A ``BatchResult`` accounting for every deduplicated item exactly once.
    """
    options = options if options is not None else BatchOptions()
    key_fn = key if key is not None else default_key
    cancel = cancel if cancel is not None else asyncio.Event()
    events = events if events is not None else EventStream()
    policy = options.retry

    unique: list[T] = []
    seen: set[Hashable] = set()
    for item in items:
        item_key = key_fn(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        unique.append(item)

    result: BatchResult[T] = BatchResult()
    result.stats.total = len(unique)
    events.emit(BATCH_START, total=len(unique), concurrency=options.concurrency)

    pending = iter(enumerate(unique))
    started: set[int] = set()
    running: dict[int, asyncio.Task[Any]] = {}
    stop = asyncio.Event()
    first_start: float | None = None
    last_end: float | None = None

    async def _attempt_all(item: T) -> tuple[Any, int]:
        attempts = 0
        while True:
            attempts += 1
            try:
                return await op(item), attempts
            except Exception as exc:
                if (
                    attempts > options.max_retries
                    or not policy.should_retry(exc)
                    or cancel.is_set()
                ):
                    raise _ItemFailed(exc, attempts) from exc
                delay = policy.delay(attempts)
                logger.info(
                    "Retrying %s (attempt %d of %d) after %s",
                    key_fn(item), attempts + 1, options.max_retries + 1, exc,
                )
                events.emit(
                    BATCH_RETRY,
                    key=key_fn(item),
                    attempt=attempts + 1,
                    delay=delay,
                    error=str(exc),
                )
                if delay > 0:
                    await asyncio.sleep(delay)

    def _record_failure(index: int, item: T, error: BaseException, attempts: int) -> None:
        if attempts > 1:
            error = RetryExhaustedError(attempts, error)
        failure = BatchFailure(item=item, error=error, attempts=attempts, index=index)
        result.failed.append(failure)
        logger.warning("Batch item %s failed: %s", key_fn(item), failure.message)
        if not options.continue_on_error:
            stop.set()

    async def _worker() -> None:
        nonlocal first_start, last_end
        while not (cancel.is_set() or stop.is_set()):
            try:
                index, item = next(pending)
            except StopIteration:
                return
            started.add(index)
            if first_start is None:
                first_start = time.perf_counter()
            task = asyncio.ensure_future(_attempt_all(item))
            running[index] = task
            try:
                await asyncio.wait([task])
            finally:
                running.pop(index, None)
                if not task.done():
                    task.cancel()
            last_end = time.perf_counter()

            if task.cancelled():
                _record_failure(
                    index, item, BatchCancelledError(f"{key_fn(item)} cancelled"), 1
                )
                status = "cancelled"
            elif isinstance(task.exception(), _ItemFailed):
                failed = task.exception()
                _record_failure(index, item, failed.error, failed.attempts)  # type: ignore[union-attr]
                status = "failed"
            elif task.exception() is not None:
                raise task.exception()  # type: ignore[misc]
            else:
                value, attempts = task.result()
                result.succeeded.append(item)
                result.values[key_fn(item)] = value
                logger.debug("Batch item %s succeeded after %d attempt(s)", key_fn(item), attempts)
                status = "succeeded"
            events.emit(BATCH_ITEM, key=key_fn(item), index=index, status=status)

    async def _watch() -> None:
        try:
            await asyncio.wait_for(cancel.wait(), options.timeout)
        except asyncio.TimeoutError:
            logger.warning("Batch timed out after %ss, cancelling", options.timeout)
            cancel.set()
        for task in list(running.values()):
            task.cancel()

    watcher = asyncio.ensure_future(_watch())
    try:
        workers = [
            asyncio.ensure_future(_worker())
            for _ in range(min(options.concurrency, len(unique)))
        ]
        await asyncio.gather(*workers)
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher

    result.skipped = [item for index, item in enumerate(unique) if index not in started]
    stats = result.stats
    stats.succeeded_count = len(result.succeeded)
    stats.failed_count = len(result.failed)
    stats.skipped_count = len(result.skipped)
    if first_start is not None and last_end is not None:
        stats.duration_ms = (last_end - first_start) * 1000.0
    events.emit(BATCH_COMPLETE, **stats.to_dict())
    return result


class BatchExecutor:
    """Reusable batch runner bound to one set of options and an event stream.

    Args:
        options: Options applied to every run.
        events: Progress event stream shared across runs.
    """

    def __init__(
        self,
        options: BatchOptions | None = None,
        events: EventStream | None = None,
    ) -> None:
        self.options = options if options is not None else BatchOptions()
        self.events = events if events is not None else EventStream()

    async def run(
        self,
        items: Iterable[T],
        op: Operation,
        *,
        key: KeyFunc | None = None,
        cancel: asyncio.Event | None = None,
        options: BatchOptions | None = None,
    ) -> BatchResult[T]:
        """Run ``op`` over ``items`` with this executor's options."""
        return await run_batch(
            items,
            op,
            options if options is not None else self.options,
            key=key,
            cancel=cancel,
            events=self.events,
        )
