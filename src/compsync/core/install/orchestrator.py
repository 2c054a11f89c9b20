"""Readiness-gated installation of a resolved component set.

The orchestrator never computes a full topological order up front.
Instead it runs passes: each pass submits every remaining component whose
registry dependencies are all installed to the batch engine as one chunk.
Successes unlock their dependents for the next pass.

When a pass finds nothing ready while components remain, the remainder
is stuck. Each stuck component is then failed, in name order, with one of
two errors:

- ``CircularDependencyError`` if it sits on a dependency cycle among the
  stuck components (a strongly connected group of two or more, or a
  self-dependency).
- ``DependencyFailed`` otherwise: it is merely waiting on something that
  failed, is on a cycle, or is missing from the set. ``blocked_by`` names
  those root causes rather than the stuck intermediate dependencies.

Usage::

    orchestrator = InstallOrchestrator(FileSystemWriter(Path("components")))
    result = await orchestrator.install(resolved, BatchOptions(concurrency=4))
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping

from compsync.core.batch import BatchFailure, BatchOptions, BatchResult, run_batch
from compsync.core.dependency.graph import ComponentGraph
from compsync.core.events import INSTALL_PROGRESS, EventStream
from compsync.core.install.writer import ComponentWriter
from compsync.core.models import ComponentDescriptor
from compsync.exceptions import CircularDependencyError, DependencyFailed

logger = logging.getLogger(__name__)


def _name(descriptor: ComponentDescriptor) -> str:
    return descriptor.name


class InstallOrchestrator:
    """Install resolved components dependency-first through the batch engine.

    Args:
        writer: Filesystem collaborator that writes component files.
        events: Optional progress event stream.
    """

    def __init__(
        self,
        writer: ComponentWriter,
        *,
        events: EventStream | None = None,
    ) -> None:
        self._writer = writer
        self._events = events if events is not None else EventStream()

    async def install(
        self,
        resolved: Mapping[str, ComponentDescriptor],
        options: BatchOptions | None = None,
        *,
        already_installed: Iterable[str] = (),
        cancel: asyncio.Event | None = None,
    ) -> BatchResult[ComponentDescriptor]:
        """Install every component in ``resolved``.

        Args:
            resolved: Name to descriptor mapping, typically a ``ResolvedSet``.
            options: Batch options applied to each pass. ``timeout`` covers
                the whole install, not each pass.
            already_installed: Names treated as installed before the first
                pass. Members of ``resolved`` listed here are not written
                and are reported as skipped.
            cancel: Event that stops the install early.

        Returns:
            Aggregate ``BatchResult`` over the whole install. ``stats.total``
            equals ``len(resolved)``.
        """
        options = options if options is not None else BatchOptions()
        installed = set(already_installed)
        order = {name: i for i, name in enumerate(resolved)}
        remaining = {n: d for n, d in resolved.items() if n not in installed}
        result: BatchResult[ComponentDescriptor] = BatchResult()
        result.skipped.extend(d for n, d in resolved.items() if n in installed)
        progress = _Progress(self._events, len(resolved))
        for descriptor in result.skipped:
            progress.settle(descriptor.name, "skipped")

        async def _install_one(descriptor: ComponentDescriptor) -> list[str]:
            paths = await self._writer.write_component_files(descriptor)
            progress.settle(descriptor.name, "installed")
            return paths

        cancel = cancel if cancel is not None else asyncio.Event()
        timeout = options.timeout
        pass_options = dataclasses.replace(options, timeout=None)

        async def _expire() -> None:
            await asyncio.sleep(timeout)
            if not cancel.is_set():
                logger.warning("Install timed out after %ss, cancelling", timeout)
                cancel.set()

        watcher = asyncio.ensure_future(_expire()) if timeout is not None else None
        graph = ComponentGraph.from_descriptors(resolved.values())
        started = time.perf_counter()
        passes = 0
        try:
            passes = await self._run_passes(
                graph, remaining, installed, order, result, progress,
                _install_one, pass_options, cancel,
            )
        finally:
            if watcher is not None:
                watcher.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watcher

        for descriptor in remaining.values():
            result.skipped.append(descriptor)
            progress.settle(descriptor.name, "skipped")

        stats = result.stats
        stats.total = len(resolved)
        stats.succeeded_count = len(result.succeeded)
        stats.failed_count = len(result.failed)
        stats.skipped_count = len(result.skipped)
        stats.duration_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "Install finished: %d installed, %d failed, %d skipped in %d pass(es)",
            stats.succeeded_count, stats.failed_count, stats.skipped_count, passes,
        )
        return result

    async def _run_passes(
        self,
        graph: ComponentGraph,
        remaining: dict[str, ComponentDescriptor],
        installed: set[str],
        order: dict[str, int],
        result: BatchResult[ComponentDescriptor],
        progress: _Progress,
        install_one: Callable[[ComponentDescriptor], Awaitable[list[str]]],
        options: BatchOptions,
        cancel: asyncio.Event,
    ) -> int:
        passes = 0
        while remaining:
            if cancel.is_set():
                break
            ready = [
                d for d in remaining.values()
                if all(dep in installed for dep in d.registry_dependencies)
            ]
            if not ready:
                self._fail_stuck(graph, remaining, installed, order, result, progress)
                break

            passes += 1
            logger.debug("Install pass %d: %s", passes, ", ".join(d.name for d in ready))
            chunk = await run_batch(
                ready, install_one, options, key=_name, cancel=cancel, events=self._events
            )
            for descriptor in chunk.succeeded:
                installed.add(descriptor.name)
                del remaining[descriptor.name]
                result.succeeded.append(descriptor)
                result.values[descriptor.name] = chunk.values.get(descriptor.name)
            for failure in chunk.failed:
                del remaining[failure.item.name]
                failure.index = order[failure.item.name]
                result.failed.append(failure)
                progress.settle(failure.item.name, "failed")
            if chunk.failed:
                blocked = graph.dependents(f.item.name for f in chunk.failed) & remaining.keys()
                if blocked:
                    logger.info("Blocked by failed dependencies: %s", ", ".join(sorted(blocked)))
            if chunk.skipped or (chunk.failed and not options.continue_on_error):
                break
        return passes

    @staticmethod
    def _fail_stuck(
        graph: ComponentGraph,
        remaining: dict[str, ComponentDescriptor],
        installed: set[str],
        order: dict[str, int],
        result: BatchResult[ComponentDescriptor],
        progress: _Progress,
    ) -> None:
        cycle_of: dict[str, list[str]] = {}
        for members in ComponentGraph.from_descriptors(remaining.values()).cycles():
            for member in members:
                cycle_of[member] = members

        roots = (
            {f.item.name for f in result.failed} | set(cycle_of) | graph.missing()
        ) - installed

        for name in sorted(remaining):
            descriptor = remaining[name]
            if name in cycle_of:
                error: Exception = CircularDependencyError(name, cycle_of[name])
            else:
                reachable = graph.transitive_dependencies(name)
                blocked_by = reachable & roots or {
                    d for d in descriptor.registry_dependencies if d not in installed
                }
                error = DependencyFailed(name, blocked_by)
            logger.warning("%s", error)
            result.failed.append(
                BatchFailure(item=descriptor, error=error, attempts=0, index=order[name])
            )
            progress.settle(name, "failed")
        remaining.clear()


class _Progress:
    """Counter behind ``install:progress`` events."""

    def __init__(self, events: EventStream, total: int) -> None:
        self._events = events
        self.total = total
        self.current = 0

    def settle(self, name: str, action: str) -> None:
        self.current += 1
        self._events.emit(
            INSTALL_PROGRESS, current=self.current, total=self.total, name=name, action=action
        )
