"""Breadth-first dependency resolver for registry components.

Expands a seed set of component names into the closed transitive set of
descriptors reachable through ``registry_dependencies``.

Invariant (fetch-once): every reachable name is fetched from the registry
exactly once per resolution, however many dependents reference it. Diamond
dependencies resolve to a single fetch and cycles terminate.

Resolution is all-or-nothing: a missing component or an invalid payload
anywhere in the closure aborts the run, because a missing dependency makes
the requested set unbuildable. No partial ``ResolvedSet`` is ever returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable

from compsync.core.events import FETCH_COMPLETE, FETCH_START, EventStream
from compsync.core.models import ComponentDescriptor, ResolvedSet
from compsync.exceptions import ComponentNotFound, ResolutionError, SchemaInvalid
from compsync.registry.base import RegistryPort

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolve component names to their full transitive descriptor set.

    With ``concurrency == 1`` the queue is processed strictly one name at a
    time. With ``concurrency > 1`` each BFS frontier is fetched in parallel
    (bounded by a semaphore); the visited set is only updated between
    frontiers, so the fetch-once invariant still holds and the result
    order is identical to the sequential one.

    Args:
        registry: The registry port to fetch descriptors from.
        concurrency: Maximum number of descriptor fetches in flight.
        events: Optional progress event stream.
    """

    def __init__(
        self,
        registry: RegistryPort,
        *,
        concurrency: int = 1,
        events: EventStream | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._registry = registry
        self._concurrency = concurrency
        self._events = events if events is not None else EventStream()

    async def resolve(self, seed_names: Iterable[str]) -> ResolvedSet:
        """Resolve ``seed_names`` to a ``ResolvedSet``.

        Args:
            seed_names: Requested component names. Duplicates collapse;
                order determines result order.

        Returns:
            Mapping of every reachable name to its descriptor, in BFS order.

        Raises:
            ComponentNotFound: If any reachable name is absent from the
                registry. ``names`` lists every missing name found.
            SchemaInvalid: If any descriptor fails validation.
            RegistryUnreachable: On transport failure.
        """
        seeds = list(dict.fromkeys(seed_names))
        if self._concurrency == 1:
            descriptors = await self._resolve_sequential(seeds)
        else:
            descriptors = await self._resolve_parallel(seeds)
        resolved = ResolvedSet(descriptors)
        logger.info("Resolved %d seed(s) to %d component(s)", len(seeds), len(resolved))
        return resolved

    async def _fetch(self, name: str) -> ComponentDescriptor:
        self._events.emit(FETCH_START, name=name)
        descriptor = await self._registry.fetch_descriptor(name)
        self._events.emit(FETCH_COMPLETE, name=name, version=descriptor.version)
        return descriptor

    async def _resolve_sequential(self, seeds: list[str]) -> list[ComponentDescriptor]:
        visited: set[str] = set()
        queue: deque[str] = deque(seeds)
        result: list[ComponentDescriptor] = []

        while queue:
            name = queue.popleft()
            if name in visited:
                continue
            visited.add(name)
            descriptor = await self._fetch(name)
            result.append(descriptor)
            queue.extend(d for d in descriptor.registry_dependencies if d not in visited)

        return result

    async def _resolve_parallel(self, seeds: list[str]) -> list[ComponentDescriptor]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(name: str) -> ComponentDescriptor:
            async with semaphore:
                return await self._fetch(name)

        visited: set[str] = set()
        frontier = seeds
        result: list[ComponentDescriptor] = []

        while frontier:
            frontier = [n for n in dict.fromkeys(frontier) if n not in visited]
            if not frontier:
                break
            visited.update(frontier)
            outcomes = await asyncio.gather(
                *(_bounded(n) for n in frontier), return_exceptions=True
            )
            _raise_frontier_errors(frontier, outcomes)

            next_frontier: list[str] = []
            for descriptor in outcomes:
                result.append(descriptor)  # type: ignore[arg-type]
                next_frontier.extend(
                    d for d in descriptor.registry_dependencies  # type: ignore[union-attr]
                    if d not in visited
                )
            frontier = next_frontier

        return result


def _raise_frontier_errors(names: list[str], outcomes: list[object]) -> None:
    """Raise one aggregated error for every failure in a parallel frontier.

    Missing components take precedence over schema errors; any other
    exception (e.g. ``RegistryUnreachable``) is re-raised as-is.
    """
    missing: list[str] = []
    invalid: list[SchemaInvalid] = []
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, ComponentNotFound):
            missing.extend(outcome.names or [name])
        elif isinstance(outcome, SchemaInvalid):
            invalid.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
    if missing:
        raise ComponentNotFound(missing)
    if len(invalid) == 1:
        raise invalid[0]
    if invalid:
        names_bad = [n for err in invalid for n in err.names]
        raise ResolutionError(
            "Invalid descriptors: " + "; ".join(str(err) for err in invalid),
            names_bad,
        )
