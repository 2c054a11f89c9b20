"""Property-based tests for resolution and dependency-ordered installation.

Verifies over random registries, cycles and self-dependencies included:
- Closure: every registry dependency of a resolved component is resolved.
- Minimality: the resolved set is exactly what is reachable from the seeds.
- Fetch-once: each reachable name is fetched exactly once.
- Determinism: sequential and parallel resolution produce equal results.
- Ordering: a component is only written after all of its dependencies.
- Accounting: every resolved component ends up in exactly one outcome.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Iterable

from hypothesis import given, settings
from hypothesis import strategies as st

from compsync.core.batch import BatchOptions
from compsync.core.dependency import DependencyResolver
from compsync.core.install import ComponentWriter, InstallOrchestrator
from compsync.core.models import ComponentDescriptor, ComponentFile
from compsync.exceptions import CircularDependencyError, ComponentNotFound
from compsync.registry.base import IndexEntry, RegistryPort


# ---------------------------------------------------------------------------
# Strategies and in-memory collaborators
# ---------------------------------------------------------------------------

component_names = ["accordion", "badge", "button", "card", "dialog", "icon", "input", "table"]


@st.composite
def dependency_graphs(draw: st.DrawFn, acyclic: bool = False) -> dict[str, list[str]]:
    """Generate name -> registry dependencies over a subset of names."""
    names = draw(st.lists(st.sampled_from(component_names), min_size=1, max_size=8, unique=True))
    graph: dict[str, list[str]] = {}
    for i, name in enumerate(names):
        pool = names[:i] if acyclic else names
        deps = draw(st.lists(st.sampled_from(pool), max_size=3, unique=True)) if pool else []
        graph[name] = deps
    return graph


class _Registry(RegistryPort):
    def __init__(self, graph: dict[str, list[str]]) -> None:
        self.graph = graph
        self.fetches: Counter[str] = Counter()

    async def fetch_index(self, force_refresh: bool = False) -> list[IndexEntry]:
        return [IndexEntry(name=n, latest_version="1.0.0") for n in self.graph]

    async def fetch_descriptor(self, name: str) -> ComponentDescriptor:
        self.fetches[name] += 1
        await asyncio.sleep(0)
        if name not in self.graph:
            raise ComponentNotFound(name)
        return ComponentDescriptor(
            name=name,
            version="1.0.0",
            registry_dependencies=tuple(self.graph[name]),
            files=(ComponentFile(f"{name}.tsx", name),),
        )


class _RecordingWriter(ComponentWriter):
    def __init__(self) -> None:
        self.written: list[str] = []

    def file_exists(self, path: str) -> bool:
        return False

    async def write_component_files(self, descriptor: ComponentDescriptor) -> list[str]:
        await asyncio.sleep(0)
        self.written.append(descriptor.name)
        return list(descriptor.paths)

    def local_fingerprint(self, paths: Iterable[str]) -> str | None:
        return None


def _reachable(graph: dict[str, list[str]], seeds: Iterable[str]) -> set[str]:
    seen: set[str] = set()
    stack = list(seeds)
    while stack:
        name = stack.pop()
        if name not in seen:
            seen.add(name)
            stack.extend(graph.get(name, []))
    return seen


def _on_cycle(graph: dict[str, list[str]], name: str) -> bool:
    return name in _reachable(graph, graph[name])


def _resolve(graph, seeds, concurrency=1):
    registry = _Registry(graph)
    resolved = asyncio.run(DependencyResolver(registry, concurrency=concurrency).resolve(seeds))
    return resolved, registry


# ---------------------------------------------------------------------------
# Resolution properties
# ---------------------------------------------------------------------------


@given(graph=dependency_graphs(), data=st.data())
@settings(max_examples=75, deadline=None)
def test_resolution_is_closed_minimal_and_fetches_once(graph, data) -> None:
    """Resolution equals the reachable set and fetches each name once."""
    seeds = data.draw(st.lists(st.sampled_from(sorted(graph)), min_size=1, max_size=3))
    resolved, registry = _resolve(graph, seeds)

    assert set(resolved) == _reachable(graph, seeds)
    for descriptor in resolved.values():
        assert set(descriptor.registry_dependencies) <= set(resolved)
    assert set(registry.fetches) == set(resolved)
    assert all(count == 1 for count in registry.fetches.values())


@given(graph=dependency_graphs(), data=st.data(), concurrency=st.integers(min_value=2, max_value=6))
@settings(max_examples=50, deadline=None)
def test_parallel_resolution_matches_sequential(graph, data, concurrency) -> None:
    """Bounded-parallel resolution yields the same set in the same order."""
    seeds = data.draw(st.lists(st.sampled_from(sorted(graph)), min_size=1, max_size=3))
    sequential, _ = _resolve(graph, seeds)
    parallel, registry = _resolve(graph, seeds, concurrency)
    assert parallel == sequential
    assert all(count == 1 for count in registry.fetches.values())


@given(graph=dependency_graphs(), data=st.data())
@settings(max_examples=50, deadline=None)
def test_resolution_is_idempotent(graph, data) -> None:
    seeds = data.draw(st.lists(st.sampled_from(sorted(graph)), min_size=1, max_size=3))
    first, _ = _resolve(graph, seeds)
    second, _ = _resolve(graph, seeds)
    assert first == second


# ---------------------------------------------------------------------------
# Installation properties
# ---------------------------------------------------------------------------


@given(graph=dependency_graphs(), concurrency=st.integers(min_value=1, max_value=4))
@settings(max_examples=75, deadline=None)
def test_install_respects_dependency_order(graph, concurrency) -> None:
    """Written components come after their deps; cycle members are never written."""
    resolved, _ = _resolve(graph, sorted(graph))
    writer = _RecordingWriter()
    result = asyncio.run(
        InstallOrchestrator(writer).install(resolved, BatchOptions(concurrency=concurrency))
    )

    position = {name: i for i, name in enumerate(writer.written)}
    for name in writer.written:
        for dep in graph[name]:
            assert position[dep] < position[name]
        assert not _on_cycle(graph, name)

    outcomes = (
        [d.name for d in result.succeeded]
        + [f.item.name for f in result.failed]
        + [d.name for d in result.skipped]
    )
    assert sorted(outcomes) == sorted(resolved)
    assert result.stats.total == len(resolved)

    for failure in result.failed:
        if isinstance(failure.error, CircularDependencyError):
            assert _on_cycle(graph, failure.item.name)


@given(graph=dependency_graphs(acyclic=True), concurrency=st.integers(min_value=1, max_value=4))
@settings(max_examples=50, deadline=None)
def test_acyclic_graphs_install_completely(graph, concurrency) -> None:
    resolved, _ = _resolve(graph, sorted(graph))
    writer = _RecordingWriter()
    result = asyncio.run(
        InstallOrchestrator(writer).install(resolved, BatchOptions(concurrency=concurrency))
    )
    assert result.ok
    assert sorted(writer.written) == sorted(graph)
