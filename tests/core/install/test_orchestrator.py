"""Tests for InstallOrchestrator — readiness-gated install passes.

Validates:
    - Dependencies are always written before their dependents.
    - Cycles fail as a unit with CircularDependencyError and write nothing.
    - Dependents of a failed component fail with DependencyFailed.
    - Fail-fast, already-installed seeding and progress events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

import pytest

from compsync.core.batch import BatchOptions
from compsync.core.events import INSTALL_PROGRESS, CollectingListener, EventStream
from compsync.core.install import ComponentWriter, InstallOrchestrator
from compsync.core.models import ComponentDescriptor, ResolvedSet
from compsync.exceptions import (
    BatchCancelledError,
    CircularDependencyError,
    DependencyFailed,
    PermissionDenied,
)


class _MemoryWriter(ComponentWriter):
    """Writer that records write order and raises configured errors."""

    def __init__(self, errors: dict[str, Exception] | None = None) -> None:
        self.errors = errors or {}
        self.written: list[str] = []

    def file_exists(self, path: str) -> bool:
        return False

    async def write_component_files(self, descriptor: ComponentDescriptor) -> list[str]:
        await asyncio.sleep(0)
        if descriptor.name in self.errors:
            raise self.errors[descriptor.name]
        self.written.append(descriptor.name)
        return list(descriptor.paths)

    def local_fingerprint(self, paths: Iterable[str]) -> str | None:
        return None


def _install(resolved, writer, options=None, **kwargs):
    orchestrator = InstallOrchestrator(writer, events=kwargs.pop("events", None))
    return asyncio.run(orchestrator.install(resolved, options, **kwargs))


def _errors(result) -> dict[str, Exception]:
    return {f.item.name: f.error for f in result.failed}


class TestOrdering:
    def test_dependencies_written_first(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("card", deps=["button", "icon"]),
            make_descriptor("button", deps=["icon"]),
            make_descriptor("icon"),
        ])
        writer = _MemoryWriter()
        result = _install(resolved, writer, BatchOptions(concurrency=4))
        assert writer.written == ["icon", "button", "card"]
        assert result.stats.succeeded_count == 3
        assert result.ok

    def test_independent_components_share_a_pass(self, make_descriptor) -> None:
        resolved = ResolvedSet([make_descriptor(n) for n in ("a", "b", "c")])
        writer = _MemoryWriter()
        result = _install(resolved, writer)
        assert sorted(writer.written) == ["a", "b", "c"]
        assert result.values["a"] == ["a/a.tsx"]


class TestStuckComponents:
    def test_cycle_fails_both_and_writes_nothing(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("p", deps=["q"]),
            make_descriptor("q", deps=["p"]),
        ])
        writer = _MemoryWriter()
        result = _install(resolved, writer)
        errors = _errors(result)
        assert set(errors) == {"p", "q"}
        assert all(isinstance(e, CircularDependencyError) for e in errors.values())
        assert errors["p"].cycle == ["p", "q"]
        assert "Circular dependency detected" in str(errors["p"])
        assert writer.written == []

    def test_dependent_of_failure_gets_dependency_failed(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("x", deps=["y"]),
            make_descriptor("y"),
        ])
        writer = _MemoryWriter({"y": PermissionDenied("y", "Permission denied writing y")})
        result = _install(resolved, writer)
        errors = _errors(result)
        assert isinstance(errors["y"], PermissionDenied)
        assert isinstance(errors["x"], DependencyFailed)
        assert not isinstance(errors["x"], CircularDependencyError)
        assert errors["x"].blocked_by == ["y"]

    def test_dependent_of_cycle_is_not_circular(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("app", deps=["p"]),
            make_descriptor("p", deps=["q"]),
            make_descriptor("q", deps=["p"]),
            make_descriptor("ok"),
        ])
        writer = _MemoryWriter()
        result = _install(resolved, writer)
        errors = _errors(result)
        assert isinstance(errors["app"], DependencyFailed)
        assert isinstance(errors["p"], CircularDependencyError)
        assert writer.written == ["ok"]

    def test_blocked_by_names_root_causes(self, make_descriptor, caplog) -> None:
        resolved = ResolvedSet([
            make_descriptor("card", deps=["button"]),
            make_descriptor("button", deps=["icon"]),
            make_descriptor("icon"),
            make_descriptor("app", deps=["p"]),
            make_descriptor("p", deps=["q"]),
            make_descriptor("q", deps=["p"]),
        ])
        writer = _MemoryWriter({"icon": PermissionDenied("icon", "denied")})
        logger = logging.getLogger("compsync.core.install.orchestrator")
        logger.addHandler(caplog.handler)
        try:
            with caplog.at_level(logging.INFO, logger=logger.name):
                result = _install(resolved, writer)
        finally:
            logger.removeHandler(caplog.handler)
        errors = _errors(result)
        assert errors["card"].blocked_by == ["icon"]
        assert errors["button"].blocked_by == ["icon"]
        assert errors["app"].blocked_by == ["p", "q"]
        assert "Blocked by failed dependencies: button, card" in caplog.text

    def test_self_dependency_is_circular(self, make_descriptor) -> None:
        resolved = ResolvedSet([make_descriptor("loop", deps=["loop"])])
        result = _install(resolved, _MemoryWriter())
        assert isinstance(result.failed[0].error, CircularDependencyError)

    def test_missing_dependency_blocks(self, make_descriptor) -> None:
        resolved = ResolvedSet([make_descriptor("card", deps=["ghost"])])
        result = _install(resolved, _MemoryWriter())
        error = result.failed[0].error
        assert isinstance(error, DependencyFailed)
        assert error.blocked_by == ["ghost"]

    def test_stuck_failures_sorted_and_indexed(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("zeta", deps=["alpha"]),
            make_descriptor("alpha", deps=["zeta"]),
        ])
        result = _install(resolved, _MemoryWriter())
        assert [f.item.name for f in result.failed] == ["alpha", "zeta"]
        assert [f.index for f in result.failed] == [1, 0]


class TestOptions:
    def test_already_installed_satisfies_dependencies(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("card", deps=["icon"]),
            make_descriptor("icon"),
        ])
        writer = _MemoryWriter()
        result = _install(resolved, writer, already_installed=["icon"])
        assert writer.written == ["card"]
        assert [d.name for d in result.skipped] == ["icon"]
        assert result.stats.total == 2

    def test_fail_fast_skips_unattempted(self, make_descriptor) -> None:
        resolved = ResolvedSet([
            make_descriptor("x", deps=["y"]),
            make_descriptor("y"),
            make_descriptor("z", deps=["y"]),
        ])
        writer = _MemoryWriter({"y": RuntimeError("nope")})
        result = _install(resolved, writer, BatchOptions(continue_on_error=False))
        assert [f.item.name for f in result.failed] == ["y"]
        assert sorted(d.name for d in result.skipped) == ["x", "z"]
        stats = result.stats
        assert stats.succeeded_count + stats.failed_count + stats.skipped_count == stats.total == 3

    def test_retries_apply_per_item(self, make_descriptor) -> None:
        attempts: dict[str, int] = {}

        class _FlakyWriter(_MemoryWriter):
            async def write_component_files(self, descriptor):
                attempts[descriptor.name] = attempts.get(descriptor.name, 0) + 1
                if attempts[descriptor.name] == 1:
                    raise OSError("transient")
                return await super().write_component_files(descriptor)

        resolved = ResolvedSet([make_descriptor("icon")])
        result = _install(resolved, _FlakyWriter(), BatchOptions(max_retries=1))
        assert result.ok
        assert attempts["icon"] == 2

    def test_pre_cancelled_install_skips_all(self, make_descriptor) -> None:
        async def main():
            cancel = asyncio.Event()
            cancel.set()
            orchestrator = InstallOrchestrator(_MemoryWriter())
            return await orchestrator.install(
                ResolvedSet([make_descriptor("a"), make_descriptor("b")]), cancel=cancel
            )

        result = asyncio.run(main())
        assert len(result.skipped) == 2

    def test_timeout_spans_all_passes(self, make_descriptor) -> None:
        """Once the install timeout fires, later passes start nothing."""
        delays = {"slow": 0.5, "fast": 0.0, "late": 0.1}

        class _DelayWriter(_MemoryWriter):
            async def write_component_files(self, descriptor):
                await asyncio.sleep(delays[descriptor.name])
                return await super().write_component_files(descriptor)

        writer = _DelayWriter()
        resolved = ResolvedSet([
            make_descriptor("slow"),
            make_descriptor("fast"),
            make_descriptor("late", deps=["fast"]),
        ])
        result = _install(resolved, writer, BatchOptions(concurrency=2, timeout=0.2))

        assert [d.name for d in result.succeeded] == ["fast"]
        assert [f.item.name for f in result.failed] == ["slow"]
        assert isinstance(result.failed[0].error, BatchCancelledError)
        assert [d.name for d in result.skipped] == ["late"]
        assert "late" not in writer.written
        assert result.stats.duration_ms < 450


class TestProgressEvents:
    def test_progress_counts_every_component(self, make_descriptor) -> None:
        events = EventStream()
        listener = CollectingListener()
        events.subscribe(listener)
        resolved = ResolvedSet([
            make_descriptor("card", deps=["icon"]),
            make_descriptor("icon"),
            make_descriptor("p", deps=["p"]),
        ])
        _install(resolved, _MemoryWriter(), events=events)
        progress = listener.of_type(INSTALL_PROGRESS)
        assert [e.data["current"] for e in progress] == [1, 2, 3]
        assert {e.data["total"] for e in progress} == {3}
        actions = {e.data["name"]: e.data["action"] for e in progress}
        assert actions == {"icon": "installed", "card": "installed", "p": "failed"}


@pytest.mark.parametrize("concurrency", [1, 3])
def test_diamond_installs_once_each(make_descriptor, concurrency) -> None:
    resolved = ResolvedSet([
        make_descriptor("card", deps=["button", "icon"]),
        make_descriptor("button", deps=["icon"]),
        make_descriptor("icon"),
    ])
    writer = _MemoryWriter()
    _install(resolved, writer, BatchOptions(concurrency=concurrency))
    assert sorted(writer.written) == ["button", "card", "icon"]
