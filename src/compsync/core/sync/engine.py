"""Incremental registry sync.

``RegistrySync`` ties the pieces together for one run::

    index ─► pick targets ─► should_sync? ─► resolve ─► install ─► record ─► save

State is loaded once at the start and saved once at the end. Targets
that are already current (same version, local files unchanged) are never
fetched, so a no-op sync costs one index request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from operator import attrgetter

from compsync.core.batch import BatchOptions, RetryPolicy
from compsync.core.dependency.resolver import DependencyResolver
from compsync.core.events import SYNC_COMPLETE, SYNC_ERROR, SYNC_START, EventStream
from compsync.core.install.orchestrator import InstallOrchestrator
from compsync.core.install.writer import ComponentWriter
from compsync.core.models import ResolvedSet
from compsync.core.sync.models import SyncOptions, SyncResult, UpdateInfo
from compsync.core.sync.state import SyncStateManager
from compsync.core.versions import is_breaking_change
from compsync.exceptions import ComponentNotFound, ResolutionError
from compsync.registry.base import IndexEntry, RegistryPort

logger = logging.getLogger(__name__)


class RegistrySync:
    """Sync components from a registry into a local directory.

    Args:
        registry: Registry port to read the index and descriptors from.
        state: Owner of the persisted sync state.
        writer: Filesystem collaborator used for fingerprints and writes.
        events: Optional progress event stream.
        retry: Backoff policy for install retries.
    """

    def __init__(
        self,
        registry: RegistryPort,
        state: SyncStateManager,
        writer: ComponentWriter,
        *,
        events: EventStream | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.registry = registry
        self.state = state
        self.writer = writer
        self.events = events if events is not None else EventStream()
        self.retry = retry if retry is not None else RetryPolicy()

    async def sync(
        self,
        options: SyncOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SyncResult:
        """Run one sync.

        Args:
            options: What to sync and how.
            cancel: Event that stops in-progress installs.

        Returns:
            Per-component outcome of the run.

        Raises:
            ResolutionError: If dependency resolution fails. Every seed is
                recorded as failed and the state is saved first.
            RegistryUnreachable: If the registry cannot be reached.
            SyncStateError: If the state file is corrupt or unwritable.
        """
        options = options if options is not None else SyncOptions()
        started = time.perf_counter()
        self.state.load()
        index = await self.registry.fetch_index(force_refresh=options.force_refresh)
        latest = {entry.name: entry.latest_version for entry in index}
        result = SyncResult(dry_run=options.dry_run)

        targets = self._select_targets(options, index, result)
        self.events.emit(SYNC_START, total=len(targets), dry_run=options.dry_run)

        seeds: list[str] = []
        for name in targets:
            if self._needs_sync(name, latest[name], options.force):
                seeds.append(name)
            else:
                logger.debug("%s@%s is current, skipping", name, latest[name])
                result.skipped.append(name)

        if seeds:
            resolver = DependencyResolver(
                self.registry, concurrency=options.parallel, events=self.events
            )
            try:
                resolved = await resolver.resolve(seeds)
            except ResolutionError as exc:
                for name in seeds:
                    self._fail(result, name, str(exc))
                if not options.dry_run:
                    self.state.mark_synced()
                    self.state.save()
                raise

            current = self._current_dependencies(resolved, seeds, options.force)
            if options.dry_run:
                for name in resolved:
                    if name not in current:
                        self._classify(result, name)
            else:
                await self._install(resolved, current, options, result, cancel)

        if not options.dry_run:
            self.state.mark_synced()
            self.state.save()
        result.duration_ms = (time.perf_counter() - started) * 1000.0
        self.events.emit(
            SYNC_COMPLETE,
            synced=len(result.synced),
            updated=len(result.updated),
            failed=len(result.failed),
            skipped=len(result.skipped),
            duration_ms=result.duration_ms,
        )
        logger.info(
            "Sync finished: %d synced, %d updated, %d skipped, %d failed",
            len(result.synced), len(result.updated), len(result.skipped), len(result.failed),
        )
        return result

    async def check_for_updates(self, force_refresh: bool = False) -> list[UpdateInfo]:
        """List synced components whose index version differs from the state.

        Components that have left the registry are ignored.
        """
        self.state.load()
        latest = {
            entry.name: entry.latest_version
            for entry in await self.registry.fetch_index(force_refresh=force_refresh)
        }
        updates: list[UpdateInfo] = []
        for name in self.state.synced_names():
            if name not in latest:
                logger.debug("%s is no longer in the registry", name)
                continue
            current = self.state.entry(name).version  # type: ignore[union-attr]
            if latest[name] != current:
                updates.append(
                    UpdateInfo(
                        name=name,
                        current_version=current,
                        latest_version=latest[name],
                        breaking=is_breaking_change(current, latest[name]),
                    )
                )
        return updates

    # -- Internals ----------------------------------------------------------

    def _select_targets(
        self,
        options: SyncOptions,
        index: list[IndexEntry],
        result: SyncResult,
    ) -> list[str]:
        known = {entry.name for entry in index}
        if options.components:
            targets: list[str] = []
            for name in dict.fromkeys(options.components):
                if name in known:
                    targets.append(name)
                else:
                    logger.warning("Component %s not found in registry", name)
                    self._fail(result, name, str(ComponentNotFound(name)))
            return targets
        if options.categories:
            wanted = set(options.categories)
            return [entry.name for entry in index if entry.category in wanted]
        if options.all_components:
            return [entry.name for entry in index]
        targets = []
        for name in self.state.synced_names():
            if name in known:
                targets.append(name)
            else:
                logger.debug("%s is no longer in the registry", name)
        return targets

    def _needs_sync(self, name: str, version: str, force: bool) -> bool:
        entry = self.state.entry(name)
        local = self.writer.local_fingerprint(entry.paths) if entry is not None else None
        return self.state.should_sync(name, version, local, force)

    def _current_dependencies(
        self, resolved: ResolvedSet, seeds: Iterable[str], force: bool
    ) -> set[str]:
        seed_set = set(seeds)
        return {
            name
            for name, descriptor in resolved.items()
            if name not in seed_set and not self._needs_sync(name, descriptor.version, force)
        }

    async def _install(
        self,
        resolved: ResolvedSet,
        current: set[str],
        options: SyncOptions,
        result: SyncResult,
        cancel: asyncio.Event | None,
    ) -> None:
        orchestrator = InstallOrchestrator(self.writer, events=self.events)
        batch_options = BatchOptions(
            concurrency=options.parallel,
            max_retries=options.max_retries,
            continue_on_error=options.continue_on_error,
            retry=self.retry,
            timeout=options.timeout,
        )
        outcome = await orchestrator.install(
            resolved, batch_options, already_installed=current, cancel=cancel
        )
        for descriptor in outcome.succeeded:
            self._classify(result, descriptor.name)
            self.state.record_success(
                descriptor.name, descriptor.version, descriptor.fingerprint, descriptor.paths
            )
        for name, message in outcome.errors_by_key(attrgetter("name")).items():
            self._fail(result, str(name), message)
        for descriptor in outcome.skipped:
            if descriptor.name not in current:
                result.skipped.append(descriptor.name)

    def _classify(self, result: SyncResult, name: str) -> None:
        if self.state.entry(name) is not None:
            result.updated.append(name)
        else:
            result.synced.append(name)

    def _fail(self, result: SyncResult, name: str, message: str) -> None:
        result.failed.append(name)
        result.errors[name] = message
        if not result.dry_run:
            self.state.record_failure(name, message)
        self.events.emit(SYNC_ERROR, name=name, error=message)
