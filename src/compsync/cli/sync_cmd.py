"""``compsync sync`` / ``check`` / ``status`` — Incremental registry sync.

``sync`` brings local components in line with the registry, skipping
anything whose version and files are unchanged since the last run.
``check`` lists available updates without writing anything; ``status``
summarises the persisted sync state.

Usage::

    compsync sync                          # update previously synced components
    compsync sync --components card,dialog
    compsync sync --categories forms --parallel 8
    compsync sync --all --force
    compsync check
    compsync status

Exit Codes:
    0 — Success (or nothing needed syncing).
    1 — One or more components failed, or the registry is unreachable.
    2 — Nothing to sync: no components requested and none synced before.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from compsync.cli.common import (
    _run_async,
    get_settings,
    handle_errors,
    open_registry,
    parse_names,
)
from compsync.config import Settings
from compsync.core.batch import RetryPolicy
from compsync.core.install import FileSystemWriter
from compsync.core.sync import (
    RegistrySync,
    SyncOptions,
    SyncResult,
    SyncStateManager,
    UpdateInfo,
)
from compsync.registry import RegistryClient


def _build_sync(settings: Settings, client: RegistryClient) -> RegistrySync:
    return RegistrySync(
        client,
        SyncStateManager(Path(settings.state_file)),
        FileSystemWriter(Path(settings.components_dir)),
        retry=RetryPolicy(base_delay=settings.retry_delay),
    )


async def _sync(settings: Settings, options: SyncOptions, clear_cache: bool) -> SyncResult:
    client = open_registry(settings)
    if clear_cache:
        client.cache.clear()
    try:
        return await _build_sync(settings, client).sync(options)
    finally:
        await client.aclose()


async def _check(settings: Settings, force_refresh: bool) -> list[UpdateInfo]:
    client = open_registry(settings)
    try:
        return await _build_sync(settings, client).check_for_updates(force_refresh)
    finally:
        await client.aclose()


@click.command("sync")
@click.option("--components", default=None,
              help="Comma-separated component names to sync.")
@click.option("--categories", default=None,
              help="Comma-separated categories to sync.")
@click.option("--all", "all_components", is_flag=True, default=False,
              help="Sync every component in the registry.")
@click.option("--force", is_flag=True, default=False,
              help="Reinstall even when local copies are current.")
@click.option("--dry-run", is_flag=True, default=False,
              help="Show what would change without writing anything.")
@click.option("--parallel", "-p", type=click.IntRange(min=1), default=None,
              help="Parallel fetches and installs (default: configured concurrency).")
@click.option("--clear-cache", is_flag=True, default=False,
              help="Clear the registry cache before syncing.")
@click.option(
    "--format", "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text).",
)
@click.pass_context
@handle_errors
def sync_command(
    ctx: click.Context,
    components: str | None,
    categories: str | None,
    all_components: bool,
    force: bool,
    dry_run: bool,
    parallel: int | None,
    clear_cache: bool,
    output_format: str,
) -> None:
    """Sync components from the registry.

    Without --components, --categories or --all, every previously synced
    component is checked for updates.
    """
    settings = get_settings(ctx).override(concurrency=parallel)
    options = SyncOptions(
        components=parse_names(components),
        categories=parse_names(categories),
        all_components=all_components,
        force=force,
        force_refresh=clear_cache,
        dry_run=dry_run,
        parallel=settings.concurrency,
        max_retries=settings.max_retries,
        continue_on_error=settings.continue_on_error,
        timeout=settings.timeout,
    )
    result: SyncResult = _run_async(_sync(settings, options, clear_cache))  # type: ignore[assignment]

    if not (result.synced or result.updated or result.skipped or result.failed):
        click.echo("Nothing to sync. Use --components, --categories or --all.")
        sys.exit(2)

    if output_format == "json":
        from compsync.cli.output import print_json

        print_json(result.to_dict())
    else:
        from compsync.cli.output import print_sync_result

        print_sync_result(result)
    sys.exit(0 if result.ok else 1)


@click.command("check")
@click.option("--refresh", is_flag=True, default=False,
              help="Bypass the registry cache.")
@click.option(
    "--format", "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text).",
)
@click.pass_context
@handle_errors
def check_command(ctx: click.Context, refresh: bool, output_format: str) -> None:
    """List synced components with newer registry versions."""
    settings = get_settings(ctx)
    updates: list[UpdateInfo] = _run_async(_check(settings, refresh))  # type: ignore[assignment]

    if output_format == "json":
        from compsync.cli.output import print_json

        print_json([u.to_dict() for u in updates])
    else:
        from compsync.cli.output import print_updates

        print_updates(updates)
    sys.exit(0)


@click.command("status")
@click.option(
    "--format", "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text).",
)
@click.pass_context
@handle_errors
def status_command(ctx: click.Context, output_format: str) -> None:
    """Show sync state statistics."""
    settings = get_settings(ctx)
    manager = SyncStateManager(Path(settings.state_file))
    state = manager.load()
    stats = manager.stats()

    if output_format == "json":
        from compsync.cli.output import print_json

        print_json(state.to_dict())
    else:
        from compsync.cli.output import print_status

        print_status(stats, state.synced_components)
    sys.exit(0)
