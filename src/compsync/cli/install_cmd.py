"""``compsync install NAMES...`` — Resolve and install components.

Resolves the requested components with all of their registry
dependencies, then writes them into the components directory in
dependency order, with bounded concurrency and per-component retries.
Successful installs are recorded in the sync state so later ``compsync
sync`` runs can skip them while they stay current.

Exit Codes:
    0 — Every component installed.
    1 — Resolution failed, or one or more components failed to install.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from compsync.cli.common import _run_async, get_settings, handle_errors, open_registry
from compsync.config import Settings
from compsync.core.batch import BatchOptions, BatchResult, RetryPolicy
from compsync.core.dependency import DependencyResolver
from compsync.core.install import FileSystemWriter, InstallOrchestrator
from compsync.core.models import ComponentDescriptor, ResolvedSet
from compsync.core.sync import SyncStateManager


async def _install(
    settings: Settings,
    names: tuple[str, ...],
    options: BatchOptions,
    dry_run: bool,
) -> tuple[ResolvedSet, BatchResult[ComponentDescriptor] | None]:
    client = open_registry(settings)
    try:
        resolved = await DependencyResolver(
            client, concurrency=settings.concurrency
        ).resolve(names)
    finally:
        await client.aclose()
    if dry_run:
        return resolved, None

    state = SyncStateManager(Path(settings.state_file))
    state.load()
    orchestrator = InstallOrchestrator(FileSystemWriter(Path(settings.components_dir)))
    result = await orchestrator.install(resolved, options)
    for descriptor in result.succeeded:
        state.record_success(
            descriptor.name, descriptor.version, descriptor.fingerprint, descriptor.paths
        )
    for failure in result.failed:
        state.record_failure(failure.item.name, failure.message)
    state.save()
    return resolved, result


@click.command("install")
@click.argument("names", nargs=-1, required=True)
@click.option("--concurrency", "-c", type=click.IntRange(min=1), default=None,
              help="Components installed in parallel.")
@click.option("--retries", type=click.IntRange(min=0), default=None,
              help="Extra attempts per failing component.")
@click.option("--continue-on-error/--fail-fast", default=None,
              help="Keep installing after a failure (default) or stop scheduling.")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Cancel the install after this many seconds.")
@click.option("--dir", "components_dir", type=click.Path(file_okay=False), default=None,
              help="Components directory (default: configured components_dir).")
@click.option("--dry-run", is_flag=True, default=False,
              help="Resolve and show the install plan without writing files.")
@click.pass_context
@handle_errors
def install_command(
    ctx: click.Context,
    names: tuple[str, ...],
    concurrency: int | None,
    retries: int | None,
    continue_on_error: bool | None,
    timeout: float | None,
    components_dir: str | None,
    dry_run: bool,
) -> None:
    """Install NAMES and their registry dependencies.

    Examples:

        compsync install card

        compsync install card dialog --concurrency 8 --retries 2

        compsync install card --dry-run
    """
    settings = get_settings(ctx).override(
        concurrency=concurrency,
        max_retries=retries,
        continue_on_error=continue_on_error,
        timeout=timeout,
        components_dir=components_dir,
    )
    options = BatchOptions(
        concurrency=settings.concurrency,
        max_retries=settings.max_retries,
        continue_on_error=settings.continue_on_error,
        retry=RetryPolicy(base_delay=settings.retry_delay),
        timeout=settings.timeout,
    )
    resolved, result = _run_async(_install(settings, names, options, dry_run))  # type: ignore[misc]

    from compsync.cli.output import print_batch_summary, print_resolved

    if result is None:
        print_resolved(resolved)
        click.echo("\nDry run: no files written.")
        sys.exit(0)

    print_batch_summary(result)
    sys.exit(1 if result.failed else 0)
