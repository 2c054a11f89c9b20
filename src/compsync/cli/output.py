"""Rich output formatting helpers for the compsync CLI.

Provides consistent terminal output for resolution results, batch and
sync summaries, update checks, and state status.

Outcome Color Mapping:
    installed/synced = green, updated = cyan, skipped = dim, failed = bold red
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from compsync.core.batch import BatchResult
from compsync.core.models import ComponentDescriptor, ResolvedSet
from compsync.core.sync import SyncedEntry, SyncResult, UpdateInfo

console = Console()
err_console = Console(stderr=True)


def format_duration(ms: float) -> str:
    """Format milliseconds as ``850ms``, ``2.4s`` or ``1m 5s``."""
    if ms < 1000:
        return f"{ms:.0f}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m {rest}s"


def print_error(message: str) -> None:
    """Print a one-line error to stderr."""
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False)


def print_resolved(resolved: ResolvedSet) -> None:
    """Print a resolved set in install order.

    Args:
        resolved: Output of dependency resolution.
    """
    if not resolved:
        console.print("[dim]No components to resolve.[/dim]")
        return

    console.print(
        Panel(f"[bold green]Resolved {len(resolved)} component(s)[/bold green]",
              title="Dependency Resolution")
    )
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Component", style="bold")
    table.add_column("Version")
    table.add_column("Depends On", style="dim")
    table.add_column("Files", justify="right")
    for position, name in enumerate(resolved.install_order(), start=1):
        descriptor = resolved[name]
        table.add_row(
            str(position),
            name,
            descriptor.version,
            ", ".join(descriptor.registry_dependencies) or "-",
            str(len(descriptor.files)),
        )
    console.print(table)

    external = resolved.external_dependencies()
    if external:
        console.print("[bold]External packages:[/bold]")
        for package, spec in external.items():
            console.print(f"  {package} {spec}", highlight=False)


def print_batch_summary(
    result: BatchResult[ComponentDescriptor],
    title: str = "Install",
) -> None:
    """Print counts and every failure's innermost error.

    Args:
        result: Aggregate result of an install.
        title: Panel title.
    """
    stats = result.stats
    parts = [f"[bold]{stats.total}[/bold] total"]
    parts.append(f"[green]{stats.succeeded_count} succeeded[/green]")
    if stats.failed_count:
        parts.append(f"[red]{stats.failed_count} failed[/red]")
    else:
        parts.append("0 failed")
    parts.append(f"[dim]{stats.skipped_count} skipped[/dim]")
    parts.append(format_duration(stats.duration_ms))
    style = "red" if stats.failed_count else "green"
    console.print(Panel(" | ".join(parts), title=title, border_style=style))

    if result.failed:
        _print_failures({f.item.name: f.message for f in result.failed})


def print_sync_result(result: SyncResult) -> None:
    """Print the outcome of a sync run."""
    title = "Sync (dry run)" if result.dry_run else "Sync"
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")
    table.add_column("Components")
    rows = [
        ("synced", "green", result.synced),
        ("updated", "cyan", result.updated),
        ("skipped", "dim", result.skipped),
        ("failed", "bold red", result.failed),
    ]
    for label, style, names in rows:
        table.add_row(Text(label, style=style), str(len(names)), ", ".join(names) or "-")
    console.print(table)
    console.print(f"Completed in {format_duration(result.duration_ms)}")

    if result.errors:
        _print_failures(result.errors)


def print_updates(updates: list[UpdateInfo]) -> None:
    """Print available updates, flagging breaking ones."""
    if not updates:
        console.print("[green]All synced components are up to date.[/green]")
        return

    table = Table(title="Available Updates", show_header=True, header_style="bold")
    table.add_column("Component", style="bold")
    table.add_column("Current")
    table.add_column("Latest")
    table.add_column("Breaking", justify="center")
    for update in updates:
        breaking = Text("yes", style="bold yellow") if update.breaking else Text("no", style="dim")
        table.add_row(update.name, update.current_version, update.latest_version, breaking)
    console.print(table)


def print_status(stats: Mapping[str, Any], entries: Mapping[str, SyncedEntry]) -> None:
    """Print sync state statistics and the synced component list."""
    last_sync = stats.get("last_sync") or "never"
    console.print(
        Panel(
            Text.assemble(
                ("Last sync: ", "bold"), (str(last_sync), ""),
                ("  Synced: ", "bold"), (str(stats.get("synced", 0)), "green"),
                ("  Failed: ", "bold"), (str(stats.get("failed", 0)), "red"),
            ),
            title="Sync Status",
        )
    )
    if entries:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Component", style="bold")
        table.add_column("Version")
        table.add_column("Synced At", style="dim")
        for name in sorted(entries):
            entry = entries[name]
            table.add_row(name, entry.version, entry.synced_at)
        console.print(table)
    failed = stats.get("failed_components") or []
    if failed:
        console.print(f"[red]Failing:[/red] {escape(', '.join(failed))}", highlight=False)


def _print_failures(errors: Mapping[str, str]) -> None:
    console.print("[bold red]Failures:[/bold red]")
    for name in sorted(errors):
        console.print(f"  [red]- {escape(name)}:[/red] {escape(errors[name])}", highlight=False)


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout.

    Args:
        data: Any JSON-serializable data structure.
    """
    console.print_json(json.dumps(data, default=str))
