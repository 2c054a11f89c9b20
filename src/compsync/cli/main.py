"""compsync CLI — Resolve, install and sync registry components.

Entry point for the ``compsync`` command-line tool. Registers all
subcommands under a single Click group.

Commands:
    resolve — Show the full dependency set for components.
    install — Resolve and install components with their dependencies.
    sync    — Incrementally sync components from the registry.
    check   — List available updates for synced components.
    status  — Show sync state statistics.

Usage::

    compsync resolve card
    compsync install card dialog --concurrency 8
    compsync sync --components card
    compsync --debug sync --all
    compsync --config ./compsync.yaml check
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from compsync import __version__
from compsync.cli.install_cmd import install_command
from compsync.cli.output import print_error
from compsync.cli.resolve_cmd import resolve_command
from compsync.cli.sync_cmd import check_command, status_command, sync_command
from compsync.config import load_settings
from compsync.exceptions import ConfigError


def configure_logging(debug: bool) -> None:
    """Route library logging through rich.

    DEBUG with rich tracebacks when ``debug`` is set, WARNING otherwise.
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
        markup=False,
    )
    root = logging.getLogger("compsync")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.WARNING)
    root.propagate = False


@click.group()
@click.version_option(version=__version__, prog_name="compsync")
@click.option("--debug", is_flag=True, default=False,
              help="Verbose logging and full tracebacks.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Settings file (default: ./compsync.yaml if present).")
@click.option("--registry", "registry_url", default=None,
              help="Registry URL or directory (overrides configuration).")
@click.pass_context
def cli(ctx: click.Context, debug: bool, config_path: str | None, registry_url: str | None) -> None:
    """compsync: dependency-aware component registry sync.

    Resolves components and their transitive registry dependencies,
    installs them dependency-first with bounded concurrency and retries,
    and keeps them current with incremental syncs.
    """
    configure_logging(debug)
    try:
        settings = load_settings(Path(config_path) if config_path else None)
        settings = settings.override(registry_url=registry_url)
    except ConfigError as exc:
        print_error(str(exc))
        ctx.exit(2)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["debug"] = debug


# Register all subcommands
cli.add_command(resolve_command)
cli.add_command(install_command)
cli.add_command(sync_command)
cli.add_command(check_command)
cli.add_command(status_command)
