"""``compsync resolve NAMES...`` — Show the full dependency set for components.

Fetches each requested component and everything it transitively depends
on, then prints them in install order. Nothing is written.

Exit Codes:
    0 — Resolution succeeded.
    1 — A component is missing, invalid, or the registry is unreachable.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable

import click

from compsync.cli.common import _run_async, get_settings, handle_errors, open_registry
from compsync.core.dependency import DependencyResolver
from compsync.core.models import ResolvedSet
from compsync.registry import RegistryClient


async def _resolve(client: RegistryClient, names: Iterable[str], parallel: int) -> ResolvedSet:
    try:
        return await DependencyResolver(client, concurrency=parallel).resolve(names)
    finally:
        await client.aclose()


@click.command("resolve")
@click.argument("names", nargs=-1, required=True)
@click.option(
    "--parallel", "-p",
    type=click.IntRange(min=1),
    default=None,
    help="Parallel descriptor fetches (default: configured concurrency).",
)
@click.option(
    "--format", "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text).",
)
@click.pass_context
@handle_errors
def resolve_command(
    ctx: click.Context,
    names: tuple[str, ...],
    parallel: int | None,
    output_format: str,
) -> None:
    """Resolve NAMES and their registry dependencies.

    Examples:

        compsync resolve card

        compsync resolve card dialog --format json
    """
    settings = get_settings(ctx)
    client = open_registry(settings)
    resolved = _run_async(_resolve(client, names, parallel or settings.concurrency))

    if output_format == "json":
        from compsync.cli.output import print_json

        print_json(
            {
                "components": resolved.to_dict(),  # type: ignore[attr-defined]
                "install_order": resolved.install_order(),  # type: ignore[attr-defined]
                "external_dependencies": resolved.external_dependencies(),  # type: ignore[attr-defined]
            }
        )
    else:
        from compsync.cli.output import print_resolved

        print_resolved(resolved)  # type: ignore[arg-type]
    sys.exit(0)
