"""Shared plumbing for compsync CLI commands.

Commands get their ``Settings`` from the click context (populated by the
``compsync`` group) and build registry clients through ``open_registry``
so that every command sees the same cache and transport configuration.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from compsync.cli.output import err_console, print_error
from compsync.config import Settings
from compsync.exceptions import CompsyncError
from compsync.registry import RegistryCache, RegistryClient
from compsync.registry.local import transport_for

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _run_async(coro: object) -> object:
    """Run an async coroutine in a synchronous context.

    Args:
        coro: Awaitable coroutine to execute.

    Returns:
        The coroutine's return value.
    """
    return asyncio.run(coro)  # type: ignore[arg-type]


def get_settings(ctx: click.Context) -> Settings:
    """Return the settings stored on the root context."""
    obj = ctx.find_root().obj or {}
    settings = obj.get("settings")
    return settings if isinstance(settings, Settings) else Settings()


def is_debug(ctx: click.Context) -> bool:
    obj = ctx.find_root().obj or {}
    return bool(obj.get("debug"))


def open_registry(settings: Settings) -> RegistryClient:
    """Build a caching registry client from settings."""
    cache = RegistryCache(
        ttl=settings.cache_ttl,
        cache_dir=Path(settings.cache_dir) if settings.cache_dir else None,
    )
    transport = transport_for(settings.registry_url, timeout=settings.http_timeout)
    return RegistryClient(transport, cache)


def parse_names(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated option value into names."""
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def handle_errors(func: F) -> F:
    """Turn ``CompsyncError`` into a red one-line message and exit code 1.

    With ``--debug`` the full traceback is printed as well.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CompsyncError as exc:
            ctx = click.get_current_context(silent=True)
            if ctx is not None and is_debug(ctx):
                err_console.print_exception()
            logger.debug("Command failed", exc_info=True)
            print_error(str(exc))
            sys.exit(1)

    return wrapper  # type: ignore[return-value]
