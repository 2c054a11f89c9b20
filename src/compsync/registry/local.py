"""Local-directory registry transport.

Serves a registry from disk using the same layout as the HTTP registry::

    <root>/index.json
    <root>/components/<name>.json

Useful for offline mirrors, private registries checked into a repository,
and tests. Selected automatically for ``file://`` URLs and plain paths.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from compsync.exceptions import RegistryUnreachable, SchemaInvalid
from compsync.registry.base import RegistryTransport

logger = logging.getLogger(__name__)


class LocalTransport(RegistryTransport):
    """Registry transport reading JSON files from a directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def location(self) -> str:
        """Return the registry root directory."""
        return str(self.root)

    def _read(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryUnreachable(str(path), exc.strerror or str(exc)) from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaInvalid(str(path), [f"not valid JSON: {exc}"]) from exc

    async def get_index(self) -> Any:
        """Read ``index.json`` from the registry root."""
        return self._read(self.root / "index.json")

    async def get_descriptor(self, name: str) -> Any | None:
        """Read ``components/<name>.json``; None if the file does not exist."""
        components = self.root / "components"
        path = components / f"{name}.json"
        if path.resolve().parent != components.resolve() or not path.is_file():
            return None
        return self._read(path)


def transport_for(location: str, *, timeout: float | None = None) -> RegistryTransport:
    """Pick a transport for a registry URL or path.

    ``http://`` and ``https://`` URLs get an ``HttpTransport``; ``file://``
    URLs and bare paths get a ``LocalTransport``.

    Args:
        location: Registry URL or filesystem path.
        timeout: HTTP timeout in seconds (HTTP only).

    Returns:
        A transport instance.
    """
    parsed = urlparse(location)
    if parsed.scheme in ("http", "https"):
        from compsync.registry.http_client import DEFAULT_TIMEOUT, HttpTransport

        return HttpTransport(location, timeout=timeout or DEFAULT_TIMEOUT)
    if parsed.scheme == "file":
        return LocalTransport(Path(unquote(parsed.path)))
    return LocalTransport(Path(location))
