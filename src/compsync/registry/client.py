"""Caching registry client: the concrete Registry Access Port.

Wraps a ``RegistryTransport`` with a read-through ``RegistryCache`` and
structural validation. Raw payloads are cached, and validation runs on
every read, so a cache entry written by an older client version can never
smuggle an invalid descriptor past the checks.

Usage::

    client = RegistryClient(HttpTransport("https://registry.example.com"))
    index = await client.fetch_index()
    card = await client.fetch_descriptor("card")
"""

from __future__ import annotations

import logging

from compsync.core.models import ComponentDescriptor
from compsync.exceptions import ComponentNotFound
from compsync.registry.base import IndexEntry, RegistryPort, RegistryTransport
from compsync.registry.cache import RegistryCache
from compsync.registry.schema import parse_descriptor, parse_index

logger = logging.getLogger(__name__)

_INDEX_KEY = ("index", "")


class RegistryClient(RegistryPort):
    """Registry port backed by a transport and a TTL cache.

    Args:
        transport: Payload source (HTTP, local directory, ...).
        cache: Cache to read through. A fresh in-memory cache is used
            when omitted.
    """

    def __init__(
        self,
        transport: RegistryTransport,
        cache: RegistryCache | None = None,
    ) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else RegistryCache()
        self._latest: dict[str, str] = {}

    async def fetch_index(self, force_refresh: bool = False) -> list[IndexEntry]:
        """Fetch and validate the registry index (cached)."""
        payload = await self.cache.get_or_load(
            _INDEX_KEY, self.transport.get_index, force=force_refresh
        )
        entries = parse_index(payload)
        self._latest = {e.name: e.latest_version for e in entries}
        return entries

    async def fetch_descriptor(
        self, name: str, force_refresh: bool = False
    ) -> ComponentDescriptor:
        """Fetch and validate the descriptor for ``name`` (cached).

        A cached descriptor whose version disagrees with the most recently
        fetched index is treated as stale and reloaded.

        Raises:
            ComponentNotFound: If the registry has no such component.
            SchemaInvalid: If the payload fails structural validation.
            RegistryUnreachable: On transport failure.
        """

        async def _load() -> object:
            payload = await self.transport.get_descriptor(name)
            if payload is None:
                raise ComponentNotFound(name)
            return payload

        key = ("component", name)
        cached = self.cache.get(key)
        if (
            isinstance(cached, dict)
            and name in self._latest
            and cached.get("version") != self._latest[name]
        ):
            logger.debug("Cached %s is stale against the index, reloading", name)
            force_refresh = True
        payload = await self.cache.get_or_load(key, _load, force=force_refresh)
        descriptor = parse_descriptor(payload, name)
        logger.debug("Fetched %s@%s from %s", name, descriptor.version, self.transport.location)
        return descriptor

    async def aclose(self) -> None:
        """Close the underlying transport."""
        await self.transport.aclose()
