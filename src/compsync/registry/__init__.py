"""Registry access for component resolution.

Provides the ``RegistryPort`` contract consumed by the resolver and sync
engine, the caching ``RegistryClient`` that implements it, and transports
for HTTP and local-directory registries.

Public API::

    from compsync.registry import RegistryClient, RegistryCache, IndexEntry
    from compsync.registry.http_client import HttpTransport
    from compsync.registry.local import LocalTransport, transport_for
"""

from __future__ import annotations

from compsync.registry.base import IndexEntry, RegistryPort, RegistryTransport
from compsync.registry.cache import CacheStats, RegistryCache
from compsync.registry.client import RegistryClient

__all__ = [
    "CacheStats",
    "IndexEntry",
    "RegistryCache",
    "RegistryClient",
    "RegistryPort",
    "RegistryTransport",
]
