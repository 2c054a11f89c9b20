"""Base classes and data models for registry access.

Defines the ``RegistryPort`` abstract base class that the resolver and
sync engine consume, the ``RegistryTransport`` abstract base class that
concrete transports (HTTP, local directory) implement, and the
``IndexEntry`` data model for index listings.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from compsync.core.models import ComponentDescriptor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexEntry:
    """A single entry in the registry index.

    Attributes:
        name: Component name as listed in the registry.
        latest_version: Version currently published for this name.
        description: Short description from index metadata.
        category: Category label from index metadata.
    """

    name: str
    latest_version: str
    description: str = ""
    category: str = ""


# ---------------------------------------------------------------------------
# Abstract port and transport
# ---------------------------------------------------------------------------


class RegistryPort(ABC):
    """What the core needs from a registry: an index and descriptors.

    Implementations raise ``RegistryUnreachable`` on transport failure,
    ``ComponentNotFound`` for names absent from the snapshot, and
    ``SchemaInvalid`` for payloads that fail structural validation.
    """

    @abstractmethod
    async def fetch_index(self, force_refresh: bool = False) -> list[IndexEntry]:
        """Fetch the list of known components with their latest versions.

        Args:
            force_refresh: Bypass any cached copy.

        Returns:
            Index entries in registry order.
        """

    @abstractmethod
    async def fetch_descriptor(self, name: str) -> ComponentDescriptor:
        """Fetch the full descriptor for ``name``.

        Args:
            name: Component name.

        Returns:
            The validated descriptor.
        """


class RegistryTransport(ABC):
    """Raw payload source behind a ``RegistryClient``.

    Transports only move bytes and decode JSON; validation and caching
    happen in the client. ``get_descriptor`` returns None when the
    registry has no such component.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable location of this registry (URL or path)."""

    @abstractmethod
    async def get_index(self) -> Any:
        """Return the decoded index payload."""

    @abstractmethod
    async def get_descriptor(self, name: str) -> Any | None:
        """Return the decoded descriptor payload, or None if absent."""

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to release."""
