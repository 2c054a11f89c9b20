"""Component data models: ComponentDescriptor, ComponentFile, ResolvedSet.

A ``ComponentDescriptor`` is the full metadata+content record for one
component as returned by the registry. Descriptors are immutable once
fetched for a registry snapshot. A ``ResolvedSet`` is the output of
dependency resolution: a read-only mapping of every name reachable from
the seed set to its descriptor, in discovery order.

Fingerprints use the ``sha256:<hex>`` integrity format, computed over the
sorted ``(path, content)`` pairs of a component's files. The same function
is used for freshly fetched descriptors and for files read back from disk,
so an untouched local copy always fingerprints equal to its source.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

_FINGERPRINT_ALGORITHM = "sha256"


def compute_fingerprint(files: Iterable[tuple[str, str]]) -> str:
    """Compute a content fingerprint over ``(path, content)`` pairs.

    Order-independent: pairs are sorted by path before hashing. Each
    path and content is length-prefixed so that moving bytes between a
    path and its content changes the digest.

    Args:
        files: Iterable of (relative path, content) pairs.

    Returns:
        Integrity string in "sha256:<64-hex-chars>" format.
    """
    digest = hashlib.sha256()
    for path, content in sorted(files):
        for part in (path, content):
            data = part.encode("utf-8")
            digest.update(len(data).to_bytes(8, "big"))
            digest.update(data)
    return f"{_FINGERPRINT_ALGORITHM}:{digest.hexdigest()}"


@dataclass(frozen=True)
class ComponentFile:
    """A single file shipped by a component.

    Attributes:
        path: Relative path under the components directory.
        content: File content, written verbatim.
    """

    path: str
    content: str


@dataclass(frozen=True)
class ComponentDescriptor:
    """Full descriptor of one component at one registry snapshot.

    Attributes:
        name: Unique component name (the resolution key).
        version: Opaque version string, compared for equality/ordering only.
        registry_dependencies: Ordered names of other registry components
            this one needs installed first.
        files: Files to write on install.
        external_dependencies: Mapping of external package name to version
            range. Passed through untouched; never resolved here.
        description: Optional human-readable description.
        category: Optional category label.
    """

    name: str
    version: str
    registry_dependencies: tuple[str, ...] = ()
    files: tuple[ComponentFile, ...] = ()
    external_dependencies: Mapping[str, str] = field(default_factory=dict)
    description: str = ""
    category: str = ""

    def __hash__(self) -> int:
        return hash((self.name, self.version, self.registry_dependencies, self.files))

    @property
    def fingerprint(self) -> str:
        """Content fingerprint of this descriptor's files."""
        return compute_fingerprint((f.path, f.content) for f in self.files)

    @property
    def paths(self) -> tuple[str, ...]:
        """Relative paths of every file in this descriptor."""
        return tuple(f.path for f in self.files)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the registry payload shape."""
        data: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "registryDependencies": list(self.registry_dependencies),
            "files": [{"path": f.path, "content": f.content} for f in self.files],
            "dependencies": dict(sorted(self.external_dependencies.items())),
        }
        if self.description:
            data["description"] = self.description
        if self.category:
            data["category"] = self.category
        return data


class ResolvedSet(Mapping[str, ComponentDescriptor]):
    """Read-only mapping of name to descriptor produced by resolution.

    Iteration follows discovery (BFS) order, which is deterministic for a
    given registry snapshot and seed order. Two resolutions of the same
    seeds against an unchanged registry compare equal.
    """

    def __init__(self, descriptors: Iterable[ComponentDescriptor] = ()) -> None:
        items: dict[str, ComponentDescriptor] = {}
        for descriptor in descriptors:
            items.setdefault(descriptor.name, descriptor)
        self._items = MappingProxyType(items)

    def __getitem__(self, name: str) -> ComponentDescriptor:
        return self._items[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResolvedSet):
            return list(self._items.items()) == list(other._items.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._items))

    def __repr__(self) -> str:
        return f"ResolvedSet({list(self._items)!r})"

    def external_dependencies(self) -> dict[str, str]:
        """Merge external package requirements across all descriptors.

        When two components declare the same package, the first in
        discovery order wins.

        Returns:
            Package name to version range, sorted by package name.
        """
        merged: dict[str, str] = {}
        for descriptor in self._items.values():
            for package, spec in descriptor.external_dependencies.items():
                merged.setdefault(package, spec)
        return dict(sorted(merged.items()))

    def install_order(self) -> list[str]:
        """Return a dependency-first ordering of the set for display.

        Uses Kahn's algorithm with names sorted alphabetically at every
        step, so the order is deterministic. Members of cycles, and
        anything depending on them, are appended at the end in sorted
        order.
        """
        from compsync.core.dependency.graph import ComponentGraph

        return ComponentGraph.from_descriptors(self._items.values()).topological_order()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict keyed by component name."""
        return {
            name: {
                "version": d.version,
                "registryDependencies": list(d.registry_dependencies),
                "files": list(d.paths),
                "dependencies": dict(sorted(d.external_dependencies.items())),
            }
            for name, d in self._items.items()
        }
