"""Shared fixtures for compsync tests."""

from __future__ import annotations

import asyncio
import json
import pathlib
from collections import Counter
from collections.abc import Iterable
from typing import Any

import pytest

from compsync.core.models import ComponentDescriptor, ComponentFile
from compsync.exceptions import ComponentNotFound
from compsync.registry.base import IndexEntry, RegistryPort


def make_descriptor(
    name: str,
    version: str = "1.0.0",
    deps: Iterable[str] = (),
    files: dict[str, str] | None = None,
    external: dict[str, str] | None = None,
    category: str = "",
) -> ComponentDescriptor:
    """Build a descriptor with one source file per component by default."""
    if files is None:
        files = {f"{name}/{name}.tsx": f"export const {name} = '{version}';\n"}
    return ComponentDescriptor(
        name=name,
        version=version,
        registry_dependencies=tuple(deps),
        files=tuple(ComponentFile(path=p, content=c) for p, c in files.items()),
        external_dependencies=dict(external or {}),
        category=category,
    )


class FakeRegistry(RegistryPort):
    """In-memory registry port that counts every call.

    Attributes:
        fetches: Number of ``fetch_descriptor`` calls per name.
        index_fetches: Number of ``fetch_index`` calls.
        errors: Exceptions to raise from ``fetch_descriptor``, by name.
        delay: Seconds to sleep inside each descriptor fetch.
    """

    def __init__(self) -> None:
        self.components: dict[str, ComponentDescriptor] = {}
        self.fetches: Counter[str] = Counter()
        self.index_fetches = 0
        self.errors: dict[str, BaseException] = {}
        self.delay = 0.0

    def add(
        self,
        name: str,
        version: str = "1.0.0",
        deps: Iterable[str] = (),
        **kwargs: Any,
    ) -> ComponentDescriptor:
        descriptor = make_descriptor(name, version, deps, **kwargs)
        self.components[name] = descriptor
        return descriptor

    async def fetch_index(self, force_refresh: bool = False) -> list[IndexEntry]:
        self.index_fetches += 1
        return [
            IndexEntry(name=d.name, latest_version=d.version, category=d.category)
            for d in self.components.values()
        ]

    async def fetch_descriptor(self, name: str) -> ComponentDescriptor:
        self.fetches[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.errors:
            raise self.errors[name]
        if name not in self.components:
            raise ComponentNotFound(name)
        return self.components[name]


@pytest.fixture(name="make_descriptor")
def make_descriptor_fixture() -> Any:
    """The ``make_descriptor`` builder, for tests that need bare descriptors."""
    return make_descriptor


@pytest.fixture
def registry() -> FakeRegistry:
    """An empty in-memory registry."""
    return FakeRegistry()


@pytest.fixture
def ui_registry(registry: FakeRegistry) -> FakeRegistry:
    """Registry with the classic diamond: card -> [button, icon], button -> [icon]."""
    registry.add("icon")
    registry.add("button", deps=["icon"])
    registry.add("card", deps=["button", "icon"], external={"clsx": "^2.0.0"})
    return registry


def write_registry_dir(root: pathlib.Path, descriptors: Iterable[ComponentDescriptor]) -> pathlib.Path:
    """Lay out descriptors as a local-directory registry under ``root``."""
    components_dir = root / "components"
    components_dir.mkdir(parents=True, exist_ok=True)
    index = []
    for descriptor in descriptors:
        (components_dir / f"{descriptor.name}.json").write_text(
            json.dumps(descriptor.to_dict()), encoding="utf-8"
        )
        index.append({"name": descriptor.name, "latestVersion": descriptor.version})
    (root / "index.json").write_text(json.dumps(index), encoding="utf-8")
    return root


@pytest.fixture(name="write_registry_dir")
def write_registry_dir_fixture() -> Any:
    """The ``write_registry_dir`` helper, for tests that build custom registries."""
    return write_registry_dir


@pytest.fixture
def registry_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """A local-directory registry holding the card/button/icon diamond."""
    return write_registry_dir(
        tmp_path / "registry",
        [
            make_descriptor("icon"),
            make_descriptor("button", deps=["icon"]),
            make_descriptor("card", deps=["button", "icon"], external={"clsx": "^2.0.0"}),
        ],
    )
