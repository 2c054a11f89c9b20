"""Structural validation of registry payloads.

Registry payloads are untrusted JSON. Before a descriptor is handed to the
resolver it must pass the checks below; any failure is reported as a
``SchemaInvalid`` listing every problem found, not just the first.

Descriptor payload shape::

    {
      "name": "card",
      "version": "1.2.0",
      "registryDependencies": ["button"],
      "files": [{"path": "card/index.tsx", "content": "..."}],
      "dependencies": {"clsx": "^2.0.0"},
      "description": "...",          # optional
      "category": "layout"           # optional
    }
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any

from compsync.core.models import ComponentDescriptor, ComponentFile
from compsync.exceptions import SchemaInvalid
from compsync.registry.base import IndexEntry


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _is_safe_relative_path(path: str) -> bool:
    """Return True for non-empty relative paths that never climb out."""
    if not path or path.startswith(("/", "\\")) or "\\" in path:
        return False
    pure = PurePosixPath(path)
    if pure.is_absolute() or ":" in pure.parts[0]:
        return False
    return ".." not in pure.parts


def validate_descriptor_payload(payload: Any, expected_name: str) -> list[str]:
    """Check a descriptor payload for structural problems.

    Rules:

    1. The payload is a JSON object.
    2. ``name`` and ``version`` are non-empty strings, and ``name`` equals
       the requested name.
    3. ``files`` is a list of ``{path, content}`` string objects with
       relative paths that contain no ``..`` segment.
    4. ``registryDependencies`` (optional) is a list of strings.
    5. ``dependencies`` (optional) maps strings to strings.
    6. ``description`` and ``category`` (optional) are strings.

    Args:
        payload: Decoded JSON payload.
        expected_name: The name that was requested.

    Returns:
        List of problem descriptions. Empty means valid.
    """
    if not isinstance(payload, dict):
        return [f"expected an object, got {type(payload).__name__}"]

    problems: list[str] = []

    name = payload.get("name")
    if not isinstance(name, str) or not name:
        problems.append("'name' must be a non-empty string")
    elif name != expected_name:
        problems.append(f"'name' is {name!r}, expected {expected_name!r}")

    version = payload.get("version")
    if not isinstance(version, str) or not version:
        problems.append("'version' must be a non-empty string")

    files = payload.get("files")
    if not isinstance(files, list):
        problems.append("'files' must be a list")
    else:
        for i, entry in enumerate(files):
            if not isinstance(entry, dict):
                problems.append(f"files[{i}] must be an object")
                continue
            path = entry.get("path")
            if not isinstance(path, str) or not isinstance(entry.get("content"), str):
                problems.append(f"files[{i}] must have string 'path' and 'content'")
            elif not _is_safe_relative_path(path):
                problems.append(f"files[{i}] path {path!r} must be relative and safe")

    deps = payload.get("registryDependencies", [])
    if not _is_str_list(deps):
        problems.append("'registryDependencies' must be a list of strings")

    external = payload.get("dependencies", {})
    if not isinstance(external, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in external.items()
    ):
        problems.append("'dependencies' must map package names to version strings")

    for key in ("description", "category"):
        if key in payload and not isinstance(payload[key], str):
            problems.append(f"'{key}' must be a string")

    return problems


def parse_descriptor(payload: Any, expected_name: str) -> ComponentDescriptor:
    """Validate and convert a descriptor payload.

    Args:
        payload: Decoded JSON payload.
        expected_name: The name that was requested.

    Returns:
        The immutable ``ComponentDescriptor``.

    Raises:
        SchemaInvalid: If any structural check fails.
    """
    problems = validate_descriptor_payload(payload, expected_name)
    if problems:
        raise SchemaInvalid(expected_name, problems)
    return ComponentDescriptor(
        name=payload["name"],
        version=payload["version"],
        registry_dependencies=tuple(dict.fromkeys(payload.get("registryDependencies", []))),
        files=tuple(
            ComponentFile(path=f["path"], content=f["content"]) for f in payload["files"]
        ),
        external_dependencies=dict(payload.get("dependencies", {})),
        description=payload.get("description", ""),
        category=payload.get("category", ""),
    )


def parse_index(payload: Any) -> list[IndexEntry]:
    """Validate and convert an index payload.

    Accepts either a bare list of entries or an object with a
    ``components`` list. Each entry needs a string ``name`` and a string
    ``latestVersion`` (or ``version``).

    Raises:
        SchemaInvalid: If the payload or any entry is malformed.
    """
    entries_raw = payload.get("components") if isinstance(payload, dict) else payload
    if not isinstance(entries_raw, list):
        raise SchemaInvalid("<index>", ["index must be a list or an object with 'components'"])

    problems: list[str] = []
    entries: list[IndexEntry] = []
    seen: set[str] = set()
    for i, raw in enumerate(entries_raw):
        if not isinstance(raw, dict):
            problems.append(f"entry {i} must be an object")
            continue
        name = raw.get("name")
        version = raw.get("latestVersion", raw.get("version"))
        if not isinstance(name, str) or not name:
            problems.append(f"entry {i} has no 'name'")
            continue
        if not isinstance(version, str) or not version:
            problems.append(f"entry {name!r} has no 'latestVersion'")
            continue
        if name in seen:
            continue
        seen.add(name)
        entries.append(IndexEntry(
            name=name,
            latest_version=version,
            description=str(raw.get("description", "")),
            category=str(raw.get("category", "")),
        ))
    if problems:
        raise SchemaInvalid("<index>", problems)
    return entries
