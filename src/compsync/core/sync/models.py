"""Sync data models: persisted state entries, run options and results.

``SyncState`` is the in-memory form of the state file::

    {
      "version": 1,
      "last_sync": "2026-01-01T00:00:00+00:00",
      "synced_components": {
        "button": {"version": "1.2.0", "synced_at": "...",
                   "fingerprint": "sha256:...", "paths": ["ui/button.tsx"]}
      },
      "failed_components": {
        "card": {"error": "...", "attempts": 2, "last_attempt": "..."}
      }
    }

These are plain data holders; ``SyncStateManager`` owns all mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STATE_FORMAT_VERSION = 1


# ---------------------------------------------------------------------------
# Persisted entries
# ---------------------------------------------------------------------------


@dataclass
class SyncedEntry:
    """Last successful sync of one component.

    Attributes:
        version: Registry version that was installed.
        synced_at: ISO-8601 timestamp of the sync.
        fingerprint: ``sha256:`` fingerprint of the files as written.
            Empty for entries written before fingerprints were recorded.
        paths: Relative paths written, used to re-fingerprint local files.
    """

    version: str
    synced_at: str
    fingerprint: str = ""
    paths: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "synced_at": self.synced_at,
            "fingerprint": self.fingerprint,
            "paths": list(self.paths),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncedEntry:
        return cls(
            version=str(data["version"]),
            synced_at=str(data.get("synced_at", "")),
            fingerprint=str(data.get("fingerprint", "")),
            paths=[str(p) for p in data.get("paths", [])],
        )


@dataclass
class FailedEntry:
    """Failure history of one component.

    Attributes:
        error: Message of the most recent failure.
        attempts: Number of failed syncs since the last success.
        last_attempt: ISO-8601 timestamp of the most recent failure.
    """

    error: str
    attempts: int = 1
    last_attempt: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "attempts": self.attempts,
            "last_attempt": self.last_attempt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailedEntry:
        return cls(
            error=str(data.get("error", "")),
            attempts=int(data.get("attempts", 1)),
            last_attempt=str(data.get("last_attempt", "")),
        )


@dataclass
class SyncState:
    """Whole persisted sync state."""

    last_sync: str | None = None
    synced_components: dict[str, SyncedEntry] = field(default_factory=dict)
    failed_components: dict[str, FailedEntry] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_FORMAT_VERSION,
            "last_sync": self.last_sync,
            "synced_components": {
                name: entry.to_dict()
                for name, entry in sorted(self.synced_components.items())
            },
            "failed_components": {
                name: entry.to_dict()
                for name, entry in sorted(self.failed_components.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncState:
        return cls(
            last_sync=data.get("last_sync"),
            synced_components={
                name: SyncedEntry.from_dict(entry)
                for name, entry in data.get("synced_components", {}).items()
            },
            failed_components={
                name: FailedEntry.from_dict(entry)
                for name, entry in data.get("failed_components", {}).items()
            },
        )


# ---------------------------------------------------------------------------
# Run options and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncOptions:
    """Options for one ``RegistrySync.sync`` run.

    Attributes:
        components: Explicit names to sync. When empty, previously synced
            components are updated (or the whole index with
            ``all_components``).
        categories: Sync every index entry in these categories (used
            when ``components`` is empty).
        all_components: Sync every component in the index.
        force: Reinstall even when the local copy is current.
        force_refresh: Bypass the registry cache.
        dry_run: Resolve and report, but write nothing.
        parallel: Concurrency for fetching and installing.
        max_retries: Extra install attempts per component.
        continue_on_error: Keep installing after a component fails.
        timeout: Seconds before in-flight installs are cancelled.
    """

    components: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    all_components: bool = False
    force: bool = False
    force_refresh: bool = False
    dry_run: bool = False
    parallel: int = 5
    max_retries: int = 0
    continue_on_error: bool = True
    timeout: float | None = None


@dataclass
class SyncResult:
    """Outcome of a sync run.

    Attributes:
        synced: Components installed for the first time.
        updated: Components reinstalled over a previous sync.
        failed: Components that failed.
        skipped: Components left alone because they were current.
        errors: Innermost error message per failed component.
        duration_ms: Wall-clock time of the run.
        dry_run: Whether the run wrote nothing.
    """

    synced: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "synced": self.synced,
            "updated": self.updated,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration_ms": round(self.duration_ms, 3),
            "dry_run": self.dry_run,
        }


@dataclass(frozen=True)
class UpdateInfo:
    """An available update for a previously synced component.

    Attributes:
        name: Component name.
        current_version: Version recorded in the sync state.
        latest_version: Version advertised by the registry index.
        breaking: True if the major version increased.
    """

    name: str
    current_version: str
    latest_version: str
    breaking: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "current": self.current_version,
            "latest": self.latest_version,
            "breaking": self.breaking,
        }
