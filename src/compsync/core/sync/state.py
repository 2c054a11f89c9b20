"""Persistence and skip decisions for sync state.

``SyncStateManager`` is the only code that reads, mutates or writes the
state file. A sync run loads it once, mutates the in-memory copy, and
saves it once at the end. Saves are atomic: the JSON is written to a
temporary file in the same directory and moved over the old file with
``os.replace``, so an interrupted run leaves either the old state or the
new one, never a torn file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from compsync.core.sync.models import FailedEntry, SyncedEntry, SyncState
from compsync.exceptions import SyncStateError

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".compsync-state.json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncStateManager:
    """Owner of the persisted ``SyncState``.

    Args:
        path: State file location. Created on first save.
        clock: Returns the current ISO-8601 timestamp. Injected for tests.
    """

    def __init__(self, path: Path, *, clock: Callable[[], str] = _utc_now) -> None:
        self.path = Path(path)
        self._clock = clock
        self._state = SyncState()
        self._loaded = False

    @property
    def state(self) -> SyncState:
        """The in-memory state (empty until ``load()``)."""
        return self._state

    # -- Persistence --------------------------------------------------------

    def load(self) -> SyncState:
        """Read the state file, or start empty if it does not exist.

        Raises:
            SyncStateError: If the file is unreadable, not valid JSON, or
                has an unexpected structure.
        """
        if not self.path.exists():
            logger.debug("No sync state at %s, starting fresh", self.path)
            self._state = SyncState()
            self._loaded = True
            return self._state
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise SyncStateError(f"Cannot read sync state {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SyncStateError(f"Corrupt sync state {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SyncStateError(f"Corrupt sync state {self.path}: expected an object")
        try:
            self._state = SyncState.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise SyncStateError(f"Corrupt sync state {self.path}: {exc}") from exc
        self._loaded = True
        return self._state

    def save(self) -> None:
        """Atomically write the in-memory state to disk.

        Raises:
            SyncStateError: If the file cannot be written.
        """
        payload = json.dumps(self._state.to_dict(), indent=2, sort_keys=True)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise SyncStateError(f"Cannot write sync state {self.path}: {exc}") from exc
        logger.debug("Saved sync state to %s", self.path)

    def clear(self) -> None:
        """Forget all history and delete the state file."""
        self._state = SyncState()
        self.path.unlink(missing_ok=True)

    # -- Decisions and mutation ---------------------------------------------

    def should_sync(
        self,
        name: str,
        registry_version: str,
        local_fingerprint: str | None,
        force: bool = False,
    ) -> bool:
        """Decide whether ``name`` needs to be (re)installed.

        Returns False only when all of these hold: ``force`` is off, a
        success entry exists for the same version, the local files still
        exist (``local_fingerprint`` is not None), and the recorded
        fingerprint is empty or matches the local one.
        """
        if force:
            return True
        entry = self._state.synced_components.get(name)
        if entry is None or entry.version != registry_version:
            return True
        if local_fingerprint is None:
            return True
        if entry.fingerprint and entry.fingerprint != local_fingerprint:
            return True
        return False

    def record_success(
        self,
        name: str,
        version: str,
        fingerprint: str,
        paths: Iterable[str] = (),
    ) -> None:
        """Record a successful sync and clear any failure history."""
        self._state.synced_components[name] = SyncedEntry(
            version=version,
            synced_at=self._clock(),
            fingerprint=fingerprint,
            paths=list(paths),
        )
        self._state.failed_components.pop(name, None)

    def record_failure(self, name: str, error_message: str) -> None:
        """Record a failed sync, incrementing the attempt counter."""
        previous = self._state.failed_components.get(name)
        self._state.failed_components[name] = FailedEntry(
            error=error_message,
            attempts=(previous.attempts if previous else 0) + 1,
            last_attempt=self._clock(),
        )

    def mark_synced(self) -> None:
        """Stamp ``last_sync`` with the current time."""
        self._state.last_sync = self._clock()

    # -- Queries ------------------------------------------------------------

    def entry(self, name: str) -> SyncedEntry | None:
        return self._state.synced_components.get(name)

    def failure(self, name: str) -> FailedEntry | None:
        return self._state.failed_components.get(name)

    def synced_names(self) -> list[str]:
        """Names with a success entry, sorted."""
        return sorted(self._state.synced_components)

    def stats(self) -> dict[str, Any]:
        """Summary counts for status displays."""
        return {
            "last_sync": self._state.last_sync,
            "synced": len(self._state.synced_components),
            "failed": len(self._state.failed_components),
            "failed_components": sorted(self._state.failed_components),
        }
