"""Incremental sync against a component registry.

Public API::

    from compsync.core.sync import RegistrySync, SyncOptions, SyncStateManager
"""

from compsync.core.sync.engine import RegistrySync
from compsync.core.sync.models import (
    FailedEntry,
    SyncedEntry,
    SyncOptions,
    SyncResult,
    SyncState,
    UpdateInfo,
)
from compsync.core.sync.state import DEFAULT_STATE_FILE, SyncStateManager

__all__ = [
    "DEFAULT_STATE_FILE",
    "FailedEntry",
    "RegistrySync",
    "SyncOptions",
    "SyncResult",
    "SyncState",
    "SyncStateManager",
    "SyncedEntry",
    "UpdateInfo",
]
