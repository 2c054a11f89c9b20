"""compsync: Dependency resolution and batch synchronization for component registries."""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"
