"""Component dependency graph and breadth-first resolution.

Public names are re-exported here so callers can write
``from compsync.core.dependency import DependencyResolver``.
"""

from compsync.core.dependency.graph import ComponentGraph
from compsync.core.dependency.resolver import DependencyResolver

__all__ = [
    "ComponentGraph",
    "DependencyResolver",
]
