"""Installation of resolved component sets."""

from compsync.core.install.orchestrator import InstallOrchestrator
from compsync.core.install.writer import ComponentWriter, FileSystemWriter

__all__ = [
    "ComponentWriter",
    "FileSystemWriter",
    "InstallOrchestrator",
]
