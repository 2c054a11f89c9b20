"""Filesystem collaborator for component installation.

``ComponentWriter`` is the boundary the orchestrator and sync engine write
through. ``FileSystemWriter`` is the shipped implementation: it writes
component files verbatim under a root directory and maps the OS errors an
install can hit onto the compsync error taxonomy:

- ``EACCES`` / ``EPERM`` → ``PermissionDenied``
- ``ENOSPC`` → ``DiskFull``

Both are fatal to the one component being written, never to the batch.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from compsync.core.models import ComponentDescriptor, compute_fingerprint
from compsync.exceptions import DiskFull, InstallError, PermissionDenied

logger = logging.getLogger(__name__)


class ComponentWriter(ABC):
    """Abstract writer for installed component files."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Return True if ``path`` (relative) exists locally."""

    @abstractmethod
    async def write_component_files(self, descriptor: ComponentDescriptor) -> list[str]:
        """Write every file of ``descriptor``; return the relative paths written.

        Raises:
            PermissionDenied: The target is not writable.
            DiskFull: The device ran out of space.
            InstallError: Any other write failure.
        """

    @abstractmethod
    def local_fingerprint(self, paths: Iterable[str]) -> str | None:
        """Fingerprint the local copies of ``paths``.

        Returns:
            A ``sha256:`` fingerprint, or None if any file is missing.
        """


class FileSystemWriter(ComponentWriter):
    """Write component files under a root directory.

    Args:
        root: Directory components are installed into. Created on demand.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _target(self, path: str) -> Path:
        target = (self.root / path).resolve()
        root = self.root.resolve()
        if target != root and root not in target.parents:
            raise InstallError(path, f"Refusing to write outside {self.root}: {path}")
        return target

    def file_exists(self, path: str) -> bool:
        try:
            return self._target(path).is_file()
        except InstallError:
            return False

    async def write_component_files(self, descriptor: ComponentDescriptor) -> list[str]:
        written: list[str] = []
        for file in descriptor.files:
            target = self._target(file.path)
            try:
                await asyncio.to_thread(_write_file, target, file.content)
            except OSError as exc:
                raise _map_os_error(descriptor.name, file.path, exc) from exc
            written.append(file.path)
        logger.debug("Wrote %d file(s) for %s", len(written), descriptor.name)
        return written

    def local_fingerprint(self, paths: Iterable[str]) -> str | None:
        pairs: list[tuple[str, str]] = []
        for path in paths:
            try:
                target = self._target(path)
                pairs.append((path, target.read_bytes().decode("utf-8")))
            except (OSError, UnicodeDecodeError, InstallError):
                return None
        return compute_fingerprint(pairs)


def _write_file(target: Path, content: str) -> None:
    # Bytes on both sides keep line endings exactly as the registry sent them.
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content.encode("utf-8"))


def _map_os_error(name: str, path: str, exc: OSError) -> InstallError:
    reason = exc.strerror or str(exc)
    if exc.errno in (errno.EACCES, errno.EPERM):
        return PermissionDenied(name, f"Permission denied writing {path} for {name}")
    if exc.errno == errno.ENOSPC:
        return DiskFull(name, f"No space left writing {path} for {name}")
    return InstallError(name, f"Failed to write {path} for {name}: {reason}")
