"""compsync exception hierarchy.

All public exceptions inherit from CompsyncError, giving callers a single
base class to catch when they want to handle any compsync-specific failure
without swallowing unrelated errors.

Each class carries a ``retryable`` flag consulted by the batch engine's
retry policy. Errors that cannot succeed on a second attempt (permission
problems, a full disk) are marked non-retryable so a batch does not burn
its retry budget on them.
"""

from __future__ import annotations

from collections.abc import Iterable


class CompsyncError(Exception):
    """Base exception for all compsync errors."""

    retryable: bool = True


# ---------------------------------------------------------------------------
# Registry access
# ---------------------------------------------------------------------------


class RegistryError(CompsyncError):
    """Raised for failures talking to the component registry."""


class RegistryUnreachable(RegistryError):
    """Raised when the registry transport fails.

    Covers connection errors, timeouts, and 5xx responses. Transient:
    callers may retry the whole run.
    """

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        message = f"Registry unreachable: {url}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolutionError(CompsyncError):
    """Raised when dependency resolution fails.

    Resolution errors are fatal to the whole requested set: no partial
    result is ever handed to the installer.

    Attributes:
        names: The offending component names, sorted.
    """

    retryable = False

    def __init__(self, message: str, names: Iterable[str] = ()) -> None:
        self.names = sorted(set(names))
        super().__init__(message)


class ComponentNotFound(ResolutionError):
    """Raised when one or more names are absent from the registry snapshot."""

    def __init__(self, names: str | Iterable[str]) -> None:
        if isinstance(names, str):
            names = [names]
        names = sorted(set(names))
        super().__init__(
            f"Component not found in registry: {', '.join(names)}", names
        )


class SchemaInvalid(ResolutionError):
    """Raised when a registry payload fails structural validation.

    Indicates a registry/client contract mismatch.

    Attributes:
        problems: Human-readable validation messages.
    """

    def __init__(self, name: str, problems: Iterable[str]) -> None:
        self.problems = list(problems)
        detail = "; ".join(self.problems) or "invalid payload"
        super().__init__(f"Invalid descriptor for {name!r}: {detail}", [name])


# ---------------------------------------------------------------------------
# Installation
# ---------------------------------------------------------------------------


class InstallError(CompsyncError):
    """Raised when a single component cannot be installed.

    Attributes:
        name: The component that failed.
    """

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(message)


class CircularDependencyError(InstallError):
    """Raised for components that sit on a dependency cycle.

    Attributes:
        cycle: Sorted names of every member of the cycle group.
    """

    retryable = False

    def __init__(self, name: str, cycle: Iterable[str]) -> None:
        self.cycle = sorted(cycle)
        super().__init__(
            name, f"Circular dependency detected: {' <-> '.join(self.cycle)}"
        )


class DependencyFailed(InstallError):
    """Raised for components whose dependencies never became available.

    Distinct from ``CircularDependencyError``: the component itself is not
    part of a cycle, but something it needs failed or is missing.

    Attributes:
        blocked_by: Sorted names of components it waits on, directly or
            transitively, that failed or can never be installed.
    """

    retryable = False

    def __init__(self, name: str, blocked_by: Iterable[str]) -> None:
        self.blocked_by = sorted(blocked_by)
        super().__init__(
            name,
            f"{name} not installed: dependency failed "
            f"({', '.join(self.blocked_by)})",
        )


class PermissionDenied(InstallError):
    """Raised when component files cannot be written due to permissions."""

    retryable = False


class DiskFull(InstallError):
    """Raised when component files cannot be written due to lack of space."""

    retryable = False


# ---------------------------------------------------------------------------
# Batch execution
# ---------------------------------------------------------------------------


class BatchError(CompsyncError):
    """Base class for batch engine errors."""


class RetryExhaustedError(BatchError):
    """Raised when an item fails on every allowed attempt.

    Attributes:
        attempts: Total attempts made (``max_retries + 1`` at most).
        last_error: The exception raised by the final attempt.
    """

    retryable = False

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts: {last_error}")


class BatchCancelledError(BatchError):
    """Raised for in-flight items cancelled by a cancellation signal or timeout."""

    retryable = False


# ---------------------------------------------------------------------------
# State and configuration
# ---------------------------------------------------------------------------


class SyncStateError(CompsyncError):
    """Raised when the persisted sync state cannot be read or written.

    Covers corrupted JSON and unexpected structure in the state file.
    """

    retryable = False


class ConfigError(CompsyncError):
    """Raised for invalid configuration values."""

    retryable = False
