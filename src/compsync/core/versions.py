"""Version comparison utilities.

Component versions are opaque to resolution: a name resolves to exactly
one descriptor per registry snapshot. Versions are only compared for
equality (skip-if-unchanged) and major-version ordering (breaking change
detection). Parsing follows SemVer 2.0.0 precedence rules.

References
----------
.. [SemVer] Preston-Werner, T. (2013). "Semantic Versioning 2.0.0."
   https://semver.org/
"""

from __future__ import annotations

import re

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z\-.]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z\-.]+))?$"
)


def parse_version_tuple(version: str) -> tuple[int, int, int]:
    """Parse a semantic version string into a comparable (major, minor, patch) tuple.

    Pre-release and build metadata are stripped for ordering purposes. A
    leading ``v`` is accepted since registries commonly publish ``v1.2.3``.

    Args:
        version: Semantic version string (e.g., "1.2.3", "0.1.0-alpha").

    Returns:
        A (major, minor, patch) integer tuple.

    Raises:
        ValueError: If the string does not match semantic version format.
    """
    m = _SEMVER_RE.match(version.strip())
    if not m:
        raise ValueError(f"Invalid semantic version: {version!r}")
    return int(m.group("major")), int(m.group("minor")), int(m.group("patch"))


def is_breaking_change(current: str, latest: str) -> bool:
    """Return True when ``latest`` bumps the major version of ``current``.

    Versions that cannot be parsed are never reported as breaking.
    """
    try:
        return parse_version_tuple(latest)[0] > parse_version_tuple(current)[0]
    except ValueError:
        return False
