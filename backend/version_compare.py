"""
Semantic version helpers for add-on dependency checks.

Versions are dot-separated runs of digits ("2", "1.4", "1.10.0"). Missing
trailing components compare as 0, so "1.2" == "1.2.0". Anything else is
rejected with InvalidVersionError rather than ordered arbitrarily.
"""

from typing import Tuple


class InvalidVersionError(ValueError):
    """Raised when a version string has a non-numeric or empty component"""

    def __init__(self, version: str):
        super().__init__(f"Invalid version string: {version!r}")
        self.version = version


def parse_version(version: str) -> Tuple[int, ...]:
    if not isinstance(version, str) or not version:
        raise InvalidVersionError(str(version))
    parts = []
    for component in version.split("."):
        # str.isdigit() accepts non-ASCII digits like "²"
        if not component or not (component.isascii() and component.isdigit()):
            raise InvalidVersionError(version)
        parts.append(int(component))
    return tuple(parts)


def compare_versions(v1: str, v2: str) -> int:
    """Return -1, 0 or 1 as v1 is lower than, equal to or higher than v2."""
    parts1 = parse_version(v1)
    parts2 = parse_version(v2)

    for i in range(max(len(parts1), len(parts2))):
        p1 = parts1[i] if i < len(parts1) else 0
        p2 = parts2[i] if i < len(parts2) else 0
        if p1 > p2:
            return 1
        if p1 < p2:
            return -1
    return 0


def version_string(major: int, minor: int, patch: int) -> str:
    return f"{major}.{minor}.{patch}"
