"""
Version comparison utilities for appbatch.

Store application versions are dotted numeric strings (``"3.1.4"``).
:func:`compare_versions` orders them the way the instance does; it is
deliberately lenient so that one badly formatted catalog row never aborts
a discovery pass. :func:`get_update_type` classifies a change for reports
using PEP 440 parsing.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from packaging.version import InvalidVersion, Version, parse


def compare_versions(left: str, right: str) -> int:
    """Compare two dotted-numeric version strings.

    Components are compared pairwise as integers up to the longer of the
    two component counts. Missing trailing components count as ``0`` and
    non-numeric components are coerced to ``0``.

    Args:
        left: First version string.
        right: Second version string.

    Returns:
        ``1`` if ``left`` is newer, ``-1`` if older, ``0`` if equivalent.

    Examples:
        >>> compare_versions("2.0", "1.9.9")
        1
        >>> compare_versions("1.2", "1.2.0")
        0
    """
    if left == right:
        return 0

    left_parts = _split(left)
    right_parts = _split(right)

    for index in range(max(len(left_parts), len(right_parts))):
        a = left_parts[index] if index < len(left_parts) else 0
        b = right_parts[index] if index < len(right_parts) else 0
        if a > b:
            return 1
        if a < b:
            return -1

    return 0


def _split(version: str) -> List[int]:
    """Split a version into integer components."""
    return [_to_int(part) for part in version.split(".")]


def _to_int(component: str) -> int:
    """Coerce one version component to an integer (``0`` when not numeric)."""
    try:
        return int(component.strip() or "0")
    except ValueError:
        return 0


def get_update_type(
    current_version: Optional[str],
    target_version: Optional[str],
) -> str:
    """Determine the semantic update type between two versions.

    Args:
        current_version: Currently installed version, or ``None``.
        target_version: Target version to compare against.

    Returns:
        One of ``"new"``, ``"same"``, ``"downgrade"``, ``"major"``,
        ``"minor"``, ``"patch"``, ``"update"`` or ``"unknown"``.

    Examples:
        >>> get_update_type("1.0.0", "2.0.0")
        'major'
        >>> get_update_type(None, "1.0.0")
        'new'
    """
    if target_version is None:
        return "unknown"

    if current_version is None:
        return "new"

    try:
        current = _parse_version(current_version)
        target = _parse_version(target_version)
    except InvalidVersion:
        return "unknown"

    if target == current:
        return "same"

    if target < current:
        return "downgrade"

    return _classify_upgrade(current, target)


def _parse_version(value: str) -> Version:
    """Parse a version string into a PEP 440 Version object."""
    parsed = parse(value)
    if not isinstance(parsed, Version):
        raise InvalidVersion(value)
    return parsed


def _classify_upgrade(current: Version, target: Version) -> str:
    """Classify an upgrade between two valid versions."""
    current_release = _normalize_release(current)
    target_release = _normalize_release(target)

    for label, old, new in zip(
        ("major", "minor", "patch"), current_release, target_release
    ):
        if old != new:
            return label

    # Pre-release → release or a fourth component changed
    return "update"


def _normalize_release(version: Version) -> Tuple[int, int, int]:
    """Normalize a version's release segment to (major, minor, patch)."""
    release = version.release + (0, 0, 0)
    return release[0], release[1], release[2]
