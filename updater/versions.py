"""Version parsing and comparison for Devbox packages.

Nix package versions are not always semantic versions, so parsing falls
through a cascade of shapes: semver, dates, bare integers, any digit runs,
and finally an opaque string.
"""

import re
from dataclasses import dataclass
from functools import cmp_to_key

from .errors import ValidationError

SEMVER_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([^+]+))?(?:\+(.+))?$")
DATE_PATTERN = re.compile(r"^(\d{4})[.-]?(\d{2})[.-]?(\d{2})$")
NUMBER_PATTERN = re.compile(r"^(\d+)$")
DIGITS_PATTERN = re.compile(r"\d+")
TRIPLE_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class ParsedVersion:
    """Components of a parsed version string."""

    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None
    original: str = ""


def parse_version(version: str) -> ParsedVersion:
    """Parse a version string into components.

    Args:
        version: The version string to parse

    Returns:
        Parsed version components

    Raises:
        ValidationError: If the version is not a non-empty string
    """
    if not version or not isinstance(version, str):
        raise ValidationError("Version must be a non-empty string")

    trimmed = version.strip()
    if not trimmed:
        raise ValidationError("Version cannot be empty")

    # major[.minor[.patch]][-prerelease][+build]
    match = SEMVER_PATTERN.match(trimmed)
    if match:
        major, minor, patch, prerelease, build = match.groups()
        return ParsedVersion(
            major=int(major),
            minor=int(minor or 0),
            patch=int(patch or 0),
            prerelease=prerelease,
            build=build,
            original=trimmed,
        )

    # Date-based versions (2024.01.01, 2024-01-01)
    match = DATE_PATTERN.match(trimmed)
    if match:
        year, month, day = match.groups()
        return ParsedVersion(int(year), int(month), int(day), original=trimmed)

    match = NUMBER_PATTERN.match(trimmed)
    if match:
        return ParsedVersion(int(match.group(1)), 0, 0, original=trimmed)

    # Non-standard versions: pull out whatever numbers are there
    numbers = DIGITS_PATTERN.findall(trimmed)
    if numbers:
        parts = [int(n) for n in numbers[:3]] + [0, 0, 0]
        prerelease = trimmed.split("-", 1)[1] if "-" in trimmed else None
        return ParsedVersion(
            major=parts[0],
            minor=parts[1],
            patch=parts[2],
            prerelease=prerelease,
            original=trimmed,
        )

    return ParsedVersion(0, 0, 0, prerelease=trimmed, original=trimmed)


def _cmp(left, right) -> int:
    if left == right:
        return 0
    return -1 if left < right else 1


def compare_versions(version1: str, version2: str) -> int:
    """Compare two version strings.

    Returns:
        -1 if version1 < version2, 0 if equal, 1 if version1 > version2
    """
    if version1 == version2:
        return 0

    v1 = parse_version(version1)
    v2 = parse_version(version2)

    for left, right in (
        (v1.major, v2.major),
        (v1.minor, v2.minor),
        (v1.patch, v2.patch),
    ):
        if left != right:
            return _cmp(left, right)

    # A prerelease sorts below the release it precedes
    if v1.prerelease and not v2.prerelease:
        return -1
    if not v1.prerelease and v2.prerelease:
        return 1
    if v1.prerelease and v2.prerelease and v1.prerelease != v2.prerelease:
        return _cmp(v1.prerelease, v2.prerelease)

    # Equal rank: lexical order of the original strings keeps results stable
    return _cmp(v1.original, v2.original)


def is_version_greater(version1: str, version2: str) -> bool:
    return compare_versions(version1, version2) > 0


def is_version_less(version1: str, version2: str) -> bool:
    return compare_versions(version1, version2) < 0


def is_version_equal(version1: str, version2: str) -> bool:
    return compare_versions(version1, version2) == 0


def find_latest_version(versions: list[str]) -> str:
    """Find the latest version in a list.

    Raises:
        ValidationError: If the list is empty
    """
    if not versions:
        raise ValidationError("Versions array cannot be empty")

    latest = versions[0]
    for current in versions[1:]:
        if is_version_greater(current, latest):
            latest = current
    return latest


def sort_versions(versions: list[str]) -> list[str]:
    """Return a new list sorted oldest first."""
    return sorted(versions, key=cmp_to_key(compare_versions))


def sort_versions_descending(versions: list[str]) -> list[str]:
    """Return a new list sorted latest first."""
    return sorted(versions, key=cmp_to_key(compare_versions), reverse=True)


def version_change_type(current: str, latest: str) -> str:
    """Classify the bump between two versions.

    Returns:
        "major", "minor", "patch", or "other" when either side is not a
        numeric triple or the latest is not actually newer
    """
    current_parts = TRIPLE_PATTERN.match(current or "")
    latest_parts = TRIPLE_PATTERN.match(latest or "")
    if not current_parts or not latest_parts:
        return "other"

    if not is_version_greater(latest, current):
        return "other"

    cur = [int(p) for p in current_parts.groups()]
    lat = [int(p) for p in latest_parts.groups()]

    if lat[0] > cur[0]:
        return "major"
    if lat[1] > cur[1]:
        return "minor"
    if lat[2] > cur[2]:
        return "patch"
    return "other"
