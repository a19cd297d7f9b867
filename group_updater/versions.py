"""Version grammars and segment decomposition.

Each ecosystem declares the grammar its version strings follow. The group
admission policy only needs two things from a grammar: whether a string is
a valid version, and its leading (major, minor, patch) segments.
"""

from __future__ import annotations

import re
from typing import Protocol

import semver
from packaging.version import InvalidVersion, Version

Segment = int | str


class VersionGrammar(Protocol):
    def correct(self, version_str: str) -> bool: ...

    def segments(self, version_str: str) -> list[Segment]: ...


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-beta" → "1.2.3-beta"

    A leading "v" is accepted. Prerelease and build metadata are kept.
    """
    # Build metadata may itself contain hyphens, so it is split off first
    version, plus, build = version_str.strip().lstrip("vV").partition("+")
    core, sep, rest = version.partition("-")
    parts = core.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    padded = ".".join(parts)
    if sep:
        padded += f"-{rest}"
    if plus:
        padded += f"+{build}"
    return semver.Version.parse(padded)


class SemverGrammar:
    """Semantic versions, tolerating short forms like "1.2"."""

    def correct(self, version_str: str) -> bool:
        try:
            parse_version(version_str)
        except (ValueError, TypeError):
            return False
        return True

    def segments(self, version_str: str) -> list[Segment]:
        v = parse_version(version_str)
        return [v.major, v.minor, v.patch]


class Pep440Grammar:
    """Python package versions (PEP 440) via packaging."""

    def correct(self, version_str: str) -> bool:
        try:
            Version(version_str)
        except InvalidVersion:
            return False
        return True

    def segments(self, version_str: str) -> list[Segment]:
        return list(Version(version_str).release)


_GENERIC_VERSION = re.compile(r"^\s*[0-9]+[0-9a-zA-Z]*(?:[.-][0-9a-zA-Z]+)*\s*$")
_GENERIC_SEGMENT = re.compile(r"[0-9]+|[a-zA-Z]+")


class GenericGrammar:
    """Loose dotted versions where segments may be numbers or words.

    "1.2.a" yields [1, 2, "a"], so segments of different types can appear
    in the same position across two versions.
    """

    def correct(self, version_str: str) -> bool:
        return bool(_GENERIC_VERSION.match(version_str))

    def segments(self, version_str: str) -> list[Segment]:
        return [
            int(s) if s.isdigit() else s
            for s in _GENERIC_SEGMENT.findall(version_str.strip())
        ]


GRAMMARS: dict[str, VersionGrammar] = {
    "semver": SemverGrammar(),
    "pep440": Pep440Grammar(),
    "generic": GenericGrammar(),
}


def semver_segments(segments: list[Segment]) -> dict[str, Segment]:
    """Map the leading segments to major/minor/patch, defaulting to 0.

    Examples:
        [1, 2, 3, 4] → {"major": 1, "minor": 2, "patch": 3}
        [5] → {"major": 5, "minor": 0, "patch": 0}
    """
    padded = list(segments[:3]) + [0] * (3 - len(segments[:3]))
    return {"major": padded[0], "minor": padded[1], "patch": padded[2]}
