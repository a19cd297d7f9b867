"""A static package index read from a JSON file.

The built-in pip ecosystem resolves versions against this index instead of
a live registry, which keeps runs reproducible. The file maps package names
to either a list of versions or a table:

    {
        "requests": ["2.30.0", "2.31.0"],
        "flask": {"versions": ["2.3.3", "3.0.0"], "yanked": ["3.0.1"],
                  "notice": "flask 3 drops Python 3.7"}
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, Field

from .errors import ConfigError, InconsistentRegistryResponse


class IndexEntry(BaseModel):
    """Published versions of one package."""

    versions: list[str] = Field(default_factory=list)
    yanked: list[str] = Field(default_factory=list)
    notice: str | None = None


class PackageIndex:
    """Name → published versions, with PEP 503 name normalisation."""

    def __init__(self, entries: dict[str, Any] | None = None) -> None:
        self._entries: dict[str, IndexEntry] = {}
        for name, raw in (entries or {}).items():
            entry = IndexEntry(versions=raw) if isinstance(raw, list) else IndexEntry(**raw)
            self._entries[canonicalize_name(name)] = entry

    @classmethod
    def from_file(cls, path: Path) -> PackageIndex:
        """Load an index from a JSON file.

        Raises:
            ConfigError: If the file is missing or not a JSON object.
        """
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError as exc:
            raise ConfigError(f"Package index not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in package index {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Package index {path} must be a JSON object")
        return cls(data)

    def entry(self, name: str) -> IndexEntry | None:
        return self._entries.get(canonicalize_name(name))

    def available_versions(self, name: str) -> list[Version]:
        """Published, non-yanked versions of a package, lowest first.

        Raises:
            InconsistentRegistryResponse: If the index lists a version that
                is not a valid PEP 440 version.
        """
        entry = self.entry(name)
        if entry is None:
            return []
        yanked = set(entry.yanked)
        versions: list[Version] = []
        for raw in entry.versions:
            if raw in yanked:
                continue
            try:
                versions.append(Version(raw))
            except InvalidVersion as exc:
                raise InconsistentRegistryResponse(
                    f"Index lists invalid version {raw!r} for {name}"
                ) from exc
        return sorted(set(versions))
