"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying
pyproject.toml content. This keeps the diffs in update PRs minimal.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import tomlkit
from tomlkit.exceptions import ParseError

from .errors import DependencyFileNotParseable


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML file from disk."""
    return tomlkit.parse(path.read_text())


def parse_toml(content: str, path: str) -> tomlkit.TOMLDocument:
    """Parse TOML content, reporting failures against the file's path.

    Raises:
        DependencyFileNotParseable: If the content is not valid TOML.
    """
    try:
        return tomlkit.parse(content)
    except ParseError as exc:
        raise DependencyFileNotParseable(path, str(exc)) from exc


def dump_toml(doc: tomlkit.TOMLDocument) -> str:
    """Serialise a TOMLDocument, preserving original formatting."""
    return tomlkit.dumps(doc)


def iter_dependency_lists(doc: tomlkit.TOMLDocument) -> Iterator[tuple[str, str, list]]:
    """Yield (section, label, list) for every dependency list in a pyproject.

    Sections are "project", "optional-dependencies" and "dependency-groups".
    Labels are "dependencies" for [project].dependencies, the extra name for
    optional dependencies and the group name for PEP 735 groups. An extra and
    a PEP 735 group may share a label, so both are needed to find a list.
    The yielded lists are the live tomlkit arrays, so callers may edit them.
    """
    project = doc.get("project", {})
    deps = project.get("dependencies")
    if isinstance(deps, list):
        yield "project", "dependencies", deps
    # Optional dependency groups (e.g., [project.optional-dependencies.dev])
    for extra, group_deps in project.get("optional-dependencies", {}).items():
        if isinstance(group_deps, list):
            yield "optional-dependencies", extra, group_deps
    # PEP 735 dependency groups (e.g., [dependency-groups.test])
    for group, group_deps in doc.get("dependency-groups", {}).items():
        if isinstance(group_deps, list):
            yield "dependency-groups", group, group_deps


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Collect all dependency strings from a pyproject.toml.

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    PEP 735 include-group tables are skipped.
    """
    return [
        str(dep)
        for _, _, deps in iter_dependency_lists(doc)
        for dep in deps
        if isinstance(dep, str)
    ]


def get_tool_table(doc: tomlkit.TOMLDocument, tool: str) -> dict | None:
    """Return [tool.<tool>] if present, else None."""
    table = doc.get("tool", {}).get(tool)
    return table if isinstance(table, dict) else None
