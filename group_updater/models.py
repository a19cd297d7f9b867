"""Data models for group-updater.

These Pydantic models represent the core data structures passed between the
group compiler and its ecosystem collaborators.
"""

from __future__ import annotations

from posixpath import normpath
from typing import Any

from pydantic import BaseModel, Field


def clean_directory(directory: str) -> str:
    """Normalise a directory so "/", "", "./" and "/a/../" compare equal."""
    return normpath("/" + directory.strip().lstrip("/")).rstrip("/") or "/"


class DependencyFile(BaseModel):
    """A manifest or lockfile tracked by an update run.

    Attributes:
        name: File name relative to its directory (e.g. "pyproject.toml").
        directory: Directory the file lives in, "/" being the repo root.
        content: Full text content of the file.
    """

    name: str
    directory: str = "/"
    content: str

    @property
    def path(self) -> str:
        """Repo-relative path, used for display and writing back to disk."""
        directory = self.directory.strip("/")
        return f"{directory}/{self.name}" if directory else self.name

    @property
    def identity(self) -> tuple[str, str]:
        """Two files with the same identity are versions of the same file."""
        return (clean_directory(self.directory), self.name)


class Dependency(BaseModel):
    """A value snapshot of one dependency as parsed from a file set.

    Attributes:
        name: Dependency name, unique within a file set.
        version: Resolved version, or None when only a range is declared.
        previous_version: Version before an update, None for parsed deps.
        requirements: One record per declaration. Each record is a dict with
            "file", "requirement", "groups", "source", optionally "section"
            (the manifest table the declaration sits in) and
            "metadata" (e.g. {"property_name": ...} or {"dependency_set": ...}).
        previous_requirements: Requirements before an update.
        package_manager: Ecosystem key this dependency belongs to.
    """

    name: str
    version: str | None = None
    previous_version: str | None = None
    requirements: list[dict[str, Any]] = Field(default_factory=list)
    previous_requirements: list[dict[str, Any]] | None = None
    package_manager: str

    @property
    def display_name(self) -> str:
        return self.name

    def requirements_changed(self) -> bool:
        if self.previous_requirements is None:
            return False
        return self.requirements != self.previous_requirements

    def top_level(self) -> bool:
        return bool(self.requirements)


class DependencyGroup(BaseModel):
    """A named set of dependencies that should be updated together.

    Attributes:
        name: Group name, unique within a run.
        rules: Group rules. "update-types" restricts which semver jumps
               may be grouped (subset of "major", "minor", "patch").
        dependencies: Member dependencies in configured order.
    """

    name: str
    rules: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[Dependency] = Field(default_factory=list)

    @property
    def update_types(self) -> list[str] | None:
        return self.rules.get("update-types") or None

    def to_config(self) -> dict[str, Any]:
        config: dict[str, Any] = {
            "name": self.name,
            "dependencies": [d.name for d in self.dependencies],
        }
        config.update(self.rules)
        return config


class Notice(BaseModel):
    """An advisory message produced by an update checker for the PR body."""

    mode: str = "INFO"
    type: str
    package_manager_name: str
    title: str = ""
    description: str
    show_in_pr: bool = True
    show_alert: bool = False


class DependencyChange(BaseModel):
    """The file-level result of updating one lead dependency.

    Produced by the change builder and merged into the group's change batch.
    """

    updated_dependencies: list[Dependency]
    updated_dependency_files: list[DependencyFile]


class GroupChange(BaseModel):
    """Everything a group compilation updated, ready for PR creation.

    Attributes:
        updated_dependencies: Deduplicated dependencies in first-update order.
        updated_dependency_files: Final content of every changed file.
        dependency_group: The group this change was compiled for.
        notices: Notices collected from every successful checker.
    """

    updated_dependencies: list[Dependency]
    updated_dependency_files: list[DependencyFile]
    dependency_group: DependencyGroup
    notices: list[Notice] = Field(default_factory=list)

    def all_have_previous_version(self) -> bool:
        return all(d.previous_version for d in self.updated_dependencies)

    def updated_dependency_names(self) -> list[str]:
        return [d.name for d in self.updated_dependencies]

    def to_summary(self) -> dict[str, Any]:
        """JSON-safe summary used by the CLI output file."""
        return {
            "group": self.dependency_group.name,
            "dependencies": [
                {
                    "name": d.name,
                    "previous_version": d.previous_version,
                    "version": d.version,
                }
                for d in self.updated_dependencies
            ],
            "files": [f.path for f in self.updated_dependency_files],
            "notices": [n.description for n in self.notices],
        }
