"""Job definition: what an update run is asked to do.

A Job is built from configuration (see config.py) and consulted by the
compiler and the update checkers for ignore rules, advisories, experiments
and workspace settings.
"""

from __future__ import annotations

import logging
from fnmatch import fnmatch
from typing import Any

from pydantic import BaseModel, Field

from .models import Dependency
from .versions import GenericGrammar, semver_segments

logger = logging.getLogger("group_updater.job")

UPDATE_TYPE_PREFIX = "version-update:semver-"


class IgnoreCondition(BaseModel):
    """Versions of a dependency that must never be proposed.

    Attributes:
        dependency_name: Name or fnmatch-style pattern.
        versions: Version specifiers to ignore (e.g. ">=5").
        update_types: Jumps to ignore, e.g. "version-update:semver-major".
    """

    dependency_name: str
    versions: list[str] = Field(default_factory=list)
    update_types: list[str] = Field(default_factory=list)

    def matches(self, dependency: Dependency) -> bool:
        return fnmatch(dependency.name.lower(), self.dependency_name.lower())

    def ignored_versions(self, current_version: str | None) -> list[str]:
        """Expand this condition into plain version specifiers."""
        ignored = list(self.versions)
        for update_type in self.update_types:
            ignored.extend(_update_type_ranges(update_type, current_version))
        return ignored


def _update_type_ranges(update_type: str, current_version: str | None) -> list[str]:
    """Turn an update type into the version range it excludes.

    Examples, for a current version of 1.2.3:
        semver-major → ">=2.0.0"
        semver-minor → ">=1.3.0,<2.0.0"
        semver-patch → ">1.2.3,<1.3.0"
    """
    if current_version is None:
        return []
    segments = semver_segments(GenericGrammar().segments(current_version))
    if not all(isinstance(v, int) for v in segments.values()):
        return []
    major, minor, patch = segments["major"], segments["minor"], segments["patch"]
    level = update_type.removeprefix(UPDATE_TYPE_PREFIX)
    if level == "major":
        return [f">={major + 1}.0.0"]
    if level == "minor":
        return [f">={major}.{minor + 1}.0,<{major + 1}.0.0"]
    if level == "patch":
        return [f">{major}.{minor}.{patch},<{major}.{minor + 1}.0"]
    logger.warning("Unknown ignore update type %r", update_type)
    return []


class SecurityAdvisory(BaseModel):
    """A known vulnerability affecting a range of versions."""

    dependency_name: str
    affected_versions: list[str] = Field(default_factory=list)
    patched_versions: list[str] = Field(default_factory=list)

    def matches(self, dependency: Dependency) -> bool:
        return self.dependency_name.lower() == dependency.name.lower()


class GroupConfig(BaseModel):
    """A configured group: its name, member names and rules."""

    name: str
    dependencies: list[str] = Field(default_factory=list)
    rules: dict[str, Any] = Field(default_factory=dict)


class Job(BaseModel):
    """Settings for one update run.

    Attributes:
        package_manager: Ecosystem key, e.g. "pip".
        directory: Directory (relative to the repo root) holding the manifests.
        repo_contents_path: Local checkout; required for a workspace.
        index_path: JSON package index used by the built-in pip ecosystem.
        clone: Whether the run works in a git checkout (enables the workspace).
        security_updates_only: Target the lowest security fix, not the latest.
        requirements_update_strategy: "bump" or "lockfile-only".
        experiments: Feature flags, e.g. {"dependency_change_validation": True}.
        ignore_conditions: Versions never to propose.
        security_advisories: Known vulnerabilities.
        existing_group_pull_requests: Open group PRs, as
            {"dependency-group-name": ...} records.
        groups: Groups to compile, in order.
    """

    package_manager: str
    directory: str = "/"
    repo_contents_path: str | None = None
    index_path: str | None = None
    clone: bool = False
    security_updates_only: bool = False
    requirements_update_strategy: str | None = None
    experiments: dict[str, Any] = Field(default_factory=dict)
    ignore_conditions: list[IgnoreCondition] = Field(default_factory=list)
    security_advisories: list[SecurityAdvisory] = Field(default_factory=list)
    existing_group_pull_requests: list[dict[str, Any]] = Field(default_factory=list)
    groups: list[GroupConfig] = Field(default_factory=list)

    def clone_enabled(self) -> bool:
        return self.clone and bool(self.repo_contents_path)

    def experiment_enabled(self, name: str) -> bool:
        return bool(self.experiments.get(name))

    def ignore_conditions_for(self, dependency: Dependency) -> list[str]:
        ignored: list[str] = []
        for condition in self.ignore_conditions:
            if condition.matches(dependency):
                ignored.extend(condition.ignored_versions(dependency.version))
        return ignored

    def security_advisories_for(self, dependency: Dependency) -> list[SecurityAdvisory]:
        return [a for a in self.security_advisories if a.matches(dependency)]

    def log_ignore_conditions_for(self, dependency: Dependency) -> None:
        ignored = self.ignore_conditions_for(dependency)
        if not ignored:
            return
        logger.info("Ignored versions:")
        for spec in ignored:
            logger.info("  %s", spec)
