"""Built-in ecosystem for Python projects declared in pyproject.toml.

Versions are resolved against a static PackageIndex (see index.py). There is
no lockfile support: a dependency's version is its exact == pin, and
requirements without a pin have no version.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import Version

from ..deps import parse_requirement, pinned_version, update_dep_list, update_specifier
from ..errors import (
    AllVersionsIgnored,
    ChangeBuildError,
    ConfigError,
    DependencyFileNotParseable,
)
from ..index import PackageIndex
from ..job import Job, SecurityAdvisory
from ..models import Dependency, DependencyFile, DependencyGroup, Notice
from ..toml import dump_toml, iter_dependency_lists, parse_toml
from .base import Unlock

logger = logging.getLogger("group_updater.ecosystems.pip")

PACKAGE_MANAGER = "pip"
MANIFEST = "pyproject.toml"


@lru_cache(maxsize=8)
def load_index(path: str) -> PackageIndex:
    """Load (once per path) the package index a job points at."""
    return PackageIndex.from_file(Path(path))


def _specifier_set(spec: str, path: str = "<ignore conditions>") -> SpecifierSet:
    try:
        return SpecifierSet(spec)
    except InvalidSpecifier as exc:
        raise DependencyFileNotParseable(path, str(exc)) from exc


class PipFileParser:
    """Parse every pyproject.toml in a file set into dependencies."""

    def __init__(self, dependency_files: list[DependencyFile], job: Job) -> None:
        self.dependency_files = dependency_files
        self.job = job

    def parse(self) -> list[Dependency]:
        manifests = [f for f in self.dependency_files if f.name == MANIFEST]
        if not manifests:
            raise DependencyFileNotParseable(MANIFEST, "No pyproject.toml in dependency files")

        # First pass: collect requirement records per canonical name
        versions: dict[str, str | None] = {}
        requirements: dict[str, list[dict]] = {}
        for f in manifests:
            doc = parse_toml(f.content, f.path)
            for section, label, deps in iter_dependency_lists(doc):
                for dep_str in deps:
                    if not isinstance(dep_str, str):
                        continue
                    req = parse_requirement(str(dep_str), f.path)
                    name = canonicalize_name(req.name)
                    if versions.get(name) is None:
                        versions[name] = pinned_version(req)
                    requirements.setdefault(name, []).append(
                        {
                            "file": f.name,
                            "requirement": str(req.specifier) or None,
                            "section": section,
                            "groups": [label],
                            "source": None,
                        }
                    )

        return [
            Dependency(
                name=name,
                version=versions[name],
                requirements=reqs,
                package_manager=PACKAGE_MANAGER,
            )
            for name, reqs in requirements.items()
        ]


class PipUpdateChecker:
    """Resolve update candidates for one dependency from the package index."""

    def __init__(
        self,
        dependency: Dependency,
        dependency_files: list[DependencyFile],
        job: Job,
        ignored_versions: list[str],
        security_advisories: list[SecurityAdvisory],
        dependency_group: DependencyGroup | None = None,
        raise_on_ignored: bool = False,
        index: PackageIndex | None = None,
    ) -> None:
        self.dependency = dependency
        self.dependency_files = dependency_files
        self.job = job
        self.ignored = [_specifier_set(s) for s in ignored_versions]
        self.security_advisories = security_advisories
        self.dependency_group = dependency_group
        self.raise_on_ignored = raise_on_ignored
        if index is None:
            if not job.index_path:
                raise ConfigError("The pip ecosystem needs a package index (index-path)")
            index = load_index(job.index_path)
        self.index = index

    @property
    def requirements_update_strategy(self) -> str:
        return self.job.requirements_update_strategy or "bump"

    def _current(self) -> Version | None:
        return Version(self.dependency.version) if self.dependency.version else None

    def _candidates(self) -> list[Version]:
        current = self._current()
        allow_pre = current is not None and current.is_prerelease
        return [
            v
            for v in self.index.available_versions(self.dependency.name)
            if allow_pre or not v.is_prerelease
        ]

    def _permitted(self) -> list[Version]:
        candidates = self._candidates()
        permitted = [
            v for v in candidates if not any(s.contains(v, prereleases=True) for s in self.ignored)
        ]
        if candidates and not permitted and self.raise_on_ignored:
            raise AllVersionsIgnored(f"All updates for {self.dependency.name} were ignored")
        return permitted

    def _vulnerable(self, version: Version) -> bool:
        return any(
            _specifier_set(spec).contains(version, prereleases=True)
            for advisory in self.security_advisories
            for spec in advisory.affected_versions
        )

    def latest_version(self) -> str | None:
        permitted = self._permitted()
        return str(permitted[-1]) if permitted else None

    def lowest_security_fix_version(self) -> str | None:
        current = self._current()
        if current is None:
            return None
        fixes = [v for v in self._permitted() if v > current and not self._vulnerable(v)]
        return str(fixes[0]) if fixes else None

    def _target(self) -> str | None:
        if self.job.security_updates_only:
            return self.lowest_security_fix_version()
        return self.latest_version()

    def up_to_date(self) -> bool:
        target = self._target()
        if target is None:
            return True
        current = self._current()
        if current is not None:
            return Version(target) <= current
        return all(
            SpecifierSet(r["requirement"] or "").contains(target, prereleases=True)
            for r in self.dependency.requirements
        )

    def requirements_unlocked_or_can_be(self) -> bool:
        return self.requirements_update_strategy != "lockfile-only"

    def can_update(self, requirements_to_unlock: Unlock) -> bool:
        # Without a lockfile the requirement text is the only thing to change
        if requirements_to_unlock in (Unlock.NONE, Unlock.UPDATE_NOT_POSSIBLE):
            return False
        return not self.up_to_date()

    def updated_dependencies(self, requirements_to_unlock: Unlock) -> list[Dependency]:
        if not self.can_update(requirements_to_unlock):
            return []
        target = self._target() or ""
        requirements = [
            dict(r, requirement=update_specifier(SpecifierSet(r["requirement"] or ""), target) or None)
            for r in self.dependency.requirements
        ]
        return [
            Dependency(
                name=self.dependency.name,
                version=target if self.dependency.version else None,
                previous_version=self.dependency.version,
                requirements=requirements,
                previous_requirements=self.dependency.requirements,
                package_manager=PACKAGE_MANAGER,
            )
        ]

    def generate_pr_notices(self) -> list[Notice]:
        entry = self.index.entry(self.dependency.name)
        if entry is None or not entry.notice:
            return []
        return [
            Notice(
                mode="WARN",
                type="package_notice",
                package_manager_name=PACKAGE_MANAGER,
                title=f"Notice for {self.dependency.name}",
                description=entry.notice,
            )
        ]


class PipFileUpdater:
    """Write updated requirement specifiers back into pyproject.toml files."""

    def __init__(
        self,
        dependency_files: list[DependencyFile],
        dependencies: list[Dependency],
        job: Job,
    ) -> None:
        self.dependency_files = dependency_files
        self.dependencies = dependencies
        self.job = job

    def _requirements_for(
        self, file_name: str, section: str, label: str
    ) -> dict[str, list[str | None]]:
        wanted: dict[str, list[str | None]] = {}
        for dep in self.dependencies:
            for r in dep.requirements:
                if (
                    r.get("file") == file_name
                    and r.get("section") == section
                    and label in r.get("groups", [])
                ):
                    wanted.setdefault(canonicalize_name(dep.name), []).append(r["requirement"])
        return wanted

    def updated_dependency_files(self) -> list[DependencyFile]:
        """Return the manifests whose content changed.

        Raises:
            ChangeBuildError: If no file changed at all.
        """
        updated: list[DependencyFile] = []
        for f in self.dependency_files:
            if f.name != MANIFEST:
                continue
            doc = parse_toml(f.content, f.path)
            changed = False
            for section, label, deps in iter_dependency_lists(doc):
                requirements = self._requirements_for(f.name, section, label)
                if requirements and update_dep_list(deps, requirements):
                    changed = True
            if changed:
                updated.append(f.model_copy(update={"content": dump_toml(doc)}))

        if not updated:
            names = ", ".join(d.name for d in self.dependencies)
            raise ChangeBuildError(f"No files were changed when updating {names}")
        logger.debug("Updated %s", ", ".join(f.path for f in updated))
        return updated
