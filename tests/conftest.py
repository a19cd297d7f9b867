"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from group_updater import ecosystems
from group_updater.ecosystems import Unlock
from group_updater.errors import AllVersionsIgnored, ChangeBuildError, DependencyFileNotParseable
from group_updater.job import Job
from group_updater.models import Dependency, DependencyFile, DependencyGroup, Notice
from group_updater.snapshot import DependencySnapshot

FAKE_MANIFEST = "deps.json"


@dataclass
class FakeRegistry:
    """Behaviour of the in-memory "fake" ecosystem, set per test.

    The fake manifest is a JSON object of name → version. Every field below
    is keyed by dependency name.
    """

    latest: dict[str, str] = field(default_factory=dict)
    together: dict[str, list[str]] = field(default_factory=dict)
    failing: dict[str, Exception] = field(default_factory=dict)
    all_ignored: set[str] = field(default_factory=set)
    not_possible: set[str] = field(default_factory=set)
    unbuildable: set[str] = field(default_factory=set)
    duplicate_files: set[str] = field(default_factory=set)
    no_previous_version: set[str] = field(default_factory=set)
    notices: dict[str, list[Notice]] = field(default_factory=dict)
    renamed: dict[str, str] = field(default_factory=dict)
    fail_parse: bool = False
    checked: list[str] = field(default_factory=list)


def fake_manifest(versions: dict[str, str], directory: str = "/") -> DependencyFile:
    return DependencyFile(
        name=FAKE_MANIFEST, directory=directory, content=json.dumps(versions, indent=2) + "\n"
    )


def read_fake_manifest(files: list[DependencyFile]) -> dict[str, str]:
    manifest = next(f for f in files if f.name == FAKE_MANIFEST)
    return json.loads(manifest.content)


def _fake_requirement(version: str | None) -> dict:
    return {"file": FAKE_MANIFEST, "requirement": version, "groups": [], "source": None}


def _fake_classes(registry: FakeRegistry) -> tuple[type, type, type]:
    class FakeParser:
        def __init__(self, dependency_files: list[DependencyFile], job: Job) -> None:
            self.dependency_files = dependency_files
            self.job = job

        def parse(self) -> list[Dependency]:
            if registry.fail_parse:
                raise DependencyFileNotParseable(FAKE_MANIFEST, "parse disabled")
            return [
                Dependency(
                    name=name,
                    version=version,
                    requirements=[_fake_requirement(version)],
                    package_manager="fake",
                )
                for name, version in read_fake_manifest(self.dependency_files).items()
            ]

    class FakeChecker:
        def __init__(
            self,
            dependency: Dependency,
            dependency_files: list[DependencyFile],
            job: Job,
            ignored_versions: list[str],
            security_advisories: list,
            dependency_group: DependencyGroup | None = None,
            raise_on_ignored: bool = False,
        ) -> None:
            self.dependency = dependency
            self.dependency_files = dependency_files
            self.raise_on_ignored = raise_on_ignored
            registry.checked.append(dependency.name)

        def latest_version(self) -> str | None:
            name = self.dependency.name
            if name in registry.failing:
                raise registry.failing[name]
            if name in registry.all_ignored and self.raise_on_ignored:
                raise AllVersionsIgnored(f"All updates for {name} were ignored")
            return registry.latest.get(name, self.dependency.version)

        def lowest_security_fix_version(self) -> str | None:
            return self.latest_version()

        def up_to_date(self) -> bool:
            return self.latest_version() == self.dependency.version

        def requirements_unlocked_or_can_be(self) -> bool:
            return True

        def can_update(self, requirements_to_unlock: Unlock) -> bool:
            if self.dependency.name in registry.not_possible:
                return False
            return requirements_to_unlock is Unlock.OWN and not self.up_to_date()

        def _moved(self, name: str, current: str) -> Dependency:
            previous = None if name in registry.no_previous_version else current
            return Dependency(
                name=registry.renamed.get(name, name),
                version=registry.latest[name],
                previous_version=previous,
                requirements=[_fake_requirement(registry.latest[name])],
                previous_requirements=[_fake_requirement(current)],
                package_manager="fake",
            )

        def updated_dependencies(self, requirements_to_unlock: Unlock) -> list[Dependency]:
            current = read_fake_manifest(self.dependency_files)
            name = self.dependency.name
            collaborators = [
                self._moved(other, current[other]) for other in registry.together.get(name, [])
            ]
            return collaborators + [self._moved(name, current[name])]

        def generate_pr_notices(self) -> list[Notice]:
            return registry.notices.get(self.dependency.name, [])

    class FakeFileUpdater:
        def __init__(
            self,
            dependency_files: list[DependencyFile],
            dependencies: list[Dependency],
            job: Job,
        ) -> None:
            self.dependency_files = dependency_files
            self.dependencies = dependencies

        def updated_dependency_files(self) -> list[DependencyFile]:
            names = {d.name.lower() for d in self.dependencies}
            if names & registry.unbuildable:
                raise ChangeBuildError("Could not update " + ", ".join(sorted(names)))
            manifest = next(f for f in self.dependency_files if f.name == FAKE_MANIFEST)
            versions = json.loads(manifest.content)
            for dep in self.dependencies:
                versions[dep.name.lower()] = dep.version
            updated = manifest.model_copy(
                update={"content": json.dumps(versions, indent=2) + "\n"}
            )
            if names & registry.duplicate_files:
                return [updated, updated]
            return [updated]

    return FakeParser, FakeChecker, FakeFileUpdater


@pytest.fixture
def fake() -> Iterator[FakeRegistry]:
    """Register the in-memory "fake" ecosystem for the duration of a test."""
    registry = FakeRegistry()
    parser, checker, file_updater = _fake_classes(registry)
    ecosystems.register(
        "fake", parser=parser, checker=checker, file_updater=file_updater, version_grammar="semver"
    )
    yield registry
    ecosystems.unregister("fake")


@pytest.fixture
def fake_job() -> Job:
    return Job(package_manager="fake")


@pytest.fixture
def make_snapshot(fake: FakeRegistry) -> Callable[..., DependencySnapshot]:
    """Build a snapshot from name → version plus groups of member names."""

    def _make(
        versions: dict[str, str],
        groups: dict[str, list[str]] | None = None,
        rules: dict[str, dict] | None = None,
    ) -> DependencySnapshot:
        files = [fake_manifest(versions)]
        dependencies = [
            Dependency(
                name=name,
                version=version,
                requirements=[_fake_requirement(version)],
                package_manager="fake",
            )
            for name, version in versions.items()
        ]
        by_name = {d.name: d for d in dependencies}
        snapshot = DependencySnapshot(dependency_files=files, dependencies=dependencies)
        snapshot.groups = [
            DependencyGroup(
                name=group_name,
                rules=(rules or {}).get(group_name, {}),
                dependencies=[by_name[m] for m in members],
            )
            for group_name, members in (groups or {}).items()
        ]
        return snapshot

    return _make


PYPROJECT = """\
[project]
name = "app"
version = "0.1.0"
# Runtime dependencies
dependencies = [
    "flask==2.3.3",
    "werkzeug==2.3.7",
    "requests>=2.28,<3",
    "rich",
]

[project.optional-dependencies]
dev = ["pytest>=7.0"]

[dependency-groups]
lint = ["ruff==0.1.0"]
"""

INDEX = {
    "flask": ["2.3.3", "3.0.0", "3.1.0rc1"],
    "werkzeug": {
        "versions": ["2.3.7", "2.3.8", "3.0.1"],
        "yanked": ["3.0.1"],
        "notice": "werkzeug 3 removes deprecated helpers",
    },
    "requests": ["2.28.0", "2.31.0", "3.0.0"],
    "rich": ["13.0.0"],
    "pytest": ["7.0.0", "8.0.0"],
    "ruff": ["0.1.0", "0.2.0"],
}


@pytest.fixture
def pyproject_file() -> DependencyFile:
    return DependencyFile(name="pyproject.toml", directory="/", content=PYPROJECT)


@pytest.fixture
def index_path(tmp_path: Path) -> Path:
    path = tmp_path / "index.json"
    path.write_text(json.dumps(INDEX))
    return path


@pytest.fixture
def pip_job(index_path: Path) -> Job:
    return Job(package_manager="pip", index_path=str(index_path))


@pytest.fixture
def project_dir(tmp_path: Path, index_path: Path) -> Path:
    """A checkout with a pyproject.toml that configures group-updater."""
    (tmp_path / "pyproject.toml").write_text(
        PYPROJECT
        + """
[tool.group-updater]
package-manager = "pip"
index-path = "index.json"

[[tool.group-updater.groups]]
name = "web"
dependencies = ["Flask", "werkzeug"]

[[tool.group-updater.groups]]
name = "tools"
dependencies = ["ruff", "pytest"]
update-types = ["patch"]
"""
    )
    return tmp_path


@pytest.fixture
def make_manifest() -> Callable[..., DependencyFile]:
    """Build a fake-ecosystem manifest from name → version."""
    return fake_manifest
