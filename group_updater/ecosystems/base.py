"""Interfaces every ecosystem implementation provides."""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from ..job import Job, SecurityAdvisory
from ..models import Dependency, DependencyFile, DependencyGroup, Notice


class Unlock(str, Enum):
    """How far requirement text may be changed to reach a new version.

    NONE: leave declared requirements untouched (lockfile-only change).
    OWN: change only the dependency's own requirement.
    ALL: also widen requirements of dependencies constraining it.
    UPDATE_NOT_POSSIBLE: no scope permits an update.
    """

    NONE = "none"
    OWN = "own"
    ALL = "all"
    UPDATE_NOT_POSSIBLE = "update_not_possible"


class FileParser(Protocol):
    def __init__(self, dependency_files: list[DependencyFile], job: Job) -> None: ...

    def parse(self) -> list[Dependency]: ...


class UpdateChecker(Protocol):
    """Resolves what a single dependency could be updated to.

    Constructed once per dependency per group pass. Any method may raise
    InconsistentRegistryResponse or another error; latest_version raises
    AllVersionsIgnored when built with raise_on_ignored and every
    candidate is ignored.
    """

    def __init__(
        self,
        dependency: Dependency,
        dependency_files: list[DependencyFile],
        job: Job,
        ignored_versions: list[str],
        security_advisories: list[SecurityAdvisory],
        dependency_group: DependencyGroup | None,
        raise_on_ignored: bool,
    ) -> None: ...

    def latest_version(self) -> str | None: ...

    def lowest_security_fix_version(self) -> str | None: ...

    def up_to_date(self) -> bool: ...

    def can_update(self, requirements_to_unlock: Unlock) -> bool: ...

    def requirements_unlocked_or_can_be(self) -> bool: ...

    def updated_dependencies(self, requirements_to_unlock: Unlock) -> list[Dependency]: ...

    def generate_pr_notices(self) -> list[Notice]: ...


class FileUpdater(Protocol):
    def __init__(
        self,
        dependency_files: list[DependencyFile],
        dependencies: list[Dependency],
        job: Job,
    ) -> None: ...

    def updated_dependency_files(self) -> list[DependencyFile]: ...
