"""Decide whether and how one dependency of a group should be updated.

The engine never raises for a dependency-level problem. Every path ends in
an UpdateDecision, so the group compiler can branch on the outcome instead
of catching exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from . import ecosystems
from .admission import semver_rules_allow_grouping
from .ecosystems import Ecosystem, Unlock, UpdateChecker
from .error_handler import ErrorHandler
from .errors import AllVersionsIgnored, InconsistentRegistryResponse
from .job import Job
from .models import Dependency, DependencyFile, DependencyGroup, Notice
from .snapshot import DependencySnapshot

logger = logging.getLogger("group_updater.decision")


class DecisionKind(str, Enum):
    UPDATE = "update"
    IGNORED = "ignored"
    EXCLUDED = "excluded"
    UP_TO_DATE = "up_to_date"
    NOT_POSSIBLE = "not_possible"
    ERROR = "error"


@dataclass(frozen=True)
class UpdateDecision:
    """Outcome of checking one dependency.

    Attributes:
        kind: What the engine concluded.
        dependencies: For UPDATE, every dependency that must change together
            (the checked dependency plus any lock-step collaborators).
        notices: Notices the checker produced alongside the update.
        error: The exception behind an ERROR decision.
    """

    kind: DecisionKind
    dependencies: list[Dependency] = field(default_factory=list)
    notices: list[Notice] = field(default_factory=list)
    error: Exception | None = None

    def __bool__(self) -> bool:
        return self.kind is DecisionKind.UPDATE and bool(self.dependencies)


def requirements_to_unlock(checker: UpdateChecker) -> Unlock:
    """Pick the narrowest unlock scope that lets the checker update.

    If requirements cannot be unlocked at all, only a lockfile-level update
    (NONE) is possible.
    """
    if not checker.requirements_unlocked_or_can_be():
        if checker.can_update(Unlock.NONE):
            return Unlock.NONE
        return Unlock.UPDATE_NOT_POSSIBLE
    if checker.can_update(Unlock.OWN):
        return Unlock.OWN
    if checker.can_update(Unlock.ALL):
        return Unlock.ALL
    return Unlock.UPDATE_NOT_POSSIBLE


class UpdateDecisionEngine:
    """Runs the update checker for one dependency at a time.

    Args:
        job: The run's job (ignore rules, advisories, package manager).
        snapshot: Run context; dependencies are marked handled on it.
        error_handler: Sink for dependency errors.
        ecosystem: Implementation to use; looked up from the job if omitted.
    """

    def __init__(
        self,
        job: Job,
        snapshot: DependencySnapshot,
        error_handler: ErrorHandler,
        ecosystem: Ecosystem | None = None,
    ) -> None:
        self.job = job
        self.snapshot = snapshot
        self.error_handler = error_handler
        self.ecosystem = ecosystem or ecosystems.for_package_manager(job.package_manager)

    def update_checker_for(
        self,
        dependency: Dependency,
        dependency_files: list[DependencyFile],
        group: DependencyGroup,
    ) -> UpdateChecker:
        ignored = self.job.ignore_conditions_for(dependency)
        return self.ecosystem.checker(
            dependency=dependency,
            dependency_files=dependency_files,
            job=self.job,
            ignored_versions=ignored,
            security_advisories=self.job.security_advisories_for(dependency),
            dependency_group=group,
            raise_on_ignored=bool(ignored),
        )

    def decide(
        self,
        dependency: Dependency,
        dependency_files: list[DependencyFile],
        group: DependencyGroup,
    ) -> UpdateDecision:
        try:
            return self._decide(dependency, dependency_files, group)
        except InconsistentRegistryResponse as e:
            self.snapshot.add_handled_dependencies(dependency.name)
            self.error_handler.log_dependency_error(
                dependency=dependency,
                error=e,
                error_type=e.error_type,
                error_detail=str(e),
                dependency_group=group,
            )
            return UpdateDecision(DecisionKind.ERROR, error=e)
        except Exception as e:
            # Semver grouping may not have been decided, so treat the dependency
            # as handled to keep it from getting an individual update too
            self.snapshot.add_handled_dependencies(dependency.name)
            self.error_handler.handle_dependency_error(
                error=e, dependency=dependency, dependency_group=group
            )
            return UpdateDecision(DecisionKind.ERROR, error=e)

    def _decide(
        self,
        dependency: Dependency,
        dependency_files: list[DependencyFile],
        group: DependencyGroup,
    ) -> UpdateDecision:
        checker = self.update_checker_for(dependency, dependency_files, group)

        logger.info("Checking if %s %s needs updating", dependency.name, dependency.version)
        self.job.log_ignore_conditions_for(dependency)

        if self._all_versions_ignored(dependency, checker):
            self.snapshot.add_handled_dependencies(dependency.name)
            return UpdateDecision(DecisionKind.IGNORED)

        if not semver_rules_allow_grouping(
            group.update_types,
            dependency.version,
            checker.latest_version(),
            self.ecosystem.version_grammar,
        ):
            # Left unhandled so another group or an individual update picks it up
            logger.info(
                "Skipping %s from group %s as its update exceeds the group's update-types",
                dependency.name,
                group.name,
            )
            return UpdateDecision(DecisionKind.EXCLUDED)

        # Handled from here on, even if no update turns out to be possible
        self.snapshot.add_handled_dependencies(dependency.name)

        if checker.up_to_date():
            logger.info("No update needed for %s %s", dependency.name, dependency.version)
            return UpdateDecision(DecisionKind.UP_TO_DATE)

        unlock = requirements_to_unlock(checker)
        logger.info("Requirements to unlock %s", unlock.value)
        strategy = getattr(checker, "requirements_update_strategy", None)
        if strategy is not None:
            logger.info("Requirements update strategy %s", strategy)

        if unlock is Unlock.UPDATE_NOT_POSSIBLE:
            logger.info("No update possible for %s %s", dependency.name, dependency.version)
            return UpdateDecision(DecisionKind.NOT_POSSIBLE)

        updated = checker.updated_dependencies(unlock)
        notices = checker.generate_pr_notices()
        return UpdateDecision(DecisionKind.UPDATE, dependencies=list(updated), notices=list(notices))

    def _all_versions_ignored(self, dependency: Dependency, checker: UpdateChecker) -> bool:
        try:
            if self.job.security_updates_only:
                logger.info("Lowest security fix version is %s", checker.lowest_security_fix_version())
            else:
                logger.info("Latest version is %s", checker.latest_version())
        except AllVersionsIgnored:
            logger.info("All updates for %s were ignored", dependency.name)
            return True
        return False
