"""Compile every update for a dependency group into one change.

For each dependency in the group, in order:
1. Skip it if an earlier group (or lock-step update) already handled it
2. Re-parse the files as left by the previous dependencies
3. Detect dependencies already moved as a side effect of an earlier update
4. Ask the decision engine what (if anything) to update
5. Build the file change for the update and merge it into the batch

The result aggregates everything merged into a single GroupChange. A failure
on one dependency is recorded and skipped; it never stops the group.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass

from . import ecosystems
from .batch import DependencyGroupChangeBatch
from .change_builder import DependencyChangeBuilder
from .decision import UpdateDecisionEngine
from .ecosystems import Ecosystem
from .error_handler import ErrorHandler
from .errors import InconsistentRegistryResponse
from .job import Job
from .models import (
    Dependency,
    DependencyChange,
    DependencyFile,
    DependencyGroup,
    GroupChange,
    Notice,
)
from .snapshot import DependencySnapshot
from .workspace import GitWorkspace, workspace_for

logger = logging.getLogger("group_updater.compiler")

VALIDATION_EXPERIMENT = "dependency_change_validation"


@dataclass(frozen=True)
class BuildResult:
    """Outcome of building the file change for one lead dependency."""

    change: DependencyChange | None = None
    error: Exception | None = None

    def __bool__(self) -> bool:
        return self.change is not None


class GroupUpdateCompiler:
    """Compiles groups against one run's snapshot.

    Args:
        job: The run's job.
        snapshot: Run context shared by every group of the run.
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
        self.engine = UpdateDecisionEngine(job, snapshot, error_handler, self.ecosystem)

    def compile(
        self,
        group: DependencyGroup,
        should_abort: Callable[[], bool] | None = None,
    ) -> GroupChange | None:
        """Compile all updates for a group.

        Args:
            group: The group to compile.
            should_abort: Checked before each dependency; when it returns
                True the pass stops and the change merged so far is returned.

        Returns:
            The aggregated change, or None when provenance validation is
            enabled and some updated dependency has no previous version.
        """
        with workspace_for(self.job) as workspace:
            return self._compile(group, workspace, should_abort)

    def _compile(
        self,
        group: DependencyGroup,
        workspace: GitWorkspace | None,
        should_abort: Callable[[], bool] | None,
    ) -> GroupChange | None:
        batch = DependencyGroupChangeBatch(self.snapshot.dependency_files)
        original_dependencies = {d.name: d for d in self.snapshot.dependencies}
        notices: list[Notice] = []

        logger.info("Updating the %s directory.", self.job.directory)

        for member in group.dependencies:
            if should_abort is not None and should_abort():
                logger.warning(
                    "Stopping group %s early; keeping updates merged so far", group.name
                )
                break

            # Updated in another manifest is fine; handled in this run is not
            if member.name in self.snapshot.handled_dependencies:
                logger.info(
                    "Skipping %s as it has already been handled by a previous group",
                    member.name,
                )
                continue

            dependency_files = batch.current_dependency_files(self.job.directory)
            dependency = self._reparse(member, dependency_files, group)

            # Not found: likely removed by a previous update in this pass
            if dependency is None:
                continue

            updated = self.deduce_updated_dependency(
                dependency, original_dependencies.get(dependency.name)
            )
            if updated is not None:
                batch.add_updated_dependency(updated)
                continue

            decision = self.engine.decide(dependency, dependency_files, group)
            if not decision:
                continue
            notices.extend(decision.notices)

            lead = next(
                (d for d in decision.dependencies if d.name.casefold() == dependency.name.casefold()),
                dependency,
            )
            result = self.create_change_for(lead, decision.dependencies, dependency_files, group)

            # Move on using the existing files if no change could be built
            if not result:
                continue

            try:
                batch.merge(result.change)
            except ValueError as e:
                self.error_handler.handle_dependency_error(
                    error=e, dependency=lead, dependency_group=group
                )
                continue
            self.store_changes(workspace, dependency, result.change.updated_dependency_files)

        change = GroupChange(
            updated_dependencies=batch.updated_dependencies,
            updated_dependency_files=batch.updated_dependency_files,
            dependency_group=group,
            notices=notices,
        )

        if self.job.experiment_enabled(VALIDATION_EXPERIMENT) and not change.all_have_previous_version():
            self.log_missing_previous_version(group, change)
            return None

        return change

    def _reparse(
        self,
        member: Dependency,
        dependency_files: list[DependencyFile],
        group: DependencyGroup,
    ) -> Dependency | None:
        """Find the member in a fresh parse of the current files."""
        try:
            reparsed = self.ecosystem.parser(dependency_files=dependency_files, job=self.job).parse()
        except Exception as e:
            self.snapshot.add_handled_dependencies(member.name)
            self.error_handler.handle_dependency_error(
                error=e, dependency=member, dependency_group=group
            )
            return None
        return next((d for d in reparsed if d.name == member.name), None)

    def deduce_updated_dependency(
        self,
        dependency: Dependency,
        original_dependency: Dependency | None,
    ) -> Dependency | None:
        """Detect a dependency already moved by an earlier update in the pass.

        Returns:
            A dependency describing the move (from its version at the start
            of the run to its current version), or None if it has not moved.
        """
        if original_dependency is None or original_dependency.version == dependency.version:
            return None

        logger.info(
            "Skipping %s as it has already been updated to %s",
            dependency.name,
            dependency.version,
        )
        self.snapshot.add_handled_dependencies(dependency.name)

        return Dependency(
            name=dependency.name,
            version=dependency.version,
            previous_version=original_dependency.version,
            requirements=dependency.requirements,
            previous_requirements=original_dependency.requirements,
            package_manager=dependency.package_manager,
        )

    def create_change_for(
        self,
        lead_dependency: Dependency,
        updated_dependencies: list[Dependency],
        dependency_files: list[DependencyFile],
        group: DependencyGroup,
    ) -> BuildResult:
        """Build the file change for a lead dependency and its collaborators."""
        try:
            change = DependencyChangeBuilder.create_from(
                job=self.job,
                dependency_files=dependency_files,
                updated_dependencies=updated_dependencies,
                change_source=group,
                ecosystem=self.ecosystem,
            )
        except InconsistentRegistryResponse as e:
            self.error_handler.log_dependency_error(
                dependency=lead_dependency,
                error=e,
                error_type=e.error_type,
                error_detail=str(e),
                dependency_group=group,
            )
            return BuildResult(error=e)
        except Exception as e:
            self.error_handler.handle_dependency_error(
                error=e, dependency=lead_dependency, dependency_group=group
            )
            return BuildResult(error=e)
        return BuildResult(change=change)

    def store_changes(
        self,
        workspace: GitWorkspace | None,
        dependency: Dependency,
        files: list[DependencyFile],
    ) -> None:
        if workspace is None:
            return
        try:
            workspace.store_change(files, memo=f"Updating {dependency.name}")
        except (subprocess.CalledProcessError, OSError) as e:
            logger.warning("Could not store workspace change for %s: %s", dependency.name, e)

    def log_missing_previous_version(self, group: DependencyGroup, change: GroupChange) -> None:
        no_previous = [d.name for d in change.updated_dependencies if not d.previous_version]
        no_change = [d.name for d in change.updated_dependencies if not d.requirements_changed()]
        msg = f"Skipping change to group {group.name} in directory {self.job.directory}: "
        if no_previous:
            msg += f"Previous version was not provided for: '{', '.join(no_previous)}' "
        if no_change:
            msg += f"No requirements change for: '{', '.join(no_change)}'"
        logger.info(msg.rstrip())
