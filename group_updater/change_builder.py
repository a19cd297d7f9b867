"""Turn a set of updated dependencies into concrete file changes."""

from __future__ import annotations

from . import ecosystems
from .ecosystems import Ecosystem
from .errors import ChangeBuildError
from .job import Job
from .models import Dependency, DependencyChange, DependencyFile, DependencyGroup


class DependencyChangeBuilder:
    """Runs the ecosystem's file updater for one set of updated dependencies.

    Args:
        job: The run's job.
        dependency_files: The files to update (the group's current files).
        updated_dependencies: Everything that must change together.
        change_source: The group (or dependency) the change is made for.
        ecosystem: Implementation to use; looked up from the job if omitted.
    """

    def __init__(
        self,
        job: Job,
        dependency_files: list[DependencyFile],
        updated_dependencies: list[Dependency],
        change_source: DependencyGroup | Dependency,
        ecosystem: Ecosystem | None = None,
    ) -> None:
        self.job = job
        self.dependency_files = dependency_files
        self.updated_dependencies = updated_dependencies
        self.change_source = change_source
        self.ecosystem = ecosystem or ecosystems.for_package_manager(job.package_manager)

    @classmethod
    def create_from(
        cls,
        job: Job,
        dependency_files: list[DependencyFile],
        updated_dependencies: list[Dependency],
        change_source: DependencyGroup | Dependency,
        ecosystem: Ecosystem | None = None,
    ) -> DependencyChange:
        return cls(job, dependency_files, updated_dependencies, change_source, ecosystem).run()

    def run(self) -> DependencyChange:
        """Build the change.

        Raises:
            ChangeBuildError: If there is nothing to update or the file
                updater returned no files.
        """
        if not self.updated_dependencies:
            raise ChangeBuildError("No dependencies to update")

        updater = self.ecosystem.file_updater(
            dependency_files=self.dependency_files,
            dependencies=self.updated_dependencies,
            job=self.job,
        )
        updated_files = updater.updated_dependency_files()
        if not updated_files:
            raise ChangeBuildError(
                "No files changed for "
                + ", ".join(d.name for d in self.updated_dependencies)
            )
        return DependencyChange(
            updated_dependencies=self.updated_dependencies,
            updated_dependency_files=updated_files,
        )
