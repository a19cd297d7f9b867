"""Accumulates file changes while a group is being compiled.

Each dependency in a group is updated against the files as left by the
dependencies before it, so the batch holds the running file state and the
list of dependencies updated so far.
"""

from __future__ import annotations

from .models import Dependency, DependencyChange, DependencyFile, clean_directory


class DependencyGroupChangeBatch:
    """Running state of one group compilation pass.

    Attributes:
        initial_files: The files as they were before the pass (never changed).
    """

    def __init__(self, initial_dependency_files: list[DependencyFile]) -> None:
        self.initial_files: tuple[DependencyFile, ...] = tuple(initial_dependency_files)
        self._files: dict[tuple[str, str], DependencyFile] = {
            f.identity: f for f in self.initial_files
        }
        self._initial_content = {f.identity: f.content for f in self.initial_files}
        self._updated: dict[str, Dependency] = {}

    @property
    def current_files(self) -> list[DependencyFile]:
        return list(self._files.values())

    def current_dependency_files(self, directory: str | None = None) -> list[DependencyFile]:
        """Return the working files, optionally restricted to one directory.

        Before any merge this is exactly the initial files for that directory.
        """
        if directory is None:
            return self.current_files
        wanted = clean_directory(directory)
        return [f for f in self._files.values() if clean_directory(f.directory) == wanted]

    @property
    def updated_dependencies(self) -> list[Dependency]:
        return list(self._updated.values())

    @property
    def updated_dependency_files(self) -> list[DependencyFile]:
        """Files whose content differs from the initial state."""
        return [
            f
            for key, f in self._files.items()
            if self._initial_content.get(key) != f.content
        ]

    def merge(self, change: DependencyChange) -> None:
        """Apply a dependency change to the working files.

        Every file in the change replaces the file with the same identity
        (new files are appended). The working set is swapped in one step,
        so a change that fails validation leaves the batch untouched.

        Raises:
            ValueError: If the change contains the same file twice.
        """
        incoming: dict[tuple[str, str], DependencyFile] = {}
        for f in change.updated_dependency_files:
            if f.identity in incoming:
                raise ValueError(f"Change contains {f.path} more than once")
            incoming[f.identity] = f

        files = dict(self._files)
        files.update(incoming)
        self._files = files
        self._merge_dependencies(change.updated_dependencies)

    def add_updated_dependency(self, dependency: Dependency) -> None:
        """Record a dependency as updated without touching any files."""
        self._merge_dependencies([dependency])

    def _merge_dependencies(self, dependencies: list[Dependency]) -> None:
        # Re-assigning an existing key keeps its original position
        for dep in dependencies:
            self._updated[dep.name] = dep
