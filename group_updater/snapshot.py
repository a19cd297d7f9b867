"""Run-scoped state shared by every group compiled in one run."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

from .models import Dependency, DependencyFile, DependencyGroup


class HandledDependencies:
    """Names of dependencies already dealt with during this run.

    A dependency is handled once a group has taken responsibility for it,
    whether or not an update was produced. Later groups and standalone
    updates skip handled names. The set only ever grows.

    Reads and writes are serialised so groups compiled from separate
    threads can share one registry.
    """

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._names: dict[str, None] = dict.fromkeys(names)

    def add(self, *names: str) -> None:
        with self._lock:
            for name in names:
                self._names.setdefault(name, None)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._names

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._names))

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def names(self) -> list[str]:
        """Handled names in the order they were first recorded."""
        with self._lock:
            return list(self._names)


class DependencySnapshot:
    """The parsed starting point of a run, passed explicitly to each group.

    Attributes:
        dependency_files: Files as checked out at the start of the run.
        dependencies: Dependencies parsed from those files.
        groups: Groups to compile, in order.
        handled_dependencies: Registry shared by every group in the run.
    """

    def __init__(
        self,
        dependency_files: list[DependencyFile],
        dependencies: list[Dependency],
        groups: list[DependencyGroup] | None = None,
        handled_dependencies: HandledDependencies | None = None,
    ) -> None:
        self.dependency_files = list(dependency_files)
        self.dependencies = list(dependencies)
        self.groups = list(groups or [])
        self.handled_dependencies = (
            handled_dependencies if handled_dependencies is not None else HandledDependencies()
        )

    def add_handled_dependencies(self, *names: str) -> None:
        self.handled_dependencies.add(*names)

    def find_dependency(self, name: str) -> Dependency | None:
        return next((d for d in self.dependencies if d.name == name), None)

    def ungrouped_dependencies(self) -> list[Dependency]:
        """Dependencies no group has handled, left for standalone updates."""
        return [d for d in self.dependencies if d.name not in self.handled_dependencies]
