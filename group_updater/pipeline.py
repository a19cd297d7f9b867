"""Update run: load → parse → resolve groups → compile each group.

This module drives one run of group updates:
1. Load the manifest files for the job's directory
2. Parse them into the run's dependency snapshot
3. Resolve each configured group to the parsed dependencies it names
4. Compile each group in order against the shared snapshot
5. Optionally write the resulting changes back to disk

Groups are compiled one after another. The snapshot's handled-dependency
registry carries over from group to group, so a dependency updated by one
group is not updated again by a later one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from . import ecosystems
from .compiler import GroupUpdateCompiler
from .error_handler import ErrorHandler
from .job import Job
from .models import DependencyFile, DependencyGroup, GroupChange
from .snapshot import DependencySnapshot

logger = logging.getLogger("group_updater.pipeline")

MANIFEST_NAMES = ("pyproject.toml",)


def load_dependency_files(
    root: Path, directory: str = "/", names: tuple[str, ...] = MANIFEST_NAMES
) -> list[DependencyFile]:
    """Read the manifest files of one directory of a checkout.

    Args:
        root: Repository root on disk.
        directory: Directory within the repository, "/" for the root.
        names: File names to pick up.

    Returns:
        The files that exist, in the order of names.
    """
    base = root / directory.strip("/")
    files: list[DependencyFile] = []
    for name in names:
        path = base / name
        if path.is_file():
            files.append(DependencyFile(name=name, directory=directory, content=path.read_text()))
    return files


def resolve_groups(job: Job, snapshot: DependencySnapshot) -> list[DependencyGroup]:
    """Turn configured groups into groups of parsed dependencies.

    Names that match nothing in the snapshot are dropped.
    """
    by_name = {d.name: d for d in snapshot.dependencies}
    groups: list[DependencyGroup] = []
    for config in job.groups:
        members = [by_name[n] for n in config.dependencies if n in by_name]
        groups.append(DependencyGroup(name=config.name, rules=config.rules, dependencies=members))
    return groups


def parse_snapshot(job: Job, files: list[DependencyFile]) -> DependencySnapshot:
    """Parse the run's starting files and attach the job's groups."""
    parser = ecosystems.for_package_manager(job.package_manager).parser
    dependencies = parser(dependency_files=files, job=job).parse()
    snapshot = DependencySnapshot(dependency_files=files, dependencies=dependencies)
    snapshot.groups = resolve_groups(job, snapshot)
    return snapshot


def pr_exists_for_dependency_group(job: Job, group: DependencyGroup) -> bool:
    return any(
        pr.get("dependency-group-name") == group.name
        for pr in job.existing_group_pull_requests
    )


def warn_group_is_empty(group: DependencyGroup) -> None:
    logger.warning(
        "Skipping update group for '%s' as it does not match any allowed dependencies.",
        group.name,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("The configuration for this group is:\n\n%s", group.to_config())


def run_group_updates(
    job: Job,
    snapshot: DependencySnapshot,
    error_handler: ErrorHandler | None = None,
    *,
    only: str | None = None,
    should_abort: Callable[[], bool] | None = None,
) -> list[GroupChange]:
    """Compile every group of the snapshot, in order.

    Args:
        job: The run's job.
        snapshot: Parsed starting point, shared by every group.
        error_handler: Sink for dependency errors; a fresh one if omitted.
        only: Compile just the group with this name.
        should_abort: Checked between dependencies (and groups).

    Returns:
        The changes that updated at least one dependency.
    """
    error_handler = error_handler or ErrorHandler()
    compiler = GroupUpdateCompiler(job, snapshot, error_handler)
    changes: list[GroupChange] = []

    for group in snapshot.groups:
        if only is not None and group.name != only:
            continue
        if should_abort is not None and should_abort():
            logger.warning("Stopping before group %s", group.name)
            break
        if not group.dependencies:
            warn_group_is_empty(group)
            continue
        if pr_exists_for_dependency_group(job, group):
            logger.info("Skipping group %s as a pull request already exists for it", group.name)
            # The open PR owns these dependencies
            snapshot.add_handled_dependencies(*(d.name for d in group.dependencies))
            continue

        change = compiler.compile(group, should_abort=should_abort)
        if change is None or not change.updated_dependencies:
            logger.info("No updates for group %s", group.name)
            continue
        changes.append(change)

    return changes


def write_changes(root: Path, change: GroupChange) -> list[Path]:
    """Write a change's files into a checkout and return the paths written."""
    written: list[Path] = []
    for f in change.updated_dependency_files:
        path = root / f.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f.content)
        written.append(path)
    return written
