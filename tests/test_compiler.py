"""Tests for group_updater.compiler."""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from group_updater.compiler import VALIDATION_EXPERIMENT, GroupUpdateCompiler
from group_updater.error_handler import ErrorHandler
from group_updater.job import Job
from group_updater.models import Dependency, GroupChange, Notice
from group_updater.snapshot import DependencySnapshot

if TYPE_CHECKING:
    from conftest import FakeRegistry

SnapshotFactory = Callable[..., DependencySnapshot]


def _versions(change: GroupChange) -> dict[str, str]:
    [manifest] = change.updated_dependency_files
    return json.loads(manifest.content)


def _moves(change: GroupChange) -> dict[str, tuple[str | None, str | None]]:
    return {d.name: (d.previous_version, d.version) for d in change.updated_dependencies}


def _compile(
    job: Job, snapshot: DependencySnapshot, group: int = 0, **kwargs
) -> tuple[GroupChange | None, ErrorHandler]:
    error_handler = ErrorHandler()
    compiler = GroupUpdateCompiler(job, snapshot, error_handler)
    return compiler.compile(snapshot.groups[group], **kwargs), error_handler


class TestCompile:
    def test_updates_every_member(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        """Each update builds on the files left by the one before it."""
        snapshot = make_snapshot(
            {"a": "1.0.0", "b": "2.0.0", "c": "3.0.0"}, groups={"g": ["a", "b", "c"]}
        )
        fake.latest.update({"a": "1.1.0", "b": "2.1.0"})

        change, errors = _compile(fake_job, snapshot)

        assert _moves(change) == {"a": ("1.0.0", "1.1.0"), "b": ("2.0.0", "2.1.0")}
        assert _versions(change) == {"a": "1.1.0", "b": "2.1.0", "c": "3.0.0"}
        assert change.dependency_group.name == "g"
        assert snapshot.handled_dependencies.names() == ["a", "b", "c"]
        assert errors.errors == []

    def test_initial_snapshot_untouched(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})
        before = snapshot.dependency_files[0].content
        fake.latest["a"] = "1.1.0"

        _compile(fake_job, snapshot)

        assert snapshot.dependency_files[0].content == before

    def test_nothing_to_update(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})

        change, _ = _compile(fake_job, snapshot)

        assert change.updated_dependencies == []
        assert change.updated_dependency_files == []

    def test_idempotent(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        """Two passes over identical starting points give identical results."""
        fake.latest.update({"a": "1.1.0", "b": "2.1.0"})
        fake.together["a"] = ["c"]
        fake.latest["c"] = "3.3.0"
        versions = {"a": "1.0.0", "b": "2.0.0", "c": "3.0.0"}

        first, _ = _compile(fake_job, make_snapshot(versions, groups={"g": ["a", "b", "c"]}))
        second, _ = _compile(fake_job, make_snapshot(versions, groups={"g": ["a", "b", "c"]}))

        assert [f.content for f in first.updated_dependency_files] == [
            f.content for f in second.updated_dependency_files
        ]
        assert first.updated_dependencies == second.updated_dependencies

    def test_notices_collected(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})
        fake.latest["a"] = "1.1.0"
        fake.notices["a"] = [Notice(type="t", package_manager_name="fake", description="n")]

        change, _ = _compile(fake_job, snapshot)

        assert [n.description for n in change.notices] == ["n"]


class TestHandledDependencies:
    def test_skips_already_handled(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"a": "1.0.0", "b": "2.0.0"}, groups={"g": ["a", "b"]})
        snapshot.add_handled_dependencies("a")
        fake.latest.update({"a": "1.1.0", "b": "2.1.0"})

        change, _ = _compile(fake_job, snapshot)

        assert fake.checked == ["b"]
        assert _moves(change) == {"b": ("2.0.0", "2.1.0")}

    def test_at_most_once_across_groups(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        """A dependency in two groups is only updated by the first."""
        snapshot = make_snapshot(
            {"a": "1.0.0", "b": "2.0.0", "c": "3.0.0"},
            groups={"first": ["a", "b"], "second": ["b", "c"]},
        )
        fake.latest.update({"a": "1.1.0", "b": "2.1.0", "c": "3.1.0"})
        compiler = GroupUpdateCompiler(fake_job, snapshot, ErrorHandler())

        first = compiler.compile(snapshot.groups[0])
        second = compiler.compile(snapshot.groups[1])

        assert first.updated_dependency_names() == ["a", "b"]
        assert second.updated_dependency_names() == ["c"]
        assert fake.checked == ["a", "b", "c"]
        assert snapshot.handled_dependencies.names() == ["a", "b", "c"]

    def test_semver_excluded_left_for_next_group(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot(
            {"a": "1.2.3"},
            groups={"patches": ["a"], "everything": ["a"]},
            rules={"patches": {"update-types": ["patch"]}},
        )
        fake.latest["a"] = "1.3.0"
        compiler = GroupUpdateCompiler(fake_job, snapshot, ErrorHandler())

        patches = compiler.compile(snapshot.groups[0])
        everything = compiler.compile(snapshot.groups[1])

        assert patches.updated_dependencies == []
        assert everything.updated_dependency_names() == ["a"]


class TestLockStep:
    def test_side_effect_update_recorded_with_original_version(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        """b moved with a, so b is recorded without being checked itself."""
        snapshot = make_snapshot({"a": "1.0.0", "b": "2.0.0"}, groups={"g": ["a", "b"]})
        fake.latest.update({"a": "1.1.0", "b": "2.5.0"})
        fake.together["a"] = ["b"]

        change, _ = _compile(fake_job, snapshot)

        assert fake.checked == ["a"]
        assert _moves(change) == {"a": ("1.0.0", "1.1.0"), "b": ("2.0.0", "2.5.0")}
        assert _versions(change) == {"a": "1.1.0", "b": "2.5.0"}
        assert "b" in snapshot.handled_dependencies

    def test_deduce_updated_dependency(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"b": "2.0.0"}, groups={"g": ["b"]})
        compiler = GroupUpdateCompiler(fake_job, snapshot, ErrorHandler())
        original = snapshot.find_dependency("b")
        moved = original.model_copy(update={"version": "2.5.0"})

        deduced = compiler.deduce_updated_dependency(moved, original)

        assert (deduced.previous_version, deduced.version) == ("2.0.0", "2.5.0")
        assert deduced.previous_requirements == original.requirements
        assert compiler.deduce_updated_dependency(original, original) is None

    def test_lead_matched_case_insensitively(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})
        fake.latest["a"] = "1.1.0"
        fake.renamed["a"] = "A"

        compiler = GroupUpdateCompiler(fake_job, snapshot, ErrorHandler())

        with patch.object(compiler, "create_change_for", wraps=compiler.create_change_for) as spy:
            change = compiler.compile(snapshot.groups[0])

        lead = spy.call_args.args[0]
        assert lead.name == "A"
        assert change.updated_dependency_names() == ["A"]
        assert _versions(change) == {"a": "1.1.0"}


class TestFailureIsolation:
    def test_decision_error_does_not_stop_group(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"x": "1.0.0", "y": "2.0.0"}, groups={"g": ["x", "y"]})
        fake.latest.update({"x": "1.1.0", "y": "2.1.0"})
        fake.failing["x"] = RuntimeError("registry exploded")

        change, errors = _compile(fake_job, snapshot)

        assert _moves(change) == {"y": ("2.0.0", "2.1.0")}
        assert _versions(change) == {"x": "1.0.0", "y": "2.1.0"}
        assert [(e.dependency_name, e.error_type) for e in errors.errors] == [
            ("x", "unknown_error")
        ]

    def test_build_failure_skips_dependency(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"x": "1.0.0", "y": "2.0.0"}, groups={"g": ["x", "y"]})
        fake.latest.update({"x": "1.1.0", "y": "2.1.0"})
        fake.unbuildable.add("x")

        change, errors = _compile(fake_job, snapshot)

        assert change.updated_dependency_names() == ["y"]
        assert [e.error_type for e in errors.errors] == ["change_build_failed"]
        assert "x" in snapshot.handled_dependencies

    def test_merge_conflict_leaves_batch_untouched(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"x": "1.0.0", "y": "2.0.0"}, groups={"g": ["x", "y"]})
        fake.latest.update({"x": "1.1.0", "y": "2.1.0"})
        fake.duplicate_files.add("x")

        change, errors = _compile(fake_job, snapshot)

        assert change.updated_dependency_names() == ["y"]
        assert _versions(change) == {"x": "1.0.0", "y": "2.1.0"}
        assert len(errors.errors) == 1

    def test_unparseable_files(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"x": "1.0.0", "y": "2.0.0"}, groups={"g": ["x", "y"]})
        fake.fail_parse = True

        change, errors = _compile(fake_job, snapshot)

        assert change.updated_dependencies == []
        assert snapshot.handled_dependencies.names() == ["x", "y"]
        assert {e.error_type for e in errors.errors} == {"dependency_file_not_parseable"}
        assert fake.checked == []

    def test_missing_member_skipped(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"x": "1.0.0"}, groups={"g": ["x"]})
        snapshot.groups[0].dependencies.insert(
            0, Dependency(name="gone", version="1.0.0", package_manager="fake")
        )
        fake.latest["x"] = "1.1.0"

        change, errors = _compile(fake_job, snapshot)

        assert change.updated_dependency_names() == ["x"]
        assert errors.errors == []
        assert "gone" not in snapshot.handled_dependencies


class TestValidationGate:
    def _snapshot(self, fake: FakeRegistry, make_snapshot: SnapshotFactory) -> DependencySnapshot:
        fake.latest.update({"a": "1.1.0", "b": "2.1.0"})
        fake.no_previous_version.add("a")
        return make_snapshot({"a": "1.0.0", "b": "2.0.0"}, groups={"g": ["a", "b"]})

    def test_suppresses_change_when_enabled(
        self,
        fake: FakeRegistry,
        make_snapshot: SnapshotFactory,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        job = Job(package_manager="fake", experiments={VALIDATION_EXPERIMENT: True})

        with caplog.at_level(logging.INFO, logger="group_updater.compiler"):
            change, _ = _compile(job, self._snapshot(fake, make_snapshot))

        assert change is None
        assert "Previous version was not provided for: 'a'" in caplog.text

    def test_returns_change_when_disabled(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        change, _ = _compile(fake_job, self._snapshot(fake, make_snapshot))

        assert _moves(change) == {"a": (None, "1.1.0"), "b": ("2.0.0", "2.1.0")}


class TestCancellation:
    def test_stops_between_dependencies(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        """Work merged before the abort is kept."""
        snapshot = make_snapshot({"a": "1.0.0", "b": "2.0.0"}, groups={"g": ["a", "b"]})
        fake.latest.update({"a": "1.1.0", "b": "2.1.0"})

        change, _ = _compile(fake_job, snapshot, should_abort=lambda: bool(fake.checked))

        assert change.updated_dependency_names() == ["a"]
        assert _versions(change) == {"a": "1.1.0", "b": "2.0.0"}
        assert "b" not in snapshot.handled_dependencies


def _git_stub(*args: str, cwd=None, check: bool = True) -> str:
    if args[0] == "status":
        return " M deps.json"
    if args[0] == "rev-parse":
        return "a" * 40
    return ""


class TestWorkspace:
    @pytest.fixture
    def clone_job(self, tmp_path: Path) -> Job:
        return Job(package_manager="fake", clone=True, repo_contents_path=str(tmp_path))

    @patch("group_updater.workspace.git")
    def test_stores_each_update_and_cleans_up(
        self,
        mock_git: MagicMock,
        fake: FakeRegistry,
        clone_job: Job,
        make_snapshot: SnapshotFactory,
    ) -> None:
        mock_git.side_effect = _git_stub
        snapshot = make_snapshot({"a": "1.0.0", "b": "2.0.0"}, groups={"g": ["a", "b"]})
        fake.latest.update({"a": "1.1.0", "b": "2.1.0"})

        _compile(clone_job, snapshot)

        commits = [c.args for c in mock_git.call_args_list if c.args[0] == "commit"]
        assert [args[-1] for args in commits] == ["Updating a", "Updating b"]
        assert mock_git.call_args_list[-2].args[:3] == ("worktree", "remove", "--force")
        assert mock_git.call_args_list[-1].args == ("worktree", "prune")
        assert all(c.args[0] not in ("reset", "clean") for c in mock_git.call_args_list)

    @patch("group_updater.workspace.git")
    def test_cleans_up_on_error(
        self,
        mock_git: MagicMock,
        fake: FakeRegistry,
        clone_job: Job,
        make_snapshot: SnapshotFactory,
    ) -> None:
        mock_git.side_effect = _git_stub
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})

        with patch.object(GroupUpdateCompiler, "_compile", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                _compile(clone_job, snapshot)

        assert mock_git.call_args_list[-1].args == ("worktree", "prune")

    @patch("group_updater.workspace.git")
    def test_store_failure_is_logged(
        self,
        mock_git: MagicMock,
        fake: FakeRegistry,
        clone_job: Job,
        make_snapshot: SnapshotFactory,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def git(*args: str, cwd=None, check: bool = True) -> str:
            if args[0] == "commit":
                raise subprocess.CalledProcessError(1, ["git", "commit"])
            return _git_stub(*args)

        mock_git.side_effect = git
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})
        fake.latest["a"] = "1.1.0"

        with caplog.at_level(logging.WARNING, logger="group_updater.compiler"):
            change, _ = _compile(clone_job, snapshot)

        assert change.updated_dependency_names() == ["a"]
        assert "Could not store workspace change for a" in caplog.text

    def test_no_workspace_without_clone(
        self, fake: FakeRegistry, fake_job: Job, make_snapshot: SnapshotFactory
    ) -> None:
        snapshot = make_snapshot({"a": "1.0.0"}, groups={"g": ["a"]})
        fake.latest["a"] = "1.1.0"

        with patch("group_updater.workspace.git") as mock_git:
            _compile(fake_job, snapshot)

        mock_git.assert_not_called()
