"""A scratch git worktree that records each dependency update as a commit.

When a job clones the repository, each merged dependency change is written
into a detached worktree of the checkout and committed there. The user's own
working tree is never written to, reset or cleaned. The worktree is removed
when the group pass ends, however it ends.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel

from .errors import WorkspaceError
from .job import Job
from .models import DependencyFile
from .shell import git

logger = logging.getLogger("group_updater.workspace")


class ChangeAttempt(BaseModel):
    """A stored change: the commit it was recorded as and its diff."""

    id: str
    memo: str | None = None
    diff: str = ""


class GitWorkspace:
    """Tracks changes in a throwaway worktree of a git checkout.

    Args:
        repo_contents_path: Root of the user's checkout.
        directory: Directory within the checkout the job works in.
    """

    def __init__(self, repo_contents_path: str | Path, directory: str = "/") -> None:
        self.repo_path = Path(repo_contents_path)
        self.directory = directory
        self.initial_head: str | None = None
        self.path: Path | None = None
        self._scratch: Path | None = None
        self.change_attempts: list[ChangeAttempt] = []

    def setup(self) -> None:
        """Check out the current HEAD into a detached scratch worktree.

        Raises:
            WorkspaceError: If the checkout is not a usable git repository.
        """
        try:
            self.initial_head = git("rev-parse", "HEAD", cwd=self.repo_path)
            self._scratch = Path(tempfile.mkdtemp(prefix="group-updater-"))
            worktree = self._scratch / "checkout"
            git(
                "worktree", "add", "--detach", str(worktree), self.initial_head,
                cwd=self.repo_path,
            )
        except (subprocess.CalledProcessError, OSError) as exc:
            reason = (getattr(exc, "stderr", None) or "").strip() or str(exc)
            raise WorkspaceError(
                f"Could not create a worktree of {self.repo_path}: {reason}"
            ) from exc
        self.path = worktree
        logger.debug(
            "Workspace for %s set up at %s (%s)", self.repo_path, self.path, self.initial_head
        )

    def changed(self) -> bool:
        return bool(git("status", "--porcelain", "--untracked-files=all", cwd=self.path))

    def write_files(self, files: list[DependencyFile]) -> None:
        if self.path is None:
            raise RuntimeError("Workspace used before setup")
        for f in files:
            target = self.path / f.path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(f.content)

    def store_change(
        self, files: list[DependencyFile], memo: str | None = None
    ) -> ChangeAttempt | None:
        """Write files into the worktree and commit them, if anything changed."""
        self.write_files(files)
        if not self.changed():
            return None
        git("add", "--all", cwd=self.path)
        diff = git("diff", "--cached", cwd=self.path)
        git("commit", "--no-verify", "-m", memo or "group-updater change", cwd=self.path)
        attempt = ChangeAttempt(id=git("rev-parse", "HEAD", cwd=self.path), memo=memo, diff=diff)
        self.change_attempts.append(attempt)
        logger.debug("Stored change %s: %s", attempt.id, memo)
        return attempt

    def cleanup(self) -> None:
        """Remove the scratch worktree and forget attempts."""
        if self.path is not None:
            git("worktree", "remove", "--force", str(self.path), cwd=self.repo_path, check=False)
            git("worktree", "prune", cwd=self.repo_path, check=False)
        if self._scratch is not None:
            shutil.rmtree(self._scratch, ignore_errors=True)
        self.path = None
        self._scratch = None
        self.change_attempts.clear()
        logger.debug("Workspace for %s cleaned up", self.repo_path)


@contextmanager
def workspace_for(job: Job) -> Iterator[GitWorkspace | None]:
    """Set up a workspace for the job, and always clean it up.

    Yields None when the job does not work in a cloned checkout.
    """
    if not job.clone_enabled():
        yield None
        return

    workspace = GitWorkspace(job.repo_contents_path or ".", job.directory)
    try:
        workspace.setup()
        yield workspace
    finally:
        workspace.cleanup()
