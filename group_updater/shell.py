"""Shell and git utilities.

Provides a small wrapper around subprocess for git operations, plus the
output formatting helpers used by the command-line interface.
"""

from __future__ import annotations

import subprocess
from pathlib import Path


def git(*args: str, cwd: str | Path | None = None, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Directory to run in; defaults to the current directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail.

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate groups in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")
