"""Version-control queries used to establish the repository boundary.

Git is consulted for exactly three things: whether the working directory is
inside a repository, the repository root, and the ``origin`` remote URL.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 10


def _git(args: list[str], cwd: Path) -> str | None:
    """Run a read-only git query. Returns stripped stdout or None on failure."""
    git = shutil.which("git")
    if git is None:
        logger.debug("git not found in PATH")
        return None

    try:
        result = subprocess.run(
            [git, *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"git {' '.join(args)} failed: {e}")
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def is_inside_repository(cwd: Path) -> bool:
    return _git(["rev-parse", "--git-dir"], cwd) is not None


def find_repository_root(cwd: Path) -> Path | None:
    """Return the canonical repository root for ``cwd``, or None.

    The root is resolved through symlinks so that a symlinked working copy
    compares correctly against canonicalized candidate files.
    """
    if not is_inside_repository(cwd):
        logger.debug("Not in a git repository")
        return None

    toplevel = _git(["rev-parse", "--show-toplevel"], cwd)
    if toplevel is None:
        return None

    return Path(os.path.realpath(toplevel))


def get_remote_url(cwd: Path, remote: str = "origin") -> str | None:
    return _git(["remote", "get-url", remote], cwd)
