"""Project pre-launch hook.

``<repo-root>/.claude/pre-launch.sh`` runs before the agent starts, with the
prepared environment and the repository root as working directory. The hook
is executable code from the repository, so it must resolve inside the
repository, belong to the current user and be owner-only (auto-fixed to 700).
Any failure aborts the launch.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping
from pathlib import Path

from credgate.core.errors import HookError, HookFailedError
from credgate.core.paths import canonicalize, require_under
from credgate.core.permissions import HOOK_MODE, ensure_secure_permissions

logger = logging.getLogger(__name__)


def validate_hook(hook: Path, repo_root: Path) -> Path:
    """Return the canonical hook path once it is safe to run.

    Raises:
        PathSecurityError: Hook is a symlink or escapes the repository.
        PermissionPolicyError: Hook is owned by someone else or chmod failed.
    """
    canonical = canonicalize(hook)
    require_under(canonical, repo_root, what="Pre-launch hook path")

    status = ensure_secure_permissions(canonical, HOOK_MODE)

    if not status.mode & 0o100:
        logger.warning(f"Pre-launch hook is not executable, fixing: {canonical}")
        try:
            os.chmod(canonical, HOOK_MODE)
        except OSError as e:
            raise HookError(f"Failed to make pre-launch hook executable: {canonical}: {e.strerror}")

    return canonical


def run_pre_launch_hook(
    repo_root: Path | None,
    hook_relpath: str,
    env: Mapping[str, str],
) -> Path | None:
    """Run the project hook if present.

    Returns:
        The hook path that ran, or None if there was nothing to run.

    Raises:
        PathSecurityError, PermissionPolicyError: Hook is untrusted.
        HookFailedError: Hook exited non-zero.
    """
    if repo_root is None:
        logger.debug("No git root provided, skipping pre-launch hook")
        return None

    hook = repo_root / hook_relpath
    if not (hook.exists() or hook.is_symlink()):
        logger.debug(f"No pre-launch hook found at {hook}")
        return None

    validated = validate_hook(hook, repo_root)

    logger.debug(f"Running project pre-launch hook: {validated}")
    try:
        result = subprocess.run([str(validated)], cwd=repo_root, env=dict(env))
    except OSError as e:
        raise HookError(f"Could not execute pre-launch hook {validated}: {e.strerror}")

    if result.returncode != 0:
        logger.error(f"Pre-launch hook failed: {validated}")
        raise HookFailedError(validated, result.returncode)

    return validated
