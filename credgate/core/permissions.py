"""Ownership and permission policy for credential files.

Two policies share the same owner check:

- ``enforce``: pure predicate. Any group/world bit is fatal.
- ``remediate``: group/world bits are removed by chmod'ing to a target mode
  and a warning is logged. Ownership is never remediated: a file owned by
  another principal was written by someone else and is always fatal.

Mode and owner come from ``os.stat`` (numeric fields), never from parsing
textual permission strings.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from credgate.core.errors import (
    InsecurePermissionsError,
    RemediationFailedError,
    UnknownModeError,
    WrongOwnerError,
)
from credgate.core.models import FileStatus, PermissionPolicy

logger = logging.getLogger(__name__)

# Secrets are read-only for the owner after remediation
SECRETS_MODE = 0o400
# Hooks must stay executable for the owner
HOOK_MODE = 0o700


def current_uid() -> int:
    """Effective UID of this process."""
    return os.geteuid()


def file_status(path: Path | str) -> FileStatus:
    """Read mode bits and owner for ``path``.

    Raises:
        UnknownModeError: If the file is missing or cannot be stat'ed.
    """
    try:
        st = os.stat(path)
    except OSError as e:
        raise UnknownModeError(path, f"Could not check permissions for {path}: {e.strerror}")
    return FileStatus(path=Path(path), mode=stat.S_IMODE(st.st_mode), uid=st.st_uid)


def _check_owner(status: FileStatus) -> None:
    uid = current_uid()
    if status.uid != uid:
        raise WrongOwnerError(status.path, status.uid, uid)


def check_file_permissions(path: Path | str) -> FileStatus:
    """Enforce owner-only access. No side effects.

    Raises:
        UnknownModeError: Mode cannot be determined.
        InsecurePermissionsError: Group or world bits are set.
        WrongOwnerError: File is not owned by the current user.
    """
    status = file_status(path)

    if status.group_bits:
        logger.error(f"{path} has group permissions ({status.mode:o}), refusing to load")
        raise InsecurePermissionsError(path, status.mode)
    if status.world_bits:
        logger.error(f"{path} has world permissions ({status.mode:o}), refusing to load")
        raise InsecurePermissionsError(path, status.mode)

    _check_owner(status)

    logger.debug(f"File permissions OK for {path}: {status.mode:o}")
    return status


def ensure_secure_permissions(path: Path | str, target_mode: int) -> FileStatus:
    """Check ownership, then strip group/world access by chmod'ing to ``target_mode``.

    Returns:
        FileStatus after any remediation.

    Raises:
        UnknownModeError: Mode cannot be determined.
        WrongOwnerError: File is not owned by the current user (never auto-fixed).
        RemediationFailedError: chmod failed.
    """
    status = file_status(path)

    # SECURITY: Owner check comes first so a foreign file is never chmod'ed
    _check_owner(status)

    if status.is_private:
        logger.debug(f"File permissions OK for {path}: {status.mode:o}")
        return status

    if status.group_bits:
        logger.warning(f"{path} has group permissions ({status.mode:o})")
    if status.world_bits:
        logger.warning(f"{path} has world permissions ({status.mode:o})")

    logger.warning(f"Auto-fixing permissions: chmod {target_mode:o} {path}")
    try:
        os.chmod(path, target_mode)
    except OSError as e:
        raise RemediationFailedError(path, f"Failed to fix permissions on {path}: {e.strerror}")

    logger.debug(f"Fixed permissions on {path} to {target_mode:o}")
    return file_status(path)


def apply_policy(
    path: Path | str,
    policy: PermissionPolicy,
    target_mode: int = SECRETS_MODE,
) -> FileStatus:
    """Validate ``path`` under the given policy."""
    if policy == PermissionPolicy.ENFORCE:
        return check_file_permissions(path)
    return ensure_secure_permissions(path, target_mode)
