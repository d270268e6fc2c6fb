"""Discovery and trust validation for executables we hand control to.

Discovery only locates a candidate; it is not trusted until
:func:`validate_binary` has checked executability, owner and writability.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterable
from pathlib import Path

from credgate.core.errors import (
    BinaryNotFoundError,
    NotExecutableError,
    UnexpectedOwnerError,
    WorldWritableError,
)
from credgate.core.permissions import current_uid

logger = logging.getLogger(__name__)


def _real(path: Path | str) -> str:
    return os.path.realpath(path)


def _is_candidate(candidate: Path, self_real: str) -> bool:
    if not candidate.is_file():
        return False
    # Exclude the wrapper itself when it is installed under the same name
    if _real(candidate) == self_real:
        logger.debug(f"Skipping wrapper itself: {candidate}")
        return False
    return os.access(candidate, os.X_OK)


def _search_dirs(search_path: str) -> list[Path]:
    seen: set[str] = set()
    dirs: list[Path] = []
    for entry in search_path.split(os.pathsep):
        # Empty entries mean cwd in POSIX PATH semantics; never search cwd
        if not entry or entry in seen:
            continue
        seen.add(entry)
        dirs.append(Path(entry))
    return dirs


def discover_binary(
    name: str,
    self_path: Path | str,
    search_path: str | None = None,
    fallbacks: Iterable[Path] = (),
) -> Path:
    """Find the real ``name`` executable, excluding ``self_path``.

    Args:
        name: Executable name to look for (e.g. "claude").
        self_path: Path of the running wrapper; never returned.
        search_path: PATH-style string (defaults to ``$PATH``).
        fallbacks: Well-known install locations tried after PATH.

    Raises:
        BinaryNotFoundError: Neither PATH nor the fallbacks have a candidate.
    """
    self_real = _real(self_path)
    search_path = os.environ.get("PATH", "") if search_path is None else search_path

    logger.debug(f"Searching for {name} binary (excluding {self_real})")

    for directory in _search_dirs(search_path):
        candidate = directory / name
        if _is_candidate(candidate, self_real):
            logger.debug(f"Found {name} binary via PATH: {candidate}")
            return candidate

    for candidate in fallbacks:
        if _is_candidate(candidate, self_real):
            logger.debug(f"Found {name} binary at fallback location: {candidate}")
            return candidate

    logger.debug(f"Search paths exhausted, no {name} binary found")
    raise BinaryNotFoundError(
        f"Could not find {name} binary. Ensure it is installed and in your PATH "
        f"(this wrapper is at: {self_real})"
    )


def validate_binary(binary: Path | str) -> Path:
    """Check that ``binary`` is safe to exec.

    All three checks are mandatory: executable bit, owner is the current
    user or root, and no write bit for group or others.

    Returns:
        Canonical path of the binary. Callers must exec this path, not the
        one they passed in, so a symlink cannot be swapped in between.

    Raises:
        BinaryNotFoundError: Path does not exist.
        NotExecutableError: No executable bit or not a regular file.
        UnexpectedOwnerError: Owner is neither the current user nor root.
        WorldWritableError: Group or others can write the file.
    """
    canonical = Path(_real(binary))

    try:
        st = os.stat(canonical)
    except OSError:
        raise BinaryNotFoundError(f"Binary does not exist: {binary}")

    mode = stat.S_IMODE(st.st_mode)

    if not stat.S_ISREG(st.st_mode) or not mode & 0o111 or not os.access(canonical, os.X_OK):
        logger.error(f"Binary is not executable: {canonical}")
        raise NotExecutableError(f"Binary is not executable: {canonical}")

    uid = current_uid()
    if st.st_uid not in (uid, 0):
        logger.error(f"Binary has unexpected owner ({st.st_uid}): {canonical}")
        raise UnexpectedOwnerError(f"Binary has unexpected owner ({st.st_uid}): {canonical}")

    if mode & 0o022:
        logger.error(f"Binary is writable by group or others ({mode:o}): {canonical}")
        raise WorldWritableError(f"Binary is world-writable ({mode:o}): {canonical}")

    logger.debug(f"Binary validated: {canonical} (owner: {st.st_uid}, perms: {mode:o})")
    return canonical


def find_trusted_binary(
    name: str,
    self_path: Path | str,
    fallbacks: Iterable[Path] = (),
    search_path: str | None = None,
) -> Path:
    """Discover then validate. Returns the canonical path to exec."""
    found = discover_binary(name, self_path, search_path=search_path, fallbacks=fallbacks)
    return validate_binary(found)
