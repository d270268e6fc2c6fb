"""Path canonicalization and containment checks.

``canonicalize`` rejects a symlinked leaf before touching the filesystem in
any other way, so a later check cannot observe an attacker-swapped target.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from credgate.core.errors import (
    BoundaryEscapeError,
    CanonicalizationError,
    PathNotFoundError,
    SymlinkError,
)

logger = logging.getLogger(__name__)


def canonicalize(path: Path | str) -> Path:
    """Return the absolute canonical form of ``path``.

    NOTE: Rejects symlinks at the leaf. Intermediate symlinked directories
    are resolved; callers that need containment must follow up with
    :func:`is_under` against a canonical root.

    Raises:
        SymlinkError: Leaf component is a symlink.
        PathNotFoundError: Path does not exist.
        CanonicalizationError: Path cannot be resolved.
    """
    path = Path(path)

    # SECURITY: Symlink check FIRST, before any other filesystem access
    if path.is_symlink():
        logger.error(f"Refusing to load from symlink: {path}")
        raise SymlinkError(path)

    if not os.path.lexists(path):
        raise PathNotFoundError(path)

    try:
        canonical = path.resolve(strict=True)
    except (OSError, RuntimeError) as e:
        logger.error(f"Could not canonicalize path: {path}")
        raise CanonicalizationError(path, str(e)) from e

    return canonical


def is_under(child: Path | str, parent: Path | str) -> bool:
    """Return True if ``child`` equals ``parent`` or is a descendant of it.

    IMPORTANT: Both paths must already be canonical. This function does not
    resolve anything.

    The trailing-separator requirement prevents ``/home/user-evil`` from
    matching parent ``/home/user``.
    """
    child_s = os.fspath(child)
    parent_s = os.fspath(parent)

    if child_s == parent_s:
        return True

    prefix = parent_s if parent_s.endswith(os.sep) else parent_s + os.sep
    return child_s.startswith(prefix)


def require_under(child: Path, root: Path, what: str = "Path") -> Path:
    """Raise BoundaryEscapeError unless ``child`` is contained in ``root``."""
    if not is_under(child, root):
        logger.error(f"{what} escapes repository {root}: {child}")
        raise BoundaryEscapeError(child, root, what)
    return child
