"""Secrets file discovery and precedence.

Tiers, in ascending precedence:

- global:  ``<config_dir>/secrets.op``. Not repository-relative, so never
  boundary-checked.
- project: ``<repo-root>/.claude/secrets.op``
- local:   ``<repo-root>/.claude/secrets.local.op`` (meant to be gitignored)

Project and local tiers are only considered inside a repository, and a
candidate whose canonical path leaves the repository root aborts discovery.
Absence of a tier file is never an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from credgate.core.config import GatewayConfig
from credgate.core.errors import (
    BoundaryEscapeError,
    PathSecurityError,
    UnreadableSecretsError,
)
from credgate.core.models import CredentialFile, DiscoveryResult, PermissionPolicy, Tier
from credgate.core.paths import canonicalize, require_under
from credgate.core.permissions import SECRETS_MODE, apply_policy

logger = logging.getLogger(__name__)


def _present(path: Path) -> bool:
    # A dangling symlink still counts as present so it gets rejected loudly
    return path.is_file() or path.is_symlink()


def candidate_paths(config: GatewayConfig, repo_root: Path | None) -> list[tuple[Tier, Path]]:
    """Tier file locations in precedence order.

    Outside a repository only the global tier is returned; repository-relative
    paths are not even constructed.
    """
    candidates = [(Tier.GLOBAL, config.global_secrets_path)]
    if repo_root is not None:
        candidates.append((Tier.PROJECT, repo_root / config.project_secrets))
        candidates.append((Tier.LOCAL, repo_root / config.local_secrets))
    return candidates


def secrets_files_exist(config: GatewayConfig, repo_root: Path | None) -> bool:
    """Cheap existence probe used before contacting the vault."""
    for tier, path in candidate_paths(config, repo_root):
        if _present(path):
            logger.debug(f"Found {tier.value} secrets file: {path}")
            return True
    return False


def validate_secrets_file(
    path: Path,
    tier: Tier,
    boundary: Path | None = None,
) -> CredentialFile:
    """Canonicalize, contain, and permission-check one secrets file.

    Containment is checked before any chmod so a file outside the boundary
    is never touched.

    Raises:
        PathSecurityError: Symlink, missing, or not canonicalizable.
        BoundaryEscapeError: Canonical path is outside ``boundary``.
        UnreadableSecretsError: File cannot be read.
        PermissionPolicyError: Ownership wrong or remediation failed.
    """
    canonical = canonicalize(path)

    if boundary is not None:
        require_under(canonical, boundary, what=f"{tier.value.capitalize()} secrets path")

    if not os.access(canonical, os.R_OK):
        logger.error(f"Cannot read {canonical}")
        raise UnreadableSecretsError(f"Cannot read {canonical}")

    status = apply_policy(canonical, PermissionPolicy.REMEDIATE, SECRETS_MODE)

    return CredentialFile(
        raw_path=path,
        canonical_path=canonical,
        owner_uid=status.uid,
        mode=status.mode,
        tier=tier,
    )


def discover_secrets(config: GatewayConfig, repo_root: Path | None) -> DiscoveryResult:
    """Find and validate every secrets tier.

    A symlinked or unreadable tier file is rejected with an error and the
    remaining tiers still load. A boundary escape or a permission failure
    aborts discovery entirely.

    Returns:
        DiscoveryResult with validated files in tier order and the canonical
        repository root (or None outside a repository).
    """
    files: list[CredentialFile] = []

    canonical_root: Path | None = None
    if repo_root is not None:
        # Canonicalize git root to handle a symlinked working copy
        canonical_root = Path(os.path.realpath(repo_root))
    else:
        logger.debug("Not in a git repository, skipping project/local secrets")

    for tier, path in candidate_paths(config, canonical_root):
        if not _present(path):
            logger.debug(f"No {tier.value} secrets file at {path}")
            continue

        boundary = None if tier == Tier.GLOBAL else canonical_root
        try:
            credential = validate_secrets_file(path, tier, boundary)
        except BoundaryEscapeError:
            logger.error(
                f"{tier.value.capitalize()} secrets path escapes git repository, refusing to load"
            )
            raise
        except (PathSecurityError, UnreadableSecretsError) as e:
            logger.error(f"Skipping {tier.value} secrets: {e}")
            continue

        files.append(credential)
        logger.debug(f"Added {tier.value} secrets (validated)")

    if files:
        logger.debug(f"Secrets enabled with {len(files)} file(s)")
    else:
        logger.debug("No secrets files found, secrets disabled")

    return DiscoveryResult(files=tuple(files), repo_root=canonical_root)
