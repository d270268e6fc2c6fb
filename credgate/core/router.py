"""Per-invocation token routing for multi-owner setups.

Given the arguments of a hosting CLI call, infer which account owner the call
targets and load that owner's token instead of the default one.

Owner inference order:
    1. ``--repo OWNER/REPO`` / ``-R OWNER/REPO`` / ``--repo=OWNER/REPO``
    2. API path argument ``repos/OWNER/...`` or ``orgs/OWNER``
    3. ``origin`` remote URL of the current directory (SSH or HTTPS form)

A missing owner-specific token silently keeps the default token. An
owner-specific token with insecure permissions fails closed: falling back
would hide the misconfiguration.
"""

from __future__ import annotations

import logging
import re
from collections.abc import MutableMapping, Sequence
from pathlib import Path
from urllib.parse import urlparse

from credgate.core.config import GatewayConfig
from credgate.core.errors import (
    InsecureTokenError,
    InvalidOwnerNameError,
    PathSecurityError,
    PermissionPolicyError,
)
from credgate.core.models import OWNER_NAME_PATTERN, OwnerRoute, TokenSelection
from credgate.core.paths import canonicalize
from credgate.core.permissions import check_file_permissions
from credgate.core.repository import get_remote_url

logger = logging.getLogger(__name__)

_REPO_FLAGS = ("--repo", "-R")
_API_REPOS = re.compile(r"^/?repos/([^/]+)/")
_API_ORGS = re.compile(r"^/?orgs/([^/]+)")
_SCP_LIKE = re.compile(r"^(?:[^@/]+@)?[^:/]+:(.+)$")


def _owner_from_slug(slug: str) -> str | None:
    owner, sep, _ = slug.partition("/")
    if sep and owner:
        return owner
    return None


def owner_from_flags(args: Sequence[str]) -> str | None:
    prev = ""
    for arg in args:
        if prev in _REPO_FLAGS:
            owner = _owner_from_slug(arg)
            if owner:
                return owner
        elif arg.startswith("--repo="):
            owner = _owner_from_slug(arg[len("--repo="):])
            if owner:
                return owner
        prev = arg
    return None


def owner_from_api_path(args: Sequence[str]) -> str | None:
    for arg in args:
        for pattern in (_API_REPOS, _API_ORGS):
            match = pattern.match(arg)
            if match:
                return match.group(1)
    return None


def owner_from_remote_url(url: str) -> str | None:
    """Extract the owner segment from an SSH or HTTPS remote URL.

    Examples:
        git@github.com:acme/widgets.git      -> acme
        https://github.com/acme/widgets.git  -> acme
        ssh://git@github.com/acme/widgets    -> acme
    """
    url = url.strip()
    if "://" in url:
        path = urlparse(url).path
    else:
        match = _SCP_LIKE.match(url)
        if not match:
            return None
        path = match.group(1)

    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[0]


def infer_owner(args: Sequence[str], cwd: Path | None = None) -> str | None:
    """Return the target owner for this invocation, or None if undetermined.

    None is not an error: callers keep the default credential.
    """
    owner = owner_from_flags(args)
    if owner:
        logger.debug(f"Owner from --repo flag: {owner}")
        return owner

    owner = owner_from_api_path(args)
    if owner:
        logger.debug(f"Owner from API path: {owner}")
        return owner

    if cwd is not None:
        remote_url = get_remote_url(cwd)
        if remote_url:
            owner = owner_from_remote_url(remote_url)
            if owner:
                logger.debug(f"Owner from git remote: {owner}")
                return owner

    return None


def read_token_file(path: Path) -> str:
    """Load a bearer token after canonicalization and the enforce policy.

    Raises:
        InsecureTokenError: Symlinked, unresolvable, insecure or foreign file.
    """
    try:
        canonical = canonicalize(path)
        check_file_permissions(canonical)
    except (PathSecurityError, PermissionPolicyError) as e:
        raise InsecureTokenError(f"{path} failed security checks, refusing to load: {e}") from e

    try:
        return canonical.read_text(encoding="utf-8").rstrip("\r\n")
    except OSError as e:
        raise InsecureTokenError(f"Cannot read token file {path}: {e.strerror}") from e


def route_for(owner: str, config: GatewayConfig) -> OwnerRoute:
    """Build the owner-specific route. Validates the owner before any path is made.

    Raises:
        InvalidOwnerNameError: Owner does not match the allowed charset.
    """
    if not OWNER_NAME_PATTERN.match(owner):
        logger.error(f"Invalid owner name: {owner!r}")
        raise InvalidOwnerNameError(f"Invalid owner name: {owner!r}")

    token_file = config.token_directory / f"{config.token_filename}.{owner}"
    return OwnerRoute(owner=owner, token_file=token_file)


def select_token(
    args: Sequence[str],
    config: GatewayConfig,
    environ: MutableMapping[str, str],
    cwd: Path | None = None,
) -> TokenSelection:
    """Export the owner-specific token for this invocation if one exists.

    Raises:
        InvalidOwnerNameError: Inferred owner fails the charset check.
        InsecureTokenError: Owner-specific token exists but is not secure.
    """
    if not config.token_directory.is_dir():
        logger.debug(f"Token directory not found: {config.token_directory}")
        return TokenSelection()

    owner = infer_owner(args, cwd)
    if owner is None:
        logger.debug("No owner detected, using default token")
        return TokenSelection()

    route = route_for(owner, config)

    if not (route.token_file.exists() or route.token_file.is_symlink()):
        logger.debug(f"No token for owner {owner}, using default token")
        return TokenSelection(owner=owner, route=route)

    token = read_token_file(route.token_file)
    environ[config.token_env_var] = token
    logger.debug(f"Using token for owner {owner}")
    return TokenSelection(owner=owner, route=route, applied=True)
