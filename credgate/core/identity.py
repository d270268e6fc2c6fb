"""Git identity and default token for the agent process."""

from __future__ import annotations

import logging
import shlex
from collections.abc import MutableMapping

from credgate.core.config import GatewayConfig
from credgate.core.router import read_token_file

logger = logging.getLogger(__name__)

TOKEN_DIR_ENV = "CLAUDE_GH_TOKEN_DIR"


def apply_git_identity(config: GatewayConfig, environ: MutableMapping[str, str]) -> None:
    """Export author/committer identity and, if the key exists, an SSH command."""
    environ["GIT_AUTHOR_NAME"] = config.git_name
    environ["GIT_AUTHOR_EMAIL"] = config.git_email
    environ["GIT_COMMITTER_NAME"] = config.git_name
    environ["GIT_COMMITTER_EMAIL"] = config.git_email
    logger.debug(f"Git identity: {config.git_name} <{config.git_email}>")

    if config.ssh_key.is_file():
        key = shlex.quote(str(config.ssh_key))
        environ["GIT_SSH_COMMAND"] = f"ssh -i {key} -o IdentitiesOnly=yes"
        logger.debug(f"Using SSH key: {config.ssh_key}")
    else:
        logger.debug(f"SSH key not found: {config.ssh_key}")


def load_default_token(config: GatewayConfig, environ: MutableMapping[str, str]) -> bool:
    """Export the default token if the file exists.

    Returns:
        True if a token was exported.

    Raises:
        InsecureTokenError: Token file exists but fails the enforce policy.
    """
    path = config.default_token_path
    if not (path.exists() or path.is_symlink()):
        logger.debug(f"Token file not found: {path}")
        return False

    token = read_token_file(path)
    if not token:
        logger.warning(f"Token file is empty: {path}")
        return False

    environ[config.token_env_var] = token
    # Lets a routed tool wrapper find the per-owner token files
    environ[TOKEN_DIR_ENV] = str(config.token_directory)
    logger.debug("Default token loaded successfully")
    return True
