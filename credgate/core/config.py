"""Gateway configuration.

Defaults live on :class:`GatewayConfig`. Overrides are read from
``<config_dir>/config.yaml`` and then from a small set of environment
variables. The config file names binary paths, so it gets the same
ownership and writability scrutiny as a binary before it is trusted.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator

from credgate.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


def default_config_dir() -> Path:
    return Path.home() / ".config" / "claude-code"


def _default_fallbacks() -> list[Path]:
    home = Path.home()
    return [
        home / ".local/bin",
        home / ".claude/local",
        home / ".npm-global/bin",
        Path("/opt/homebrew/bin"),
        Path("/usr/local/bin"),
    ]


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


class GatewayConfig(BaseModel):
    """Paths and switches used by every stage of the pipeline."""

    config_dir: Path = Field(default_factory=default_config_dir)

    # Secrets tiers
    global_secrets: Path | None = None  # defaults to <config_dir>/secrets.op
    project_secrets: str = ".claude/secrets.op"
    local_secrets: str = ".claude/secrets.local.op"

    # Tokens
    token_filename: str = "gh-token"
    token_dir: Path | None = None  # defaults to config_dir
    token_env_var: str = "GH_TOKEN"

    # Binaries
    agent_binary: str = "claude"
    routed_binary: str = "gh"
    binary_fallback_dirs: list[Path] = Field(default_factory=_default_fallbacks)

    # Git identity
    git_name: str = "Claude Code Bot"
    git_email: str = "claude-code@users.noreply.github.com"
    ssh_key: Path = Field(default_factory=lambda: Path.home() / ".ssh/id_ed25519_claude_code")

    pre_launch_hook: str = ".claude/pre-launch.sh"

    # Vault
    vault_cli: str = "op"
    skip_vault_auth: bool = False
    require_secrets: bool = False

    debug: bool = False

    @field_validator("project_secrets", "local_secrets", "pre_launch_hook")
    @classmethod
    def _validate_repo_relative(cls, v: str) -> str:
        """Repository-relative paths must stay relative and free of '..'.

        Absolute paths would make pathlib drop the repository root entirely.
        """
        p = Path(v)
        if p.is_absolute():
            raise ValueError(f"must be a repository-relative path, got absolute: {v!r}")
        if ".." in p.parts:
            raise ValueError(f"must not contain directory traversal components (..): {v!r}")
        return v

    @field_validator("config_dir", "global_secrets", "token_dir", "ssh_key")
    @classmethod
    def _expand_home(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @field_validator("binary_fallback_dirs")
    @classmethod
    def _expand_fallbacks(cls, v: list[Path]) -> list[Path]:
        return [p.expanduser() for p in v]

    @property
    def global_secrets_path(self) -> Path:
        return self.global_secrets or self.config_dir / "secrets.op"

    @property
    def token_directory(self) -> Path:
        return self.token_dir or self.config_dir

    @property
    def default_token_path(self) -> Path:
        return self.token_directory / self.token_filename

    def binary_fallbacks(self, name: str) -> list[Path]:
        """Well-known install locations for ``name``, in search order."""
        return [d / name for d in self.binary_fallback_dirs]


def _check_config_file(path: Path) -> None:
    """Reject a config file another principal could have written."""
    if path.is_symlink():
        raise ConfigError(f"Refusing to load config from symlink: {path}")

    st = path.stat()
    if st.st_uid != os.geteuid():
        raise ConfigError(
            f"{path} is not owned by current user (owner: {st.st_uid}, current: {os.geteuid()})"
        )
    if stat.S_IMODE(st.st_mode) & 0o022:
        raise ConfigError(
            f"{path} is writable by group or others ({stat.S_IMODE(st.st_mode):o})"
        )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(
    config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> GatewayConfig:
    """Build the effective configuration.

    Precedence: environment variables > config.yaml > defaults.

    Raises:
        ConfigError: If config.yaml is untrusted or fails validation.
    """
    environ = os.environ if environ is None else environ
    config_dir = config_dir or default_config_dir()

    data: dict[str, Any] = {}
    config_path = config_dir / CONFIG_FILENAME
    if config_path.exists() or config_path.is_symlink():
        _check_config_file(config_path)
        data = _read_yaml(config_path)
        logger.debug(f"Loaded configuration from {config_path}")

    data.setdefault("config_dir", config_dir)

    if _truthy(environ.get("CLAUDE_DEBUG")):
        data["debug"] = True
    if _truthy(environ.get("CLAUDE_SKIP_OP_AUTH")):
        data["skip_vault_auth"] = True
    if environ.get("CLAUDE_GH_TOKEN_DIR"):
        data["token_dir"] = Path(environ["CLAUDE_GH_TOKEN_DIR"])

    try:
        return GatewayConfig(**data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}")


CONFIG_TEMPLATE = """\
# credgate configuration
# Every key is optional; the values below are the defaults.

# Agent binary name and fallback install directories
agent_binary: claude
# binary_fallback_dirs:
#   - ~/.local/bin
#   - /usr/local/bin

# Git identity used by the agent
git_name: "Claude Code Bot"
git_email: "claude-code@users.noreply.github.com"
# ssh_key: ~/.ssh/id_ed25519_claude_code

# Repository-relative secrets files
project_secrets: .claude/secrets.op
local_secrets: .claude/secrets.local.op
pre_launch_hook: .claude/pre-launch.sh

# Abort instead of continuing without secrets when the vault has no session
require_secrets: false
"""
