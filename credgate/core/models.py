"""Data models for the credential gateway.

Uses Pydantic frozen models so that results produced by one pipeline stage
cannot be mutated by a later one.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Owner names become part of a filesystem path, so the charset is restricted
# and must start with an alphanumeric (rejects "..", ".", "-evil").
OWNER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class Tier(str, Enum):
    """Origin of a credential file, in ascending secret precedence."""

    GLOBAL = "global"
    PROJECT = "project"
    LOCAL = "local"
    ROUTER = "router"


class PermissionPolicy(str, Enum):
    """How a permission violation is handled."""

    ENFORCE = "enforce"
    REMEDIATE = "remediate"


class FileStatus(BaseModel):
    """Mode bits and owner of a file as read from stat."""

    model_config = ConfigDict(frozen=True)

    path: Path
    mode: int
    uid: int

    @property
    def group_bits(self) -> int:
        return (self.mode >> 3) & 0o7

    @property
    def world_bits(self) -> int:
        return self.mode & 0o7

    @property
    def is_private(self) -> bool:
        return self.mode & 0o077 == 0


class CredentialFile(BaseModel):
    """A validated file holding a token or secret references."""

    model_config = ConfigDict(frozen=True)

    raw_path: Path
    canonical_path: Path
    owner_uid: int
    mode: int
    tier: Tier


class DiscoveryResult(BaseModel):
    """Ordered, validated secret files produced by discovery.

    ``files`` is in fixed tier order (global, project, local) so that a later
    merge gives the last tier precedence.
    """

    model_config = ConfigDict(frozen=True)

    files: tuple[CredentialFile, ...] = ()
    repo_root: Path | None = None

    @property
    def enabled(self) -> bool:
        return len(self.files) > 0

    @property
    def tiers(self) -> list[Tier]:
        return [f.tier for f in self.files]


class OwnerRoute(BaseModel):
    """Mapping from an inferred account owner to its token file."""

    model_config = ConfigDict(frozen=True)

    owner: str
    token_file: Path

    @field_validator("owner")
    @classmethod
    def _validate_owner(cls, v: str) -> str:
        if not OWNER_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid owner name: {v!r}")
        return v


class TokenSelection(BaseModel):
    """Outcome of token routing for one invocation."""

    model_config = ConfigDict(frozen=True)

    owner: str | None = None
    route: OwnerRoute | None = None
    applied: bool = False

    @property
    def source(self) -> str:
        if self.applied and self.route is not None:
            return f"owner:{self.route.owner}"
        return "default"


class ResolvedEnvironment(BaseModel):
    """Variables resolved from the vault, merged in tier order."""

    values: dict[str, str] = Field(default_factory=dict)
    sources: dict[str, Tier] = Field(default_factory=dict)

    def merge(self, assignments: dict[str, str], tier: Tier) -> None:
        """Merge assignments; later tiers overwrite earlier keys."""
        for key, value in assignments.items():
            # Re-insert so iteration order reflects the winning tier
            self.values.pop(key, None)
            self.values[key] = value
            self.sources[key] = tier

    def __len__(self) -> int:
        return len(self.values)


class LaunchPlan(BaseModel):
    """Everything needed to hand control to the agent binary."""

    model_config = ConfigDict(frozen=True)

    binary: Path
    argv: tuple[str, ...]
    env: dict[str, str]
    secrets_loaded: int = 0
    repo_root: Path | None = None
