"""External secret resolver (1Password CLI).

The resolver is an opaque trust domain: it maps a file of ``KEY=reference``
lines to a file of ``KEY=value`` lines, or fails. Everything it produces is
re-validated by the caller.

SECURITY: The resolver's stderr is never captured or logged, because its
diagnostics echo reference identifiers that hint at secret names.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_CI_MARKERS = ("GITHUB_ACTIONS", "GITLAB_CI")


class ResolveResult(BaseModel):
    """Outcome of one resolver call. Carries no output content."""

    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SecretResolver:
    """Interface the injection executor consumes.

    Subclasses implement the three calls below. ``has_session`` must be
    idempotent and free of side effects so it can be probed repeatedly.
    """

    name = "resolver"

    def is_available(self) -> bool:
        raise NotImplementedError

    def version(self) -> str:
        return "unknown"

    def has_session(self) -> bool:
        raise NotImplementedError

    def resolve(self, in_file: Path, out_file: Path) -> ResolveResult:
        raise NotImplementedError


class OnePasswordResolver(SecretResolver):
    """Resolve ``op://`` references with ``op inject``."""

    name = "1Password"

    def __init__(self, cli: str = "op", env: Mapping[str, str] | None = None):
        self.cli = cli
        self._env = env

    def _binary(self) -> str | None:
        return shutil.which(self.cli)

    def is_available(self) -> bool:
        return self._binary() is not None

    def version(self) -> str:
        binary = self._binary()
        if binary is None:
            return "unknown"
        try:
            result = subprocess.run(
                [binary, "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (subprocess.TimeoutExpired, OSError):
            return "unknown"
        return result.stdout.strip() if result.returncode == 0 else "unknown"

    def has_session(self) -> bool:
        binary = self._binary()
        if binary is None:
            return False
        try:
            result = subprocess.run(
                [binary, "account", "get"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=self._env_dict(),
            )
        except OSError as e:
            logger.debug(f"{self.cli} account get failed: {e}")
            return False
        return result.returncode == 0

    def resolve(self, in_file: Path, out_file: Path) -> ResolveResult:
        binary = self._binary()
        if binary is None:
            return ResolveResult(returncode=127)

        # Suppress stderr to avoid leaking reference names
        result = subprocess.run(
            [binary, "inject", f"--in-file={in_file}", f"--out-file={out_file}"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=self._env_dict(),
        )
        return ResolveResult(returncode=result.returncode)

    def _env_dict(self) -> dict[str, str] | None:
        return dict(self._env) if self._env is not None else None


def detect_skip_reason(
    environ: Mapping[str, str],
    skip_requested: bool = False,
    stdin: TextIO | None = None,
) -> str | None:
    """Return why the vault should be skipped in this context, or None.

    Non-interactive and CI contexts cannot answer an authentication prompt,
    so the vault is not contacted there at all.
    """
    if skip_requested or environ.get("CLAUDE_SKIP_OP_AUTH", "").lower() == "true":
        return "CLAUDE_SKIP_OP_AUTH=true"

    stdin = sys.stdin if stdin is None else stdin
    try:
        interactive = stdin is not None and os.isatty(stdin.fileno())
    except (AttributeError, OSError, ValueError):
        interactive = False
    if not interactive:
        return "stdin is not a TTY (non-interactive context)"

    if environ.get("CI", "").lower() == "true" or any(environ.get(m) for m in _CI_MARKERS):
        return "running in CI environment"

    return None
