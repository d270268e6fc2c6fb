"""Top-level orchestration of the credential pipeline.

Construction does nothing. ``initialize()`` establishes the repository
boundary once; ``prepare()`` then runs every control in order and returns an
immutable :class:`LaunchPlan`. Nothing is exec'ed here; the CLI performs the
final handoff with :func:`exec_plan`.

Pipeline for the agent:
    git identity -> default token -> locate binary -> secrets (discover,
    inject) -> pre-launch hook -> validate binary -> plan
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from credgate.core.binary import discover_binary, find_trusted_binary, validate_binary
from credgate.core.config import GatewayConfig
from credgate.core.errors import GatewayError, VaultUnavailableError
from credgate.core.hooks import run_pre_launch_hook
from credgate.core.identity import apply_git_identity, load_default_token
from credgate.core.injection import SecretInjector
from credgate.core.models import DiscoveryResult, LaunchPlan, ResolvedEnvironment, TokenSelection
from credgate.core.repository import find_repository_root
from credgate.core.router import select_token
from credgate.core.secrets import discover_secrets, secrets_files_exist
from credgate.vault.resolver import OnePasswordResolver, SecretResolver, detect_skip_reason

logger = logging.getLogger(__name__)


class Gateway:
    """Prepare the environment and binary for one wrapper invocation."""

    def __init__(
        self,
        config: GatewayConfig,
        resolver: SecretResolver | None = None,
        cwd: Path | None = None,
        environ: dict[str, str] | None = None,
        stdin: TextIO | None = None,
    ):
        self.config = config
        self.resolver = resolver or OnePasswordResolver(config.vault_cli)
        self.cwd = cwd or Path.cwd()
        # Working copy; the real process environment is only replaced at exec
        self.environ: dict[str, str] = dict(os.environ) if environ is None else environ
        self.stdin = stdin
        self.repo_root: Path | None = None
        self._initialized = False

    def initialize(self) -> None:
        """Establish the repository boundary for this invocation."""
        self.repo_root = find_repository_root(self.cwd)
        if self.repo_root is not None:
            logger.debug(f"Repository root: {self.repo_root}")
        self._initialized = True

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise GatewayError("Gateway.initialize() must be called first")

    # --- Secrets ---

    def vault_skip_reason(self) -> str | None:
        if not self.resolver.is_available():
            return f"{self.resolver.name} CLI not found in PATH"
        return detect_skip_reason(self.environ, self.config.skip_vault_auth, self.stdin)

    def discover(self) -> DiscoveryResult:
        """Discover secrets tiers without contacting the vault."""
        self._require_initialized()
        return discover_secrets(self.config, self.repo_root)

    def load_secrets(self) -> ResolvedEnvironment:
        """Discover and inject secrets, degrading gracefully when the vault is absent.

        Raises:
            PathSecurityError, PermissionPolicyError: Untrusted secrets file.
            ResolutionError, ContentValidationError: Resolution failed.
            VaultUnavailableError: No session and ``require_secrets`` is set.
        """
        self._require_initialized()

        skip_reason = self.vault_skip_reason()
        if skip_reason:
            logger.debug(f"Vault skipped: {skip_reason}")
            return ResolvedEnvironment()

        # Check before touching the vault so a session is never probed for nothing
        if not secrets_files_exist(self.config, self.repo_root):
            logger.debug("No secrets files found, skipping vault")
            return ResolvedEnvironment()

        discovery = self.discover()
        logger.debug(f"{self.resolver.name} CLI detected (version: {self.resolver.version()})")
        logger.debug(f"Secrets tiers: {', '.join(t.value for t in discovery.tiers) or 'none'}")
        injector = SecretInjector(self.resolver)
        try:
            return injector.inject(discovery, self.environ)
        except VaultUnavailableError:
            if self.config.require_secrets:
                raise
            logger.warning(
                f"{self.resolver.name} authentication missing or cancelled - "
                "continuing without secrets"
            )
            return ResolvedEnvironment()

    # --- Plans ---

    def prepare(self, args: Sequence[str], self_path: Path) -> LaunchPlan:
        """Run the full pipeline for the agent binary.

        Raises:
            GatewayError: Any control failed. Nothing has been exec'ed.
        """
        self._require_initialized()

        apply_git_identity(self.config, self.environ)
        load_default_token(self.config, self.environ)

        # Locate early so a missing binary fails before the vault is contacted
        candidate = discover_binary(
            self.config.agent_binary,
            self_path,
            search_path=self.environ.get("PATH", ""),
            fallbacks=self.config.binary_fallbacks(self.config.agent_binary),
        )

        resolved = self.load_secrets()

        run_pre_launch_hook(self.repo_root, self.config.pre_launch_hook, self.environ)

        # Validate last, right before handoff
        binary = validate_binary(candidate)

        return LaunchPlan(
            binary=binary,
            argv=(str(binary), *args),
            env=dict(self.environ),
            secrets_loaded=len(resolved),
            repo_root=self.repo_root,
        )

    def route(self, args: Sequence[str], self_path: Path) -> tuple[LaunchPlan, TokenSelection]:
        """Select the owner token and plan the routed tool invocation."""
        selection = select_token(args, self.config, self.environ, self.cwd)
        binary = find_trusted_binary(
            self.config.routed_binary,
            self_path,
            fallbacks=self.config.binary_fallbacks(self.config.routed_binary),
            search_path=self.environ.get("PATH", ""),
        )
        plan = LaunchPlan(binary=binary, argv=(str(binary), *args), env=dict(self.environ))
        return plan, selection


def exec_plan(plan: LaunchPlan) -> None:
    """Replace the current process with the planned binary. Does not return."""
    logger.debug(f"Executing {plan.binary}")
    os.execve(str(plan.binary), list(plan.argv), plan.env)
