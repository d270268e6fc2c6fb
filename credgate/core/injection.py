"""Secret injection: resolve validated reference files into the environment.

Per file, in tier order:

1. Re-read the file at time of use (O_NOFOLLOW), failing if unreadable.
2. Strip comment lines into a scratch copy.
3. Run the resolver against the scratch copy into a second scratch file.
4. Normalize, then validate, the resolver output.
5. Merge into a ResolvedEnvironment (last tier wins).

The environment is only updated once every tier has resolved, so a failure
never leaves a partial secret set behind. All intermediate material lives in
one owner-only scratch directory that is removed on every exit path.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Generator, MutableMapping
from contextlib import contextmanager
from pathlib import Path

from credgate.core import envfile
from credgate.core.errors import (
    ContentValidationError,
    ResolutionFailedError,
    UnreadableSecretsError,
    VaultUnavailableError,
)
from credgate.core.models import CredentialFile, DiscoveryResult, ResolvedEnvironment
from credgate.vault.resolver import SecretResolver

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "credgate-"
SCRATCH_DIR_MODE = 0o700
SCRATCH_FILE_MODE = 0o600


@contextmanager
def scratch_area(prefix: str = SCRATCH_PREFIX) -> Generator[Path, None, None]:
    """Owner-only temporary directory, removed on exit.

    mkdtemp picks a collision-resistant name and creates the directory 0700;
    the explicit chmod guards against platforms that honour umask there.
    Permissions are fixed before the directory is handed out, so nothing
    secret is ever written into a readable location.
    """
    path = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        os.chmod(path, SCRATCH_DIR_MODE)
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if os.path.lexists(path):
            logger.warning(f"Failed to remove scratch directory {path}")


def _write_private(path: Path, text: str) -> None:
    """Create ``path`` exclusively with mode 0600."""
    fd = os.open(
        path,
        os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_NOFOLLOW", 0),
        SCRATCH_FILE_MODE,
    )
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)


def _read_no_follow(path: Path) -> str:
    """Read a file without following a symlink swapped in since validation."""
    try:
        fd = os.open(path, os.O_RDONLY | getattr(os, "O_NOFOLLOW", 0))
    except OSError as e:
        logger.error(f"Cannot read secrets file: {path}")
        raise UnreadableSecretsError(f"Cannot read secrets file: {path} ({e.strerror})")
    with os.fdopen(fd, encoding="utf-8") as f:
        try:
            return f.read()
        except UnicodeDecodeError:
            logger.error(f"Secrets file is not valid UTF-8: {path}")
            raise UnreadableSecretsError(f"Secrets file is not valid UTF-8: {path}")


class SecretInjector:
    """Resolve a DiscoveryResult through a SecretResolver."""

    def __init__(self, resolver: SecretResolver):
        self.resolver = resolver

    def inject(
        self,
        discovery: DiscoveryResult,
        environ: MutableMapping[str, str] | None = None,
    ) -> ResolvedEnvironment:
        """Resolve every validated file and export the result into ``environ``.

        Args:
            discovery: Output of secrets discovery.
            environ: Mapping to export into (defaults to ``os.environ``).

        Returns:
            The merged ResolvedEnvironment. Empty when discovery found nothing.

        Raises:
            VaultUnavailableError: No authenticated vault session.
            UnreadableSecretsError: A file became unreadable since discovery.
            ResolutionFailedError: The resolver exited non-zero.
            ContentValidationError: Resolver output failed validation.
        """
        environ = os.environ if environ is None else environ
        resolved = ResolvedEnvironment()

        if not discovery.enabled:
            logger.debug("Secrets not enabled, skipping secrets injection")
            return resolved

        if not self.resolver.has_session():
            raise VaultUnavailableError(f"No active {self.resolver.name} session")

        logger.debug(f"Loading secrets from {len(discovery.files)} file(s)")

        with scratch_area() as scratch:
            for index, credential in enumerate(discovery.files):
                assignments = self._resolve_one(credential, scratch, index)
                resolved.merge(assignments, credential.tier)
                logger.debug(
                    f"Loaded {len(assignments)} secret(s) from {credential.canonical_path}"
                )

        for key, value in resolved.values.items():
            environ[key] = value

        return resolved

    def _resolve_one(self, credential: CredentialFile, scratch: Path, index: int) -> dict[str, str]:
        source = credential.canonical_path
        logger.debug(f"Injecting secrets from: {source}")

        content = _read_no_follow(source)

        # Index prefix keeps names unique when two tiers share a basename
        stem = f"{index}-{credential.tier.value}-{source.name}"
        stripped_file = scratch / f"stripped-{stem}"
        resolved_file = scratch / f"resolved-{stem}"

        _write_private(stripped_file, envfile.strip_comments(content))

        result = self.resolver.resolve(stripped_file, resolved_file)
        if not result.ok:
            logger.error(f"Failed to inject secrets from {source} - check vault references")
            raise ResolutionFailedError(
                f"Failed to inject secrets from {source} (exit {result.returncode})"
            )

        try:
            output = resolved_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ResolutionFailedError(
                f"Resolver produced no readable output for {source}: {e.strerror}"
            )
        except UnicodeDecodeError:
            logger.error(f"Resolved secrets file is not valid UTF-8: {source}")
            raise ContentValidationError(f"Resolved secrets from {source} are not valid UTF-8")

        normalized = envfile.normalize(output)
        try:
            envfile.validate(normalized)
            return envfile.parse(normalized)
        except ContentValidationError as e:
            logger.error(f"Resolved secrets file contains invalid content: {source}")
            raise ContentValidationError(
                f"Resolved secrets from {source} are invalid: {e}", e.line_number
            ) from e
