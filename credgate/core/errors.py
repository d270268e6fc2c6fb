"""Exception hierarchy for the credential gateway.

Every security control raises a subclass of ``GatewayError``. The CLI is the
only place these are caught and turned into an exit status. Messages never
contain secret values or vault reference strings.
"""

from __future__ import annotations

from pathlib import Path


class GatewayError(Exception):
    """Base class for all gateway failures."""

    pass


class ConfigError(GatewayError):
    """Configuration file is missing required structure or is untrusted."""

    pass


# --- Ownership / permission policy ---


class PermissionPolicyError(GatewayError):
    """A file failed the owner-only permission policy."""

    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        super().__init__(message)


class InsecurePermissionsError(PermissionPolicyError):
    """Group or world bits grant access to the file."""

    def __init__(self, path: Path | str, mode: int):
        self.mode = mode
        super().__init__(path, f"{path} has insecure permissions ({mode:o}), refusing to load")


class WrongOwnerError(PermissionPolicyError):
    """File is owned by a different user than the current process."""

    def __init__(self, path: Path | str, owner: int, current: int):
        self.owner = owner
        self.current = current
        super().__init__(
            path,
            f"{path} is not owned by current user (owner: {owner}, current: {current})",
        )


class RemediationFailedError(PermissionPolicyError):
    """Auto-fixing the file mode failed."""

    pass


class UnknownModeError(PermissionPolicyError):
    """File mode could not be determined (missing or unreadable)."""

    pass


# --- Path security ---


class PathSecurityError(GatewayError):
    """Path failed canonicalization or containment checks."""

    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        super().__init__(message)


class SymlinkError(PathSecurityError):
    """Leaf component of the path is a symlink."""

    def __init__(self, path: Path | str):
        super().__init__(path, f"Refusing to load from symlink: {path}")


class PathNotFoundError(PathSecurityError):
    """Path does not exist."""

    def __init__(self, path: Path | str):
        super().__init__(path, f"Path does not exist: {path}")


class CanonicalizationError(PathSecurityError):
    """Path exists but cannot be resolved to a canonical form."""

    def __init__(self, path: Path | str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(path, f"Could not canonicalize path {path}{detail}")


class BoundaryEscapeError(PathSecurityError):
    """Canonical path lies outside its trusted root."""

    def __init__(self, path: Path | str, root: Path | str, what: str = "Path"):
        self.root = Path(root)
        super().__init__(path, f"{what} escapes repository {root}: {path}")


# --- Secret resolution ---


class ResolutionError(GatewayError):
    """External secret resolution failed."""

    pass


class VaultUnavailableError(ResolutionError):
    """Vault CLI is missing or has no authenticated session."""

    pass


class UnreadableSecretsError(ResolutionError):
    """Secrets file could not be read at injection time."""

    pass


class ResolutionFailedError(ResolutionError):
    """Resolver exited with a non-zero status."""

    pass


class ContentValidationError(GatewayError):
    """Resolver output failed post-resolution validation."""

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        super().__init__(message)


# --- Binary trust ---


class BinaryTrustError(GatewayError):
    """Agent binary could not be located or is not trustworthy."""

    pass


class BinaryNotFoundError(BinaryTrustError):
    """No candidate binary found in the search path or fallback locations."""

    pass


class NotExecutableError(BinaryTrustError):
    """Binary has no executable bit."""

    pass


class UnexpectedOwnerError(BinaryTrustError):
    """Binary is owned by neither the current user nor root."""

    pass


class WorldWritableError(BinaryTrustError):
    """Binary is writable by group or others."""

    pass


# --- Token routing ---


class RouterError(GatewayError):
    """Owner-specific credential selection failed."""

    pass


class InvalidOwnerNameError(RouterError):
    """Inferred owner does not match the allowed charset."""

    pass


class InsecureTokenError(RouterError):
    """Token file failed the permission policy."""

    pass


# --- Pre-launch hook ---


class HookError(GatewayError):
    """Pre-launch hook could not be run."""

    pass


class HookFailedError(HookError):
    """Pre-launch hook exited with a non-zero status."""

    def __init__(self, hook: Path, returncode: int):
        self.hook = hook
        self.returncode = returncode
        super().__init__(
            f"Pre-launch hook failed ({returncode}): {hook}. "
            "Fix the hook script or remove it to start the agent."
        )
