"""Vault module: boundary to the external secret resolver."""

from credgate.vault.resolver import OnePasswordResolver, SecretResolver

__all__ = ["OnePasswordResolver", "SecretResolver"]
