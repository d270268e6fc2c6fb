"""Core security controls for the credential gateway."""

from credgate.core.config import GatewayConfig, load_config
from credgate.core.gateway import Gateway
from credgate.core.models import (
    CredentialFile,
    DiscoveryResult,
    LaunchPlan,
    OwnerRoute,
    PermissionPolicy,
    ResolvedEnvironment,
    Tier,
)

__all__ = [
    "CredentialFile",
    "DiscoveryResult",
    "Gateway",
    "GatewayConfig",
    "LaunchPlan",
    "OwnerRoute",
    "PermissionPolicy",
    "ResolvedEnvironment",
    "Tier",
    "load_config",
]
