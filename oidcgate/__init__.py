"""OpenID Connect login gate for Starlette and FastAPI applications."""

from oidcgate.config import GateConfig, Settings, get_settings
from oidcgate.context import current_identity, identity_from_request, require_identity
from oidcgate.errors import (
    ConfigError,
    DiscoveryError,
    ExchangeError,
    GateError,
    MissingIdentityTokenError,
    TokenExpiredError,
    VerificationError,
)
from oidcgate.gate import OIDCGate
from oidcgate.hooks import exclude_paths
from oidcgate.middleware import OIDCMiddleware
from oidcgate.models import IdentityClaims, RequestKind, VerifiedIdentity

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DiscoveryError",
    "ExchangeError",
    "GateConfig",
    "GateError",
    "IdentityClaims",
    "MissingIdentityTokenError",
    "OIDCGate",
    "OIDCMiddleware",
    "RequestKind",
    "Settings",
    "TokenExpiredError",
    "VerificationError",
    "VerifiedIdentity",
    "current_identity",
    "exclude_paths",
    "get_settings",
    "identity_from_request",
    "require_identity",
]
