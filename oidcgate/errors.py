"""Error types raised by the authentication gate."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Startup
    INVALID_CONFIG = "INVALID_CONFIG"

    # Identity provider
    DISCOVERY_FAILED = "DISCOVERY_FAILED"
    CODE_EXCHANGE_FAILED = "CODE_EXCHANGE_FAILED"
    MISSING_ID_TOKEN = "MISSING_ID_TOKEN"

    # Token verification
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"


class GateError(Exception):
    """Base exception for authentication gate errors."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigError(GateError):
    """Gate configuration is invalid. Carries every problem found, not just the first."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__(
            ErrorCode.INVALID_CONFIG,
            "invalid oidc configuration: " + "; ".join(self.problems),
            {"problems": self.problems},
        )


class DiscoveryError(GateError):
    """Provider metadata or signing keys could not be fetched or understood."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.DISCOVERY_FAILED, message, details)


class ExchangeError(GateError):
    """The identity provider rejected the authorization code."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.CODE_EXCHANGE_FAILED, message, details)


class MissingIdentityTokenError(GateError):
    """The code exchange succeeded but no id_token was issued."""

    def __init__(self, message: str = "auth code not exchangeable for an identity token") -> None:
        super().__init__(ErrorCode.MISSING_ID_TOKEN, message)


class VerificationError(GateError):
    """Identity token failed signature, issuer, audience, algorithm or time checks."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.INVALID_TOKEN,
    ) -> None:
        super().__init__(code, message, details)


class TokenExpiredError(VerificationError):
    """Identity token was valid but has expired."""

    def __init__(self, message: str = "identity token is expired", details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details, code=ErrorCode.TOKEN_EXPIRED)
