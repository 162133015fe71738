from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RequestKind(str, Enum):
    """How the gate treats a request. Recomputed for every request."""

    CALLBACK = "callback"
    PROTECTED = "protected"
    UNPROTECTED = "unprotected"


class ProviderMetadata(BaseModel):
    """Subset of the OpenID Connect discovery document the gate relies on."""

    model_config = ConfigDict(extra="allow", frozen=True)

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: str | None = None
    id_token_signing_alg_values_supported: list[str] = Field(default_factory=list)


class IdentityClaims(BaseModel):
    """
    Claims carried by a verified identity token.

    Standard profile and contact claims are typed; anything else the provider
    includes is kept as extra fields.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    sub: str = Field(..., description="Subject identifier for the user")
    iss: str
    aud: str | list[str]
    exp: int | None = None
    iat: int | None = None
    name: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None

    @property
    def expires_at(self) -> datetime | None:
        if self.exp is None:
            return None
        return datetime.fromtimestamp(self.exp, tz=UTC)


class VerifiedIdentity(BaseModel):
    """
    Result of a successful identity token verification, bound to the request.
    """

    model_config = ConfigDict(frozen=True)

    claims: IdentityClaims
    raw_token: str = Field(..., repr=False)

    @property
    def subject(self) -> str:
        return self.claims.sub

    @classmethod
    def from_claims(cls, claims: dict[str, Any], raw_token: str) -> "VerifiedIdentity":
        return cls(claims=IdentityClaims.model_validate(dict(claims)), raw_token=raw_token)
