import asyncio
import time
from collections import Counter
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from authlib.jose.rfc7517.jwk import JsonWebKey
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt as jose_jwt
from pydantic import SecretStr

from oidcgate.config import GateConfig
from oidcgate.gate import OIDCGate
from oidcgate.provider import ProviderClient

ISSUER = "https://idp.example.com"
CLIENT_ID = "test-client"
CLIENT_SECRET = "test-secret"
REDIRECT_URI = "https://app.example.com/auth/callback"
CALLBACK_PATH = "/auth/callback"
AUTHORIZATION_ENDPOINT = f"{ISSUER}/authorize"


def _private_pem(private_key: rsa.RSAPrivateKey) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def jwks_keys():
    """
    Generates RSA keys for signing test identity tokens.
    Returns:
        dict with the trusted private PEM and public JWK, and an untrusted
        private PEM whose public half the provider never publishes.
    """
    main_private_pem = _private_pem(rsa.generate_private_key(public_exponent=65537, key_size=2048))
    main_public_jwk_dict = JsonWebKey.import_key(main_private_pem).as_dict(is_private=False)

    untrusted_private_pem = _private_pem(rsa.generate_private_key(public_exponent=65537, key_size=2048))

    return {
        "private_pem": main_private_pem,
        "public_jwk": main_public_jwk_dict,
        "kid": main_public_jwk_dict["kid"],
        "untrusted_private_pem": untrusted_private_pem,
    }


@pytest.fixture
def make_token(jwks_keys):
    """Factory for signed identity tokens. Keyword arguments override claims."""

    def _make(
        private_pem: str | None = None,
        algorithm: str = "RS256",
        kid: str | None = None,
        **claims_override: Any,
    ) -> str:
        now = int(time.time())
        claims = {
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "sub": "user-1",
            "iat": now,
            "exp": now + 300,
            "name": "Test User",
            "email": "user@example.com",
            "email_verified": True,
        }
        claims.update(claims_override)
        headers = {"kid": kid or jwks_keys["kid"]}
        return jose_jwt.encode(
            claims, private_pem or jwks_keys["private_pem"], algorithm=algorithm, headers=headers
        )

    return _make


class FakeIdentityProvider:
    """In-memory identity provider served through an httpx MockTransport."""

    def __init__(self, public_jwk: dict[str, Any]) -> None:
        self.metadata: dict[str, Any] = {
            "issuer": ISSUER,
            "authorization_endpoint": AUTHORIZATION_ENDPOINT,
            "token_endpoint": f"{ISSUER}/token",
            "jwks_uri": f"{ISSUER}/jwks",
            "id_token_signing_alg_values_supported": ["RS256"],
        }
        self.jwks: dict[str, Any] = {"keys": [public_jwk]}
        self.metadata_status = 200
        self.token_status = 200
        self.token_response: dict[str, Any] = {"access_token": "access", "token_type": "Bearer"}
        self.token_requests: list[dict[str, list[str]]] = []
        self.calls: Counter[str] = Counter()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls[path] += 1
        # Yield so concurrent callers actually interleave
        await asyncio.sleep(0)

        if path == "/.well-known/openid-configuration":
            return httpx.Response(self.metadata_status, json=self.metadata)
        if path == "/jwks":
            return httpx.Response(200, json=self.jwks)
        if path == "/token":
            self.token_requests.append(parse_qs(request.content.decode()))
            return httpx.Response(self.token_status, json=self.token_response)
        return httpx.Response(404)

    @property
    def discovery_calls(self) -> int:
        return self.calls["/.well-known/openid-configuration"]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def idp(jwks_keys) -> FakeIdentityProvider:
    return FakeIdentityProvider(jwks_keys["public_jwk"])


@pytest.fixture
def gate_config() -> GateConfig:
    return GateConfig(
        issuer=ISSUER,
        client_id=CLIENT_ID,
        client_secret=SecretStr(CLIENT_SECRET),
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def build_gate(idp):
    """Builds an OIDCGate talking to the fake provider. Keyword arguments override config fields."""

    def _build(config: GateConfig, **overrides: Any) -> OIDCGate:
        if overrides:
            config = config.model_copy(update=overrides)
        provider = ProviderClient(config.validated(), transport=idp.transport)
        return OIDCGate(config, provider=provider)

    return _build
