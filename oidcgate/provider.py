"""
Identity provider access: discovery, the OAuth2 code flow client and the
identity token verifier.

All three are created lazily, at most once per ProviderClient, and cached for
the lifetime of the owning gate. Signing keys and endpoints are assumed stable;
there is no refresh.
"""

import asyncio
from typing import Any

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from pydantic import ValidationError

from oidcgate.config import GateConfig
from oidcgate.errors import DiscoveryError, ExchangeError
from oidcgate.models import ProviderMetadata
from oidcgate.utils.logging import get_logger
from oidcgate.verifier import TokenVerifier

logger = get_logger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"


class ProviderClient:
    """Lazily initialized, lock-guarded adapter over the identity provider."""

    def __init__(self, config: GateConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        # Only set for tests; httpx picks its default transport otherwise
        self._transport = transport
        self._lock = asyncio.Lock()
        self._metadata: ProviderMetadata | None = None
        self._auth_client: AsyncOAuth2Client | None = None
        self._verifier: TokenVerifier | None = None

    async def metadata(self) -> ProviderMetadata:
        await self._ensure_initialized()
        assert self._metadata is not None
        return self._metadata

    async def auth_client(self) -> AsyncOAuth2Client:
        await self._ensure_initialized()
        assert self._auth_client is not None
        return self._auth_client

    async def verifier(self) -> TokenVerifier:
        await self._ensure_initialized()
        assert self._verifier is not None
        return self._verifier

    async def _ensure_initialized(self) -> None:
        if self._verifier is not None:
            return

        async with self._lock:
            # Another request may have finished initialization while we waited
            if self._verifier is not None:
                return

            metadata, jwks = await self._discover()
            auth_client = AsyncOAuth2Client(
                client_id=self.config.client_id,
                client_secret=self.config.client_secret.get_secret_value(),
                scope=" ".join(self.config.scopes),
                redirect_uri=self.config.redirect_uri,
                timeout=self.config.http_timeout,
                transport=self._transport,
            )
            try:
                verifier = TokenVerifier(
                    jwks,
                    issuer=metadata.issuer,
                    client_id=self.config.client_id,
                    algorithms=self.config.supported_signing_algs,
                )
            except (ValueError, TypeError, AuthlibBaseError) as e:
                await auth_client.aclose()
                raise DiscoveryError(f"Provider key set is malformed: {e}", {"jwks_uri": metadata.jwks_uri}) from e

            self._metadata = metadata
            self._auth_client = auth_client
            self._verifier = verifier

    async def _discover(self) -> tuple[ProviderMetadata, dict[str, Any]]:
        """Fetch the discovery document and the signing key set."""
        metadata_url = self.config.issuer.rstrip("/") + DISCOVERY_PATH

        async with httpx.AsyncClient(timeout=self.config.http_timeout, transport=self._transport) as client:
            logger.info("oidc_discovery_fetching_metadata", url=metadata_url)
            raw_metadata = await self._get_json(client, metadata_url)

            try:
                metadata = ProviderMetadata.model_validate(raw_metadata)
            except ValidationError as e:
                logger.error("oidc_discovery_malformed_metadata", url=metadata_url, error=str(e))
                raise DiscoveryError("Provider metadata is malformed", {"url": metadata_url}) from e

            if metadata.issuer.rstrip("/") != self.config.issuer.rstrip("/"):
                logger.error(
                    "oidc_discovery_issuer_mismatch",
                    expected=self.config.issuer,
                    advertised=metadata.issuer,
                )
                raise DiscoveryError(
                    "Issuer did not match the issuer returned by the provider",
                    {"expected": self.config.issuer, "advertised": metadata.issuer},
                )

            jwks = await self._get_json(client, metadata.jwks_uri)
            if not isinstance(jwks.get("keys"), list):
                raise DiscoveryError("Provider key set has no keys", {"url": metadata.jwks_uri})

        logger.info(
            "oidc_discovery_success",
            issuer=metadata.issuer,
            key_count=len(jwks["keys"]),
        )
        return metadata, jwks

    @staticmethod
    async def _get_json(client: httpx.AsyncClient, url: str) -> dict[str, Any]:
        try:
            response = await client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("oidc_discovery_request_failed", url=url, error=str(e))
            raise DiscoveryError(f"Could not fetch {url}: {e}", {"url": url}) from e
        except ValueError as e:
            logger.error("oidc_discovery_invalid_json", url=url, error=str(e))
            raise DiscoveryError(f"Response from {url} is not valid JSON", {"url": url}) from e

        if not isinstance(data, dict):
            raise DiscoveryError(f"Response from {url} is not a JSON object", {"url": url})
        return data

    async def authorization_url(self, state: str) -> str:
        """The provider's authorization endpoint URL carrying ``state``."""
        metadata = await self.metadata()
        client = await self.auth_client()
        url, _ = client.create_authorization_url(metadata.authorization_endpoint, state=state)
        return url

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """
        Exchange an authorization code for the provider's token response.

        Raises:
            ExchangeError: the provider rejected the code or could not be reached
        """
        metadata = await self.metadata()
        client = await self.auth_client()
        try:
            token = await client.fetch_token(
                metadata.token_endpoint,
                code=code,
                grant_type="authorization_code",
            )
        except AuthlibBaseError as e:
            logger.warning("oidc_code_exchange_rejected", error=e.error, description=e.description)
            raise ExchangeError(
                f"Authorization code exchange failed: {e}",
                {"error": e.error, "error_description": e.description},
            ) from e
        except httpx.HTTPError as e:
            logger.error("oidc_code_exchange_request_failed", error=str(e))
            raise ExchangeError(f"Authorization code exchange failed: {e}") from e
        except ValueError as e:
            logger.error("oidc_code_exchange_invalid_response", error=str(e))
            raise ExchangeError("Token endpoint returned an invalid response") from e
        finally:
            # fetch_token stores the response on the shared client; no user's tokens stay there
            client.token = None

        return dict(token)

    async def aclose(self) -> None:
        if self._auth_client is not None:
            await self._auth_client.aclose()
