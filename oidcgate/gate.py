"""
The per-request authentication state machine.

Every request is classified as one of:

- UNPROTECTED: the route protector said so. The request always proceeds; a
  presented credential is verified opportunistically and bound if valid.
- CALLBACK: the path equals the configured callback path. The authorization
  code is exchanged, the identity token verified and bound, and the login
  success hook produces the response.
- PROTECTED: everything else. No credential starts the login redirect, an
  expired one restarts it, any other verification failure gets the
  unauthorized response.
"""

import functools
import inspect
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlparse

from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from oidcgate.config import GateConfig
from oidcgate.context import bind_identity
from oidcgate.errors import (
    DiscoveryError,
    ExchangeError,
    MissingIdentityTokenError,
    TokenExpiredError,
    VerificationError,
)
from oidcgate.extract import extract_credential
from oidcgate.models import RequestKind, VerifiedIdentity
from oidcgate.provider import ProviderClient
from oidcgate.utils.logging import get_logger
from oidcgate.verifier import token_fingerprint

logger = get_logger(__name__)

Endpoint = Callable[[Request], Awaitable[Response]]


async def _call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class OIDCGate:
    """
    OpenID Connect login gate for a Starlette application.

    Construction validates the config and raises ConfigError listing every
    problem. The provider is contacted lazily on the first request that needs it.
    """

    def __init__(self, config: GateConfig, provider: ProviderClient | None = None) -> None:
        self.config = config.validated()
        self.provider = provider or ProviderClient(self.config)
        self._secure_cookie = urlparse(self.config.redirect_uri).scheme == "https"

        logger.info(
            "oidc_gate_initialized",
            issuer=self.config.issuer,
            client_id=self.config.client_id,
            callback_path=self.config.callback_path,
            scopes=self.config.scopes,
            auth_cookie=self.config.auth_cookie_name,
        )

    async def classify(self, request: Request) -> RequestKind:
        if self.config.route_protector is not None:
            protected = await _call_hook(self.config.route_protector, request)
            if not protected:
                return RequestKind.UNPROTECTED

        if request.url.path == self.config.callback_path:
            return RequestKind.CALLBACK
        return RequestKind.PROTECTED

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """
        Runs the gate for one request.

        Discovery and code exchange failures on callback and protected routes
        propagate to the caller.
        """
        kind = await self.classify(request)

        if kind is RequestKind.UNPROTECTED:
            await self._bind_if_valid(request)
            return await call_next(request)

        if kind is RequestKind.CALLBACK:
            return await self.handle_callback(request)

        return await self.handle_protected(request, call_next)

    async def verify(self, raw_token: str) -> VerifiedIdentity:
        verifier = await self.provider.verifier()
        return verifier.verify(raw_token)

    async def handle_callback(self, request: Request) -> Response:
        state = request.query_params.get("state", "")

        error = request.query_params.get("error")
        if error:
            description = request.query_params.get("error_description")
            logger.warning("oidc_callback_provider_error", error=error, description=description)
            raise ExchangeError(
                f"Identity provider returned an error: {error}",
                {"error": error, "error_description": description},
            )

        code = request.query_params.get("code")
        if not code:
            raise ExchangeError("Callback request has no authorization code")

        token = await self.provider.exchange_code(code)

        raw_token = token.get("id_token")
        if not isinstance(raw_token, str) or not raw_token:
            logger.error("oidc_callback_missing_id_token", token_keys=sorted(token))
            raise MissingIdentityTokenError()

        identity = await self.verify(raw_token)
        bind_identity(request, identity)
        logger.info("oidc_login_success", subject=identity.subject, token_hash=token_fingerprint(raw_token))

        response = await _call_hook(self.config.login_success_handler, state, request)
        if self.config.auth_cookie_name:
            response.set_cookie(
                self.config.auth_cookie_name,
                raw_token,
                path="/",
                secure=self._secure_cookie,
                httponly=True,
                samesite="lax",
            )
        return response

    async def handle_protected(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        raw_token = extract_credential(request, self.config.auth_cookie_name)
        if not raw_token:
            return await self.login_redirect(request)

        try:
            identity = await self.verify(raw_token)
        except TokenExpiredError:
            return await self.login_redirect(request)
        except VerificationError as e:
            logger.info("oidc_unauthorized", path=request.url.path, reason=e.message)
            return await _call_hook(self.config.unauthorized, request)

        bind_identity(request, identity)
        return await call_next(request)

    async def login_redirect(self, request: Request) -> Response:
        """Send the browser to the provider's authorization endpoint."""
        state = await _call_hook(self.config.login_state_encoder, request)
        if not isinstance(state, str):
            # authlib would silently replace a missing state with a random one
            raise TypeError(f"login state encoder must return a str, got {type(state).__name__}")
        url = await self.provider.authorization_url(state)
        logger.info("oidc_login_redirect", path=request.url.path)
        return RedirectResponse(url, status_code=302)

    async def _bind_if_valid(self, request: Request) -> None:
        raw_token = extract_credential(request, self.config.auth_cookie_name)
        if not raw_token:
            return
        try:
            identity = await self.verify(raw_token)
        except VerificationError as e:
            logger.debug("oidc_unprotected_token_ignored", path=request.url.path, reason=e.message)
            return
        except DiscoveryError as e:
            # An unprotected route must still be served while the provider is down
            logger.warning("oidc_unprotected_discovery_failed", path=request.url.path, error=e.message)
            return
        bind_identity(request, identity)

    async def callback_endpoint(self, request: Request) -> Response:
        """The callback protocol as a plain endpoint, for apps that route it explicitly."""
        return await self.handle_callback(request)

    def requires_login(self, endpoint: Endpoint) -> Endpoint:
        """Decorator applying the protected-route protocol to a single endpoint."""

        @functools.wraps(endpoint)
        async def wrapper(request: Request) -> Response:
            return await self.handle_protected(request, endpoint)

        return wrapper
