"""
Demo ASGI application protected by the OIDC gate.

Serves a public health check, a public landing page that greets signed-in
users, and a protected ``/me`` endpoint returning the caller's claims.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from oidcgate import __version__
from oidcgate.config import Settings, get_settings
from oidcgate.context import identity_from_request, require_identity
from oidcgate.errors import DiscoveryError, ErrorCode, ExchangeError, GateError
from oidcgate.gate import OIDCGate
from oidcgate.middleware import OIDCMiddleware
from oidcgate.models import VerifiedIdentity
from oidcgate.utils.logging import get_logger

logger = get_logger(__name__)


def gate_error_response(error: GateError) -> JSONResponse:
    """Maps a gate error escaping the middleware to a JSON error response."""
    status_code = status.HTTP_401_UNAUTHORIZED
    if isinstance(error, (DiscoveryError, ExchangeError)):
        status_code = status.HTTP_502_BAD_GATEWAY
    elif error.code == ErrorCode.INVALID_CONFIG:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(
        {"error_code": error.code.value, "error": error.message},
        status_code=status_code,
    )


def create_app(settings: Settings | None = None, gate: OIDCGate | None = None) -> FastAPI:
    """Builds the demo application. Settings come from the environment when not given."""
    settings = settings or get_settings()
    gate = gate or OIDCGate(settings.gate_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Starting OIDC gate demo server",
            version=__version__,
            issuer=gate.config.issuer,
            public_paths=settings.public_paths,
        )
        yield
        await gate.provider.aclose()
        logger.info("Shutting down OIDC gate demo server")

    app = FastAPI(
        title="OIDC Gate Demo",
        description="Routes protected by an OpenID Connect login gate.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gate = gate

    app.add_middleware(OIDCMiddleware, gate=gate)

    # Added last so it wraps the gate and sees the errors it raises
    @app.middleware("http")
    async def handle_gate_errors(request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except GateError as e:
            logger.warning(
                "oidc_gate_request_failed",
                path=request.url.path,
                error_code=e.code.value,
                error_message=e.message,
            )
            return gate_error_response(e)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "version": __version__}

    @app.get("/")
    async def index(request: Request) -> dict[str, Any]:
        identity = identity_from_request(request)
        if identity is None:
            return {"authenticated": False}
        return {"authenticated": True, "subject": identity.subject, "name": identity.claims.name}

    @app.get("/me")
    async def me(identity: VerifiedIdentity = Depends(require_identity)) -> dict[str, Any]:
        return identity.claims.model_dump(exclude_none=True)

    return app
