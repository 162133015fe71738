from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from oidcgate.config import GateConfig, get_settings
from oidcgate.gate import OIDCGate


class OIDCMiddleware(BaseHTTPMiddleware):
    """
    Starlette middleware running every request through an OIDCGate.

    Pass a ready gate, or a GateConfig to build one. With neither, the gate is
    built from environment settings.
    """

    def __init__(self, app: ASGIApp, config: GateConfig | None = None, gate: OIDCGate | None = None) -> None:
        super().__init__(app)
        if gate is None:
            gate = OIDCGate(config or get_settings().gate_config)
        self.gate = gate

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        return await self.gate.dispatch(request, call_next)
