from contextvars import ContextVar

from fastapi import HTTPException, Request
from starlette import status

from oidcgate.models import VerifiedIdentity


class _IdentityKey:
    """Scope key type. Only this module holds an instance, so nothing else can collide with it."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<oidcgate identity>"


_IDENTITY_KEY = _IdentityKey()

# Mirrors the request-bound identity for code that has no access to the request
# object (background helpers, logging processors, tool handlers).
identity_var: ContextVar[VerifiedIdentity | None] = ContextVar("oidc_identity", default=None)


def bind_identity(request: Request, identity: VerifiedIdentity) -> None:
    """Attach a verified identity to the request for downstream handlers."""
    request.scope[_IDENTITY_KEY] = identity
    identity_var.set(identity)


def identity_from_request(request: Request) -> VerifiedIdentity | None:
    """Returns the identity bound to this request, or None if nothing was verified."""
    identity = request.scope.get(_IDENTITY_KEY)
    if isinstance(identity, VerifiedIdentity):
        return identity
    return None


def current_identity() -> VerifiedIdentity | None:
    return identity_var.get()


async def require_identity(request: Request) -> VerifiedIdentity:
    """FastAPI dependency returning the bound identity, or 401 when there is none."""
    identity = identity_from_request(request)
    if identity is None:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            "Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
