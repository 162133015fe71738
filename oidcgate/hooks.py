"""
Pluggable hooks used by the gate, with their default implementations.

Every hook may be a plain function or a coroutine function.
"""

from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response


# Serializes "where the user was going" before the login redirect
StateEncoder = Callable[[Request], str | Awaitable[str]]

# Restores application state after login and produces the response
LoginSuccessHandler = Callable[[str, Request], Response | Awaitable[Response]]

# Builds the response for a credential that failed verification
UnauthorizedResponder = Callable[[Request], Response | Awaitable[Response]]

# Returns False for routes that do not require login
RouteProtector = Callable[[Request], bool | Awaitable[bool]]


def encode_path_state(request: Request) -> str:
    """Default state encoder: the path the user asked for."""
    return request.url.path


def redirect_to_state(state: str, request: Request) -> Response:
    """
    Default login success handler: redirect back to the path stored in the state.

    The state has travelled through the browser, so only local paths are
    followed. Anything else, including an empty state, lands on "/".
    """
    target = state
    if not target.startswith("/") or target.startswith("//") or "\\" in target:
        target = "/"
    return RedirectResponse(target, status_code=302)


def bearer_unauthorized(request: Request) -> Response:
    """Default unauthorized responder: 401 with a Bearer challenge."""
    return Response(status_code=401, headers={"WWW-Authenticate": "Bearer"})


def exclude_paths(*paths: str) -> RouteProtector:
    """Builds a route protector that leaves the given exact paths unprotected."""
    excluded = frozenset(paths)

    def protector(request: Request) -> bool:
        return request.url.path not in excluded

    return protector
