from starlette.requests import Request

BEARER_PREFIX = "bearer "


def extract_credential(request: Request, cookie_name: str | None = None) -> str | None:
    """
    Pull a bearer credential out of the request.

    A well-formed ``Authorization: Bearer <token>`` header wins. The cookie is
    consulted only when no Authorization header was sent at all, so a present but
    malformed header yields None even if the cookie exists. A cookie that is
    present but empty is returned as "" and callers treat it as absent.
    """
    auth = request.headers.get("authorization", "")
    if len(auth) > len(BEARER_PREFIX) and auth[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
        return auth[len(BEARER_PREFIX) :]

    if auth == "" and cookie_name:
        return request.cookies.get(cookie_name)
    return None
