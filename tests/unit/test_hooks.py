"""Unit tests for the default gate hooks."""

import pytest
from starlette.requests import Request

from oidcgate.hooks import bearer_unauthorized, encode_path_state, exclude_paths, redirect_to_state


def make_request(path: str = "/") -> Request:
    return Request({"type": "http", "method": "GET", "path": path, "headers": [], "query_string": b""})


def test_encode_path_state_returns_request_path() -> None:
    assert encode_path_state(make_request("/dashboard/reports")) == "/dashboard/reports"


def test_redirect_to_state_follows_local_path() -> None:
    response = redirect_to_state("/dashboard", make_request())
    assert response.status_code == 302
    assert response.headers["location"] == "/dashboard"


@pytest.mark.parametrize(
    "state",
    ["", "https://evil.example.com/", "//evil.example.com", "/\\evil.example.com", "dashboard"],
)
def test_redirect_to_state_falls_back_to_root(state: str) -> None:
    response = redirect_to_state(state, make_request())
    assert response.status_code == 302
    assert response.headers["location"] == "/"


def test_bearer_unauthorized() -> None:
    response = bearer_unauthorized(make_request())
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_exclude_paths() -> None:
    protector = exclude_paths("/health", "/public")
    assert protector(make_request("/health")) is False
    assert protector(make_request("/public")) is False
    assert protector(make_request("/public/nested")) is True
    assert protector(make_request("/")) is True
