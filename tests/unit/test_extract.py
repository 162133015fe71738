"""Unit tests for bearer credential extraction."""

import pytest
from starlette.requests import Request

from oidcgate.extract import extract_credential


def make_request(authorization: str | None = None, cookies: dict[str, str] | None = None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


def test_no_header_no_cookie_yields_nothing() -> None:
    assert extract_credential(make_request()) is None
    assert extract_credential(make_request(), "sess") is None


@pytest.mark.parametrize("scheme", ["bearer", "Bearer", "BEARER"])
def test_bearer_header_is_case_insensitive(scheme: str) -> None:
    request = make_request(f"{scheme} ABC123")
    assert extract_credential(request) == "ABC123"


def test_header_wins_over_cookie() -> None:
    request = make_request("bearer ABC123", {"sess": "XYZ"})
    assert extract_credential(request, "sess") == "ABC123"


def test_cookie_used_when_no_header() -> None:
    request = make_request(cookies={"sess": "XYZ"})
    assert extract_credential(request, "sess") == "XYZ"


def test_cookie_ignored_without_cookie_name() -> None:
    request = make_request(cookies={"sess": "XYZ"})
    assert extract_credential(request) is None


def test_malformed_header_without_cookie_name_yields_nothing() -> None:
    request = make_request("not a bearer token", {"sess": "XYZ"})
    assert extract_credential(request) is None


def test_malformed_header_suppresses_cookie_fallback() -> None:
    request = make_request("invalid", {"sess": "XYZ"})
    assert not extract_credential(request, "sess")


def test_bare_scheme_is_not_a_credential() -> None:
    assert extract_credential(make_request("Bearer ")) is None


def test_empty_cookie_is_returned_as_empty() -> None:
    request = make_request(cookies={"sess": ""})
    assert extract_credential(request, "sess") == ""
