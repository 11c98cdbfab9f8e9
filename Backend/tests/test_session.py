import asyncio
import base64
import json
from unittest.mock import MagicMock

import pytest

from docutrain_admin.core.errors import AuthenticationRequiredError
from docutrain_admin.core.session import get_session, session_from_token, user_id_from_token


def make_jwt(claims):
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"eyJhbGciOiJIUzI1NiJ9.{payload}.signature"


def test_user_id_from_token():
    assert user_id_from_token(make_jwt({"sub": "user-42", "role": "authenticated"})) == "user-42"


@pytest.mark.parametrize("token", ["opaque-token", "a.!!!.c", make_jwt({"role": "anon"})])
def test_unreadable_tokens_have_no_user(token):
    assert user_id_from_token(token) is None


def test_session_auth_headers():
    session = session_from_token(make_jwt({"sub": "u-1"}))
    assert session.user_id == "u-1"
    assert session.auth_headers["Authorization"].startswith("Bearer eyJ")


def request_with(headers):
    request = MagicMock()
    request.headers = headers
    return request


def test_get_session_requires_bearer():
    with pytest.raises(AuthenticationRequiredError):
        asyncio.run(get_session(request_with({})))
    with pytest.raises(AuthenticationRequiredError):
        asyncio.run(get_session(request_with({"Authorization": "Basic abc"})))
    with pytest.raises(AuthenticationRequiredError):
        asyncio.run(get_session(request_with({"Authorization": "Bearer   "})))


def test_get_session_builds_session():
    session = asyncio.run(get_session(request_with({"Authorization": "Bearer token-abc"})))
    assert session.access_token == "token-abc"
    assert session.user_id is None


def test_rate_limit_key_prefers_user_id():
    from docutrain_admin.core.limiter import rate_limit_key

    request = MagicMock()
    request.headers = {"Authorization": f"Bearer {make_jwt({'sub': 'u-7'})}"}
    assert rate_limit_key(request) == "user:u-7"

    request.headers = {}
    request.client.host = "10.0.0.5"
    assert rate_limit_key(request) == "10.0.0.5"
