"""Shared pytest fixtures."""

from unittest.mock import MagicMock

import httpx
import pytest
import yaml

from fblogin.auth.signed_request import encode_signed_request
from fblogin.config import FacebookConfig

APP_ID = "123"
APP_SECRET = "53cr3t"
PROFILE = {"id": "42", "name": "Fred Smith", "email": "fred@smith.com"}


def graph_handler(scopes=("email",), profile=PROFILE, debug_status=200):
    """Route mock Graph API requests for exchange, introspection and profile reads."""
    def _handle(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth/access_token"):
            return httpx.Response(200, json={"access_token": "exchanged-token", "expires_in": 3600})
        if request.url.path == "/debug_token":
            if debug_status != 200:
                return httpx.Response(debug_status, json={"error": {"message": "Invalid OAuth access token"}})
            return httpx.Response(200, json={"data": {"app_id": APP_ID, "scopes": list(scopes)}})
        if request.url.path.endswith("/me"):
            return httpx.Response(200, json=profile)
        return httpx.Response(404, json={"error": {"message": "unexpected"}})
    return _handle


@pytest.fixture
def facebook_config():
    return FacebookConfig(client_id=APP_ID, client_secret=APP_SECRET)


@pytest.fixture
def signed_cookie():
    """Factory returning a signed ``fbsr_`` cookie value for a payload."""
    def _make(fields: dict, secret: str = APP_SECRET) -> str:
        return encode_signed_request(fields, secret)
    return _make


@pytest.fixture
def graph_transport():
    """Factory for an httpx.MockTransport that records the requests it serves."""
    def _make(handler):
        requests: list[httpx.Request] = []

        def _handle(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        transport = httpx.MockTransport(_handle)
        transport.requests = requests
        return transport
    return _make


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_request_factory():
    """Factory fixture that returns mock requests with a session dict."""
    def _make(session=None):
        request = MagicMock()
        request.session = session if session is not None else {}
        return request
    return _make
