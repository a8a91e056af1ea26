"""Minimal async Graph API client: code exchange, token introspection, profile reads."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from fblogin.auth.errors import GraphAPIError
from fblogin.config import FacebookConfig

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("type") or str(error)
    return str(error or body)


class AccessToken:
    """A Graph access token able to make authenticated GET requests."""

    def __init__(
        self,
        graph: GraphClient,
        token: str,
        *,
        expires_in: int | None = None,
        header_format: str = "OAuth %s",
        param_name: str = "access_token",
        raw: dict | None = None,
    ):
        self.graph = graph
        self.token = token
        self.expires_in = expires_in
        self.header_format = header_format
        self.param_name = param_name
        self.raw = raw or {}

    @property
    def headers(self) -> dict:
        return {"Authorization": self.header_format % self.token}

    async def get(self, path: str, params: dict | None = None) -> Any:
        return await self.graph.request("GET", path, params=params, headers=self.headers)


class GraphClient:
    def __init__(self, config: FacebookConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.base_url = httpx.URL(config.site.rstrip("/") + "/")
        self._transport = transport

    def resolve_url(self, path: str) -> str:
        """Resolve *path* against the site; a leading slash means the host root."""
        return str(self.base_url.join(path))

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        data: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        url = self.resolve_url(path)
        async with httpx.AsyncClient(transport=self._transport, timeout=self.config.timeout) as client:
            response = await client.request(
                method,
                url,
                params=params,
                data=data,
                headers={"Accept": "application/json", **(headers or {})},
            )

        if response.status_code >= 400:
            raise GraphAPIError(response.status_code, _error_message(response))

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise GraphAPIError(response.status_code, "Response is not valid JSON") from exc

    def access_token(self, token: str, **kwargs: Any) -> AccessToken:
        return AccessToken(
            self,
            token,
            header_format=self.config.header_format,
            param_name=self.config.param_name,
            **kwargs,
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> AccessToken:
        """Redeem an authorization code for an access token."""
        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        tokens = await self.request("POST", self.config.token_url, data=data)

        token = tokens.get("access_token") if isinstance(tokens, dict) else None
        if not token:
            raise GraphAPIError(200, "No access token received")

        logger.debug("Exchanged authorization code for an access token")
        return self.access_token(token, expires_in=tokens.get("expires_in"), raw=tokens)

    async def debug_token(self, token: str, app_access_token: str) -> dict:
        """Introspect *token* with the ``/debug_token`` endpoint."""
        params = {"input_token": token, "access_token": app_access_token}
        return await self.access_token(token).get("/debug_token", params=params)
