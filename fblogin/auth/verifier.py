"""Verification of access tokens handed to the callback directly."""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import httpx

from fblogin.auth.errors import AppIdMismatchError, GraphAPIError, MissingScopesError

logger = logging.getLogger(__name__)

Introspect = Callable[[str, str], Awaitable[dict[str, Any]]]


def compute_appsecret_proof(client_secret: str, token: str) -> str:
    """Hex HMAC-SHA256 of *token* keyed by the app secret."""
    return hmac.new(client_secret.encode(), token.encode(), hashlib.sha256).hexdigest()


def split_scopes(scope: str) -> list[str]:
    return [s.strip() for s in scope.split(",") if s.strip()]


def granted_scopes(token_info: Any) -> frozenset[str]:
    """Scopes listed in a ``/debug_token`` response body."""
    if not isinstance(token_info, dict):
        raise GraphAPIError(200, "Unexpected token introspection response")
    data = token_info.get("data") or {}
    if not isinstance(data, dict):
        raise GraphAPIError(200, "Unexpected token introspection data")
    scopes = data.get("scopes") or []
    if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
        raise GraphAPIError(200, "Unexpected token introspection scopes")
    return frozenset(scopes)


class TokenVerifier:
    """Checks a bearer token against ``/debug_token`` for one request.

    Args:
        client_id: Facebook app id.
        client_secret: Facebook app secret.
        introspect: Coroutine called with ``(token, app_access_token)`` that
            returns the ``/debug_token`` response.
    """

    def __init__(self, client_id: str, client_secret: str, introspect: Introspect):
        self.client_id = client_id
        self.client_secret = client_secret
        self._introspect = introspect
        self._proofs: dict[str, str] = {}

    @property
    def app_access_token(self) -> str:
        return f"{self.client_id}|{self.client_secret}"

    def appsecret_proof(self, token: str) -> str:
        """Proof sent along with every Graph call made with *token*."""
        if token not in self._proofs:
            self._proofs[token] = compute_appsecret_proof(self.client_secret, token)
        return self._proofs[token]

    async def verify(self, token: str, required_scopes: Iterable[str]) -> frozenset[str]:
        """Ensure *token* was issued to this app with every required scope.

        Returns the granted scopes.

        Raises:
            AppIdMismatchError: the introspection call failed.
            MissingScopesError: a required scope was not granted.
        """
        try:
            token_info = await self._introspect(token, self.app_access_token)
            granted = granted_scopes(token_info)
        except (GraphAPIError, httpx.HTTPError) as exc:
            logger.warning("Token introspection failed: %s", exc)
            raise AppIdMismatchError("Failed to validate token") from exc

        missing = [scope for scope in dict.fromkeys(required_scopes) if scope not in granted]
        if missing:
            raise MissingScopesError(missing)
        return granted
