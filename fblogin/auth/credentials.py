"""Authorization credential resolution for the Facebook callback.

A callback carries its authorization in one of three places, checked in
this order:

1. The ``access_token`` param (token obtained client-side, verified later).
2. The ``code`` param (standard server-side redirect flow).
3. The ``fbsr_<app id>`` signed request cookie set by the JavaScript SDK.

A code taken from the cookie needs temporary overrides while it is being
redeemed; see :meth:`CredentialResolver.authorization_parameter`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from functools import cached_property

from fblogin.auth.errors import NoAuthorizationCredentialError
from fblogin.auth.signed_request import SignedRequest, parse_signed_request
from fblogin.config import FacebookConfig

logger = logging.getLogger(__name__)


class CodeOrigin(Enum):
    DIRECT = "direct"
    SIGNED_COOKIE = "signed_cookie"


@dataclass(frozen=True)
class BearerToken:
    token: str


@dataclass(frozen=True)
class AuthorizationCode:
    code: str
    origin: CodeOrigin = CodeOrigin.DIRECT


CredentialSource = BearerToken | AuthorizationCode


class VerificationContext:
    """Per-request view of the strategy options.

    Starts from the immutable :class:`FacebookConfig` and holds the values
    the resolver may override for the duration of one callback.
    """

    def __init__(
        self,
        config: FacebookConfig,
        params: Mapping[str, str],
        default_callback_url: str,
    ):
        self.config = config
        self.params: dict[str, str] = dict(params)
        self.provider_ignores_state = config.provider_ignores_state
        self.auth_code_from_cookie = False
        self._default_callback_url = default_callback_url

    @property
    def callback_url(self) -> str:
        # Facebook records an empty redirect_uri when it issues the code in a
        # signed request, and the token exchange must send the same value.
        if self.auth_code_from_cookie:
            return ""
        return self.config.callback_url or self._default_callback_url


class CredentialResolver:
    """Pick the one authorization source for a callback."""

    def __init__(self, context: VerificationContext, cookies: Mapping[str, str]):
        self.context = context
        self.cookies = cookies

    @property
    def raw_signed_request(self) -> str | None:
        return self.cookies.get(self.context.config.signed_request_cookie)

    @cached_property
    def signed_request(self) -> SignedRequest | None:
        """The verified cookie payload, decoded at most once per request."""
        raw = self.raw_signed_request
        # An empty cookie is still a cookie and fails to decode.
        if raw is None:
            return None
        return parse_signed_request(raw, self.context.config.client_secret)

    def resolve(self) -> CredentialSource:
        params = self.context.params
        if "access_token" in params:
            return BearerToken(params["access_token"])
        if "code" in params:
            return AuthorizationCode(params["code"], CodeOrigin.DIRECT)

        signed_request = self.signed_request
        if signed_request is not None and signed_request.code:
            return AuthorizationCode(signed_request.code, CodeOrigin.SIGNED_COOKIE)

        raise NoAuthorizationCredentialError()

    @contextmanager
    def authorization_parameter(self) -> Iterator[CredentialSource]:
        """Resolve the credential and apply the cookie-flow overrides around the body.

        For a code from the signed request cookie the code is injected into
        the effective params, the state check is switched off and the
        callback URL is forced to ``""``. Everything is restored on exit.
        """
        credential = self.resolve()
        if not (
            isinstance(credential, AuthorizationCode)
            and credential.origin is CodeOrigin.SIGNED_COOKIE
        ):
            yield credential
            return

        context = self.context
        original_code = context.params.get("code")
        original_from_cookie = context.auth_code_from_cookie
        original_ignores_state = context.provider_ignores_state

        context.params["code"] = credential.code
        context.auth_code_from_cookie = True
        # The JS SDK has already confirmed that the user in the signed
        # request is the one loading the app.
        context.provider_ignores_state = True
        logger.debug("Using authorization code from %s cookie", context.config.signed_request_cookie)
        try:
            yield credential
        finally:
            if original_code is None:
                context.params.pop("code", None)
            else:
                context.params["code"] = original_code
            context.auth_code_from_cookie = original_from_cookie
            context.provider_ignores_state = original_ignores_state
