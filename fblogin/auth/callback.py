"""Callback orchestration and the externally reported failure vocabulary."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from fblogin.auth.credentials import (
    AuthorizationCode,
    BearerToken,
    CredentialResolver,
    CredentialSource,
    VerificationContext,
)
from fblogin.auth.errors import (
    AppIdMismatchError,
    CallbackError,
    FacebookAuthError,
    GraphAPIError,
    InvalidStateError,
    MalformedInputError,
    MissingScopesError,
    NoAuthorizationCredentialError,
    SignatureMismatchError,
    UnknownSignatureAlgorithmError,
)
from fblogin.auth.graph import AccessToken, GraphClient
from fblogin.auth.providers import FacebookProvider, NormalizedUserData
from fblogin.auth.verifier import TokenVerifier
from fblogin.lib import observability

logger = logging.getLogger(__name__)

STRATEGY_NAME = "facebook"


class FailureCode(str, Enum):
    INVALID_SIGNED_REQUEST = "invalid_signed_request"
    UNKNOWN_SIGNATURE_ALGORITHM = "unknown_signature_algorithm"
    INVALID_SIGNATURE = "invalid_signature"
    NO_AUTHORIZATION_CODE = "no_authorization_code"
    MISSING_SCOPES = "missing_scopes"
    APP_ID_MISMATCH = "app_id_mismatch"
    CSRF_DETECTED = "csrf_detected"
    ACCESS_DENIED = "access_denied"
    INVALID_CREDENTIALS = "invalid_credentials"
    TIMEOUT = "timeout"


FAILURE_MESSAGES: dict[FailureCode, str] = {
    FailureCode.INVALID_SIGNED_REQUEST: "The Facebook signed request could not be read.",
    FailureCode.UNKNOWN_SIGNATURE_ALGORITHM: "The Facebook signed request uses an unsupported algorithm.",
    FailureCode.INVALID_SIGNATURE: "The Facebook signed request signature is invalid.",
    FailureCode.NO_AUTHORIZATION_CODE: "No Facebook authorization code or access token was provided.",
    FailureCode.MISSING_SCOPES: "Facebook did not grant all required permissions.",
    FailureCode.APP_ID_MISMATCH: "The Facebook access token could not be validated for this app.",
    FailureCode.CSRF_DETECTED: "The login request could not be verified. Please try again.",
    FailureCode.ACCESS_DENIED: "Facebook login was cancelled or denied.",
    FailureCode.INVALID_CREDENTIALS: "Facebook rejected the login credentials.",
    FailureCode.TIMEOUT: "Facebook did not respond in time.",
}


class CallbackState(Enum):
    START = "start"
    CREDENTIAL_RESOLVED = "credential_resolved"
    EXCHANGE_DELEGATED = "exchange_delegated"
    TOKEN_VERIFIED = "token_verified"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class CallbackFailure(Exception):
    """A terminal callback failure carrying its external failure code."""

    def __init__(self, code: FailureCode, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code.value}: {message}")


@dataclass
class AuthResult:
    """What a successful callback knows about the user."""

    uid: str
    user: NormalizedUserData
    info: dict
    credentials: dict
    extra: dict = field(default_factory=dict)
    provider: str = STRATEGY_NAME


def failure_code_for(exc: Exception) -> FailureCode:
    match exc:
        case MalformedInputError():
            return FailureCode.INVALID_SIGNED_REQUEST
        case UnknownSignatureAlgorithmError():
            return FailureCode.UNKNOWN_SIGNATURE_ALGORITHM
        case SignatureMismatchError():
            return FailureCode.INVALID_SIGNATURE
        case NoAuthorizationCredentialError():
            return FailureCode.NO_AUTHORIZATION_CODE
        case MissingScopesError():
            return FailureCode.MISSING_SCOPES
        case AppIdMismatchError():
            return FailureCode.APP_ID_MISMATCH
        case InvalidStateError():
            return FailureCode.CSRF_DETECTED
        case CallbackError():
            return FailureCode.ACCESS_DENIED
        case GraphAPIError():
            return FailureCode.INVALID_CREDENTIALS
        case httpx.TimeoutException() | httpx.ConnectError():
            return FailureCode.TIMEOUT
        case _:
            raise TypeError(f"No failure code for {type(exc).__name__}") from exc


def failure_message(code: FailureCode, exc: Exception) -> str:
    # Graph and transport errors keep their detail out of the message.
    if code in (FailureCode.APP_ID_MISMATCH, FailureCode.INVALID_CREDENTIALS, FailureCode.TIMEOUT):
        return FAILURE_MESSAGES[code]
    return str(exc) or FAILURE_MESSAGES[code]


class CallbackOrchestrator:
    """Runs one Facebook callback from credential resolution to an AuthResult."""

    def __init__(
        self,
        provider: FacebookProvider,
        graph: GraphClient,
        context: VerificationContext,
        cookies: dict[str, str],
    ):
        self.provider = provider
        self.graph = graph
        self.context = context
        self.resolver = CredentialResolver(context, cookies)
        self.verifier = TokenVerifier(
            provider.config.client_id,
            provider.config.client_secret,
            graph.debug_token,
        )
        self.state = CallbackState.START

    async def run(self, stored_state: str | None = None) -> AuthResult:
        """Authenticate the callback.

        Raises:
            CallbackFailure: for every handled failure, with its failure code.
        """
        with observability.span("facebook.callback"):
            try:
                result = await self._run(stored_state)
            except (FacebookAuthError, httpx.TimeoutException, httpx.ConnectError) as exc:
                self.state = CallbackState.FAILED
                code = failure_code_for(exc)
                logger.warning("Facebook callback failed (%s): %s", code.value, exc)
                observability.warning(
                    "Facebook callback failed: {code}", code=code.value, error=type(exc).__name__
                )
                raise CallbackFailure(code, failure_message(code, exc)) from exc

        self.state = CallbackState.AUTHENTICATED
        return result

    async def _run(self, stored_state: str | None) -> AuthResult:
        params = self.context.params
        if error := params.get("error"):
            raise CallbackError(error, params.get("error_description") or params.get("error_reason"))

        with self.resolver.authorization_parameter() as credential:
            self.state = CallbackState.CREDENTIAL_RESOLVED
            self._check_state(stored_state)

            access_token = await self._build_access_token(credential)
            proof = self.verifier.appsecret_proof(access_token.token)
            raw_info = await self.provider.fetch_user_info(access_token, proof)

        return self._build_result(access_token, raw_info)

    def _check_state(self, stored_state: str | None) -> None:
        if self.context.provider_ignores_state:
            return
        state = self.context.params.get("state")
        if not state or state != stored_state:
            raise InvalidStateError("CSRF detected")

    async def _build_access_token(self, credential: CredentialSource) -> AccessToken:
        match credential:
            case BearerToken(token=token):
                access_token = self.graph.access_token(token)
                await self.verifier.verify(token, self.provider.required_scopes(self.context.params))
                self.state = CallbackState.TOKEN_VERIFIED
            case AuthorizationCode():
                # Read the code back from the effective params so a code
                # injected from the signed request is redeemed the same way.
                access_token = await self.graph.exchange_code(
                    self.context.params["code"], self.context.callback_url
                )
                self.state = CallbackState.EXCHANGE_DELEGATED
        return access_token

    def _build_result(self, access_token: AccessToken, raw_info: dict[str, Any]) -> AuthResult:
        uid = raw_info.get("id")
        if not uid:
            raise GraphAPIError(200, "Could not determine user ID")

        credentials = {"token": access_token.token, "expires": access_token.expires_in is not None}
        if access_token.expires_in is not None:
            credentials["expires_in"] = access_token.expires_in

        return AuthResult(
            uid=str(uid),
            user=self.provider.extract_user_data(raw_info),
            info=self.provider.build_info(raw_info),
            credentials=credentials,
            extra=self.provider.build_extra(raw_info),
        )
