"""Error kinds raised while resolving and validating a Facebook login callback.

Every error here is request-terminal: the user has to restart the login
flow. ``fblogin.auth.callback`` is the only place that turns these into the
externally reported failure codes.
"""

from __future__ import annotations

from collections.abc import Iterable


class FacebookAuthError(Exception):
    """Base class for every Facebook login failure."""


class SignedRequestError(FacebookAuthError):
    """Base class for ``fbsr_`` signed request decoding failures."""


class MalformedInputError(SignedRequestError):
    """The signed request could not be split or decoded."""


class UnknownSignatureAlgorithmError(SignedRequestError):
    def __init__(self, algorithm: object):
        self.algorithm = algorithm
        super().__init__(f"unknown algorithm: {algorithm}")


class SignatureMismatchError(SignedRequestError):
    """The HMAC signature does not match the payload."""


class NoAuthorizationCredentialError(FacebookAuthError):
    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "must pass either a `access_token` param or a `code` "
            "(via URL param or by an `fbsr_XXX` signed request cookie)"
        )


class MissingScopesError(FacebookAuthError):
    def __init__(self, scopes: Iterable[str]):
        self.scopes = list(scopes)
        super().__init__(f"Missing scopes {', '.join(self.scopes)}")


class AppIdMismatchError(FacebookAuthError):
    """Token introspection failed, usually because the token belongs to another app."""


class InvalidStateError(FacebookAuthError):
    """The ``state`` param does not match the one stored at authorize time."""


class CallbackError(FacebookAuthError):
    """Facebook redirected back with an ``error`` param."""

    def __init__(self, error: str, reason: str | None = None):
        self.error = error
        self.reason = reason
        super().__init__(f"{error}: {reason}" if reason else error)


class GraphAPIError(FacebookAuthError):
    """The Graph API answered with an error response."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"Graph API error {status_code}: {message}")
