"""Authentication controller for the Facebook login flow.

Handles the authorize redirect, the callback for both the server-side
``code`` flow and the JavaScript SDK ``fbsr_`` cookie flow, and the failure
endpoint callbacks are redirected to.
"""

import fnmatch
import logging
import secrets
from typing import Annotated
from urllib.parse import urlencode, urlparse

from litestar import Controller, Request, Response, get
from litestar.exceptions import NotFoundException
from litestar.params import Parameter
from litestar.response import Redirect
from litestar.status_codes import HTTP_401_UNAUTHORIZED

from fblogin.auth.callback import (
    FAILURE_MESSAGES,
    STRATEGY_NAME,
    AuthResult,
    CallbackFailure,
    CallbackOrchestrator,
    FailureCode,
)
from fblogin.auth.credentials import VerificationContext
from fblogin.auth.graph import GraphClient
from fblogin.auth.providers import FacebookProvider
from fblogin.config import FacebookConfig, get_settings
from fblogin.lib import observability

logger = logging.getLogger(__name__)


def _is_safe_redirect_url(url: str, allowed_domains: list[str]) -> bool:
    """Check if URL is safe to redirect to.

    Supports fnmatch-style wildcards such as ``*.example.com``; a plain
    domain matches itself and its subdomains.
    """
    # Relative paths are always safe (but not protocol-relative //domain.com)
    if url.startswith("/") and not url.startswith("//"):
        return True

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False

    host = (parsed.hostname or "").lower()
    for pattern in allowed_domains:
        pattern = pattern.lower()
        if "*" in pattern or "?" in pattern:
            if fnmatch.fnmatch(host, pattern):
                return True
        elif host == pattern or host.endswith(f".{pattern}"):
            return True

    return False


def _get_safe_redirect_url(request: Request, allowed_domains: list[str], default: str = "/") -> str:
    """Get the next redirect URL from session, validating it's safe."""
    next_url = request.session.pop("auth_next", None)
    if next_url and _is_safe_redirect_url(next_url, allowed_domains):
        return next_url
    return default


def _get_facebook_config() -> FacebookConfig:
    config = get_settings().auth.facebook
    if config is None:
        raise NotFoundException("Provider facebook not configured")
    return config


def _request_params(request: Request) -> dict[str, str]:
    return {key: request.query_params.get(key) for key in request.query_params}


def _failure_redirect(code: FailureCode) -> Redirect:
    query = urlencode({"message": code.value, "strategy": STRATEGY_NAME})
    return Redirect(path=f"/auth/failure?{query}")


def _set_login_session(request: Request, result: AuthResult) -> None:
    """Rotate the session and populate it with the authenticated user."""
    next_url = request.session.get("auth_next")
    request.session.clear()

    request.session["user_id"] = result.uid
    request.session["user_provider"] = result.provider
    request.session["user_name"] = result.user.name
    request.session["user_email"] = result.user.email
    request.session["user_picture_url"] = result.user.picture_url
    if next_url is not None:
        request.session["auth_next"] = next_url


class AuthController(Controller):
    path = "/auth"

    @get("/facebook/login")
    async def facebook_login(
        self,
        request: Request,
        next_url: Annotated[str | None, Parameter(query="next")] = None,
    ) -> Redirect:
        """Redirect to the Facebook login dialog."""
        settings = get_settings()
        config = _get_facebook_config()

        if next_url and _is_safe_redirect_url(next_url, settings.auth.allowed_redirect_domains):
            request.session["auth_next"] = next_url

        state = secrets.token_urlsafe(32)
        request.session["oauth_state"] = state

        provider = FacebookProvider(config)
        redirect_uri = config.callback_url or settings.auth.get_redirect_uri()
        return Redirect(
            path=provider.authorize_redirect_url(redirect_uri, state, _request_params(request))
        )

    @get("/facebook/callback")
    async def facebook_callback(self, request: Request) -> Redirect:
        """Authenticate a Facebook callback from a code, a token or the fbsr_ cookie."""
        settings = get_settings()
        config = _get_facebook_config()

        context = VerificationContext(
            config,
            _request_params(request),
            default_callback_url=settings.auth.get_redirect_uri(),
        )
        orchestrator = CallbackOrchestrator(
            FacebookProvider(config),
            GraphClient(config),
            context,
            dict(request.cookies),
        )

        stored_state = request.session.pop("oauth_state", None)
        try:
            result = await orchestrator.run(stored_state)
        except CallbackFailure as failure:
            request.session["flash"] = failure.message
            return _failure_redirect(failure.code)

        logger.info("Facebook login succeeded for uid %s", result.uid)
        observability.info("Facebook login succeeded", uid=result.uid)
        _set_login_session(request, result)
        return Redirect(path=_get_safe_redirect_url(request, settings.auth.allowed_redirect_domains))

    @get("/failure")
    async def failure(
        self,
        request: Request,
        message: str | None = None,
        strategy: str | None = None,
    ) -> Response:
        """Report a failed login with its failure code."""
        try:
            code = FailureCode(message)
        except ValueError:
            code = None

        detail = request.session.pop("flash", None) or (
            FAILURE_MESSAGES[code] if code else "Authentication failed."
        )
        return Response(
            content={
                "status_code": HTTP_401_UNAUTHORIZED,
                "error": code.value if code else "unknown",
                "detail": detail,
                "strategy": strategy,
            },
            status_code=HTTP_401_UNAUTHORIZED,
        )

    @get("/logout")
    async def logout(self, request: Request) -> Redirect:
        """Clear session and redirect to home."""
        request.session.clear()
        return Redirect(path="/")
