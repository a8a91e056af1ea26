"""Litestar application factory for the Facebook login service."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from litestar import Litestar
from litestar.exceptions import HTTPException
from litestar.middleware.session.client_side import CookieBackendConfig

from fblogin.config import Settings, get_settings
from fblogin.controllers.auth import AuthController
from fblogin.lib import observability
from fblogin.lib.exceptions import http_exception_handler, internal_server_error_handler

logger = logging.getLogger(__name__)

EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}


def create_session_config(
    secret_key: str,
    max_age: int = 86400,
    secure: bool = False,
    cookie_domain: str | None = None,
    cookie_name: str = "session",
) -> CookieBackendConfig:
    """Create a cookie-backed session config."""
    session_secret = hashlib.sha256(secret_key.encode()).digest()
    return CookieBackendConfig(
        secret=session_secret,
        key=cookie_name,
        max_age=max_age,
        httponly=True,
        secure=secure,
        samesite="lax",
        domain=cookie_domain,
    )


def create_app(settings: Settings | None = None) -> Litestar:
    settings = settings or get_settings()

    observability.configure(settings)
    observability.instrument_httpx()

    if settings.auth.facebook is None:
        logger.warning("Facebook provider is not configured; /auth/facebook routes will 404")

    session_config = create_session_config(
        settings.secret_key,
        max_age=settings.session.max_age,
        secure=settings.session.secure,
        cookie_domain=settings.session.cookie_domain,
        cookie_name=settings.session.cookie_name,
    )

    return Litestar(
        route_handlers=[AuthController],
        middleware=[session_config.middleware],
        exception_handlers=EXCEPTION_HANDLERS,
        debug=settings.debug,
    )
