"""Facebook provider strategy: authorize params, profile fetch and normalization."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode, urlparse, urlunparse

from fblogin.auth.graph import AccessToken
from fblogin.auth.verifier import split_scopes
from fblogin.config import DEFAULT_SCOPE, FacebookConfig

# Request params forwarded to the dialog, e.g. /auth/facebook/login?display=popup
AUTHORIZE_PASSTHROUGH_PARAMS = ("display", "scope", "auth_type")


@dataclass
class NormalizedUserData:
    """Provider-agnostic user data extracted from the Graph profile."""

    oauth_id: str | None
    email: str | None
    name: str | None
    picture_url: str | None


def prune(data: dict) -> dict:
    """Recursively drop ``None`` and empty values."""
    pruned = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = prune(value)
        if value is None or (hasattr(value, "__len__") and len(value) == 0):
            continue
        pruned[key] = value
    return pruned


class FacebookProvider:
    def __init__(self, config: FacebookConfig):
        self.config = config

    def build_auth_params(
        self,
        redirect_uri: str,
        state: str,
        request_params: Mapping[str, str] | None = None,
    ) -> dict:
        """Build the dialog query parameters."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state,
        }
        for key in AUTHORIZE_PASSTHROUGH_PARAMS:
            if request_params and request_params.get(key):
                params[key] = request_params[key]
        params.setdefault("scope", self.config.scope or DEFAULT_SCOPE)
        return params

    def authorize_redirect_url(
        self,
        redirect_uri: str,
        state: str,
        request_params: Mapping[str, str] | None = None,
    ) -> str:
        params = self.build_auth_params(redirect_uri, state, request_params)
        return f"{self.config.authorize_url}?{urlencode(params)}"

    def required_scopes(self, request_params: Mapping[str, str]) -> list[str]:
        """Scopes a directly supplied token must have been granted."""
        scope = request_params.get("scope") or self.config.scope or DEFAULT_SCOPE
        return split_scopes(scope)

    def info_params(self, appsecret_proof: str) -> dict:
        params = {"appsecret_proof": appsecret_proof, "fields": self.config.info_fields}
        if self.config.locale:
            params["locale"] = self.config.locale
        return params

    async def fetch_user_info(self, access_token: AccessToken, appsecret_proof: str) -> dict:
        return await access_token.get("me", params=self.info_params(appsecret_proof)) or {}

    def image_url(self, uid: str) -> str:
        site = urlparse(self.config.site)
        scheme = "https" if self.config.secure_image_url else "http"

        size = self.config.image_size
        if isinstance(size, str):
            query = urlencode({"type": size})
        elif isinstance(size, dict):
            query = urlencode(size)
        else:
            query = ""

        path = f"{site.path.rstrip('/')}/{uid}/picture"
        return urlunparse((scheme, site.hostname or "", path, "", query, ""))

    def build_info(self, raw_info: dict) -> dict:
        uid = raw_info.get("id")
        return prune({
            "nickname": raw_info.get("username"),
            "email": raw_info.get("email"),
            "name": raw_info.get("name"),
            "first_name": raw_info.get("first_name"),
            "last_name": raw_info.get("last_name"),
            "image": self.image_url(uid) if uid else None,
            "description": raw_info.get("bio"),
            "urls": {
                "Facebook": raw_info.get("link"),
                "Website": raw_info.get("website"),
            },
            "location": (raw_info.get("location") or {}).get("name"),
            "verified": raw_info.get("verified"),
        })

    def extract_user_data(self, raw_info: dict) -> NormalizedUserData:
        info = self.build_info(raw_info)
        uid = raw_info.get("id")
        return NormalizedUserData(
            oauth_id=str(uid) if uid is not None else None,
            email=info.get("email"),
            name=info.get("name"),
            picture_url=info.get("image"),
        )

    def build_extra(self, raw_info: dict) -> dict:
        if self.config.skip_info or not raw_info:
            return {}
        return {"raw_info": raw_info}
