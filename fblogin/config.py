import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
_env_file = Path(__file__).parent.parent / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

DEFAULT_SCOPE = "email"


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Path of the YAML config, overridable with FBLOGIN_CONFIG."""
    return Path(os.environ.get("FBLOGIN_CONFIG", Path.cwd() / "app.yaml"))


def load_app_config() -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class FacebookConfig(BaseModel):
    """Facebook app credentials and strategy options.

    Read-only once loaded; per-request overrides live on
    ``fblogin.auth.credentials.VerificationContext``.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    scope: str = DEFAULT_SCOPE

    site: str = "https://graph.facebook.com/v2.10"
    authorize_url: str = "https://www.facebook.com/v2.10/dialog/oauth"
    token_url: str = "oauth/access_token"

    # Access token options
    header_format: str = "OAuth %s"
    param_name: str = "access_token"

    info_fields: str = "name,email"
    locale: str | None = None
    image_size: str | dict[str, int] | None = None
    secure_image_url: bool = False

    callback_url: str | None = None
    provider_ignores_state: bool = False
    skip_info: bool = False
    timeout: float = 10.0

    @property
    def signed_request_cookie(self) -> str:
        return f"fbsr_{self.client_id}"


class AuthConfig(BaseModel):
    """Authentication configuration."""

    redirect_base_url: str = "http://localhost:8000"
    allowed_redirect_domains: list[str] = []
    facebook: FacebookConfig | None = None

    def get_redirect_uri(self) -> str:
        """Get the Facebook callback URL."""
        return f"{self.redirect_base_url}/auth/facebook/callback"


class SessionConfig(BaseModel):
    """Session cookie configuration."""

    cookie_name: str = "session"
    max_age: int = 86400
    secure: bool = False
    cookie_domain: str | None = None


class LogfireConfig(BaseModel):
    """Pydantic Logfire observability configuration."""

    enabled: bool = False
    service_name: str = "fblogin"
    environment: str | None = None
    sample_rate: float = 1.0
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    debug: bool = False
    secret_key: str

    # Loaded from app.yaml
    auth: AuthConfig = AuthConfig()
    session: SessionConfig = SessionConfig()
    logfire: LogfireConfig = LogfireConfig()


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    # First create base settings from .env
    base_settings = Settings()

    # Load app.yaml config
    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    # Merge YAML config with settings
    updates = {}

    if "auth" in app_config:
        updates["auth"] = AuthConfig(**app_config["auth"])

    if "session" in app_config:
        updates["session"] = SessionConfig(**app_config["session"])

    if "logfire" in app_config:
        updates["logfire"] = LogfireConfig(**app_config["logfire"])

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings
