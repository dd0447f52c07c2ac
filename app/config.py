import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    app_env: str = "development"

    # User-session OAuth client (authorization-code flow).
    session_url: str = ""
    session_token_url: str = ""
    session_instance_url: str = ""
    session_client_id: str = ""
    session_client_secret: str = ""
    session_callback_url: str = ""
    session_state: str = "some_state"

    # Application OAuth client (client-credentials flow).
    application_token_endpoint: str = ""
    application_client_id: str = ""
    application_client_secret: str = ""

    # Local-development escape hatch; ignored in production.
    allow_session_override: bool = False
    session_instance_url_override: str = ""
    session_access_token_override: str = ""

    api_version: str = "v59.0"
    user_id: str = "005VC00000ET8LZ"
    youtube_api_key: str = ""
    default_thumbnail: str = "/static/default-thumbnail.png"

    cookie_secure: bool = True
    http_timeout: float = 30.0
    catalog_refresh_minutes: int = 30
    static_dir: str = str(BASE_DIR / "static")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def override_enabled(self) -> bool:
        return (
            self.allow_session_override
            and not self.is_production
            and bool(self.session_access_token_override)
        )

    @property
    def application_configured(self) -> bool:
        return bool(self.application_token_endpoint and self.application_client_id and self.application_client_secret)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if env is None else env

        def get(name: str, default: str = "") -> str:
            return (env.get(name) or default).strip()

        return cls(
            app_env=get("APP_ENV", "development"),
            session_url=get("SF_OAUTH_SESSION_URL"),
            session_token_url=get("SF_OAUTH_SESSION_TOKEN_URL"),
            session_instance_url=get("SF_OAUTH_SESSION_INSTANCE_URL").rstrip("/"),
            session_client_id=get("SF_OAUTH_SESSION_CLIENT_ID"),
            session_client_secret=get("SF_OAUTH_SESSION_CLIENT_SECRET"),
            session_callback_url=get("SF_OAUTH_SESSION_CALLBACK_URL"),
            session_state=get("SF_OAUTH_SESSION_STATE", "some_state"),
            application_token_endpoint=get("SF_OAUTH_APPLICATION_TOKEN_ENDPOINT"),
            application_client_id=get("SF_OAUTH_APPLICATION_CLIENT_ID"),
            application_client_secret=get("SF_OAUTH_APPLICATION_CLIENT_SECRET"),
            allow_session_override=_flag(env.get("SF_OAUTH_SESSION_ALLOW_OVERRIDE")),
            session_instance_url_override=get("SF_OAUTH_SESSION_INSTANCE_URL_OVERRIDE"),
            session_access_token_override=get("SF_OAUTH_SESSION_ACCESS_TOKEN_OVERRIDE"),
            api_version=get("SF_API_VERSION", "v59.0"),
            user_id=get("SF_USER_ID", "005VC00000ET8LZ"),
            youtube_api_key=get("YOUTUBE_API_KEY"),
            default_thumbnail=get("DEFAULT_THUMBNAIL", "/static/default-thumbnail.png"),
            cookie_secure=_flag(env.get("COOKIE_SECURE"), default=True),
            http_timeout=float(get("HTTP_TIMEOUT", "30") or 30),
            catalog_refresh_minutes=int(get("CATALOG_REFRESH_MINUTES", "30") or 30),
            static_dir=get("STATIC_DIR", str(BASE_DIR / "static")),
        )
