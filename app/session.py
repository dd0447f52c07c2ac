from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request, Response

from app.config import Config


logger = logging.getLogger("portal.session")

INSTANCE_URL_COOKIE = "instanceUrl"
ACCESS_TOKEN_COOKIE = "accessToken"
SESSION_MAX_AGE = 24 * 60 * 60


@dataclass
class SessionCredentials:
    instance_url: str = ""
    access_token: str = ""
    overridden: bool = False

    @property
    def logged_in(self) -> bool:
        return bool(self.access_token)


def set_session(response: Response, config: Config, instance_url: str, access_token: str) -> None:
    for name, value in ((INSTANCE_URL_COOKIE, instance_url), (ACCESS_TOKEN_COOKIE, access_token)):
        response.set_cookie(
            name,
            value or "",
            max_age=SESSION_MAX_AGE,
            httponly=True,
            secure=config.cookie_secure,
            samesite="lax",
        )


def clear_session(response: Response, config: Config) -> None:
    # Expire at the epoch; browsers drop the cookie immediately.
    for name in (INSTANCE_URL_COOKIE, ACCESS_TOKEN_COOKIE):
        response.set_cookie(
            name,
            "",
            expires="Thu, 01 Jan 1970 00:00:00 GMT",
            httponly=True,
            secure=config.cookie_secure,
            samesite="lax",
        )


def read_session(request: Request, config: Config) -> SessionCredentials:
    """Resolve session credentials, preferring the local override pair when enabled."""
    if config.override_enabled:
        return SessionCredentials(
            instance_url=config.session_instance_url_override,
            access_token=config.session_access_token_override,
            overridden=True,
        )
    return SessionCredentials(
        instance_url=request.cookies.get(INSTANCE_URL_COOKIE, ""),
        access_token=request.cookies.get(ACCESS_TOKEN_COOKIE, ""),
    )


def is_logged_in(request: Request, config: Config) -> bool:
    return read_session(request, config).logged_in
