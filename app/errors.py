from typing import Optional


class PortalError(Exception):
    """Base error surfaced to API callers as a JSON body."""

    status_code = 500
    code = "portal_error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "detail": self.message}


class AuthExpired(PortalError):
    status_code = 401
    code = "auth_expired"


class UpstreamUnavailable(PortalError):
    status_code = 502
    code = "upstream_unavailable"


class MalformedRecord(PortalError):
    status_code = 422
    code = "malformed_record"

    def __init__(self, message: str = "", record: Optional[dict] = None) -> None:
        self.record = record or {}
        super().__init__(message)


class ConfigurationError(PortalError):
    status_code = 500
    code = "not_configured"
