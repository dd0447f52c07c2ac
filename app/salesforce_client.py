import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from app.config import Config
from app.errors import AuthExpired, ConfigurationError, UpstreamUnavailable


logger = logging.getLogger("portal.salesforce")


def _json_body(r: httpx.Response, what: str) -> Dict[str, Any]:
    try:
        return r.json()
    except ValueError:
        logger.warning("Salesforce: %s returned non-JSON (status %s)", what, r.status_code)
        raise UpstreamUnavailable(f"{what} returned a non-JSON response")


class OAuthClient:
    """Token exchanges against the CRM's OAuth endpoints."""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self.transport = transport

    def login_url(self) -> str:
        c = self.config
        if not (c.session_url and c.session_client_id and c.session_callback_url):
            raise ConfigurationError("session OAuth client is not configured")
        params = {
            "client_id": c.session_client_id,
            "redirect_uri": c.session_callback_url,
            "response_type": "code",
            "state": c.session_state,
        }
        return f"{c.session_url}?{urlencode(params)}"

    async def _post_form(self, url: str, data: Dict[str, str], what: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        if not url:
            raise ConfigurationError(f"{what}: endpoint is not configured")
        try:
            async with httpx.AsyncClient(timeout=self.config.http_timeout, transport=self.transport) as client:
                # httpx form-encodes `data` as application/x-www-form-urlencoded.
                r = await client.post(url, data=data, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Salesforce: %s request failed", what, exc_info=True)
            raise UpstreamUnavailable(f"{what} request failed: {exc}") from exc

        if r.status_code in (400, 401):
            try:
                body = r.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            logger.warning("Salesforce: %s rejected: %s", what, body.get("error") or r.status_code)
            raise AuthExpired(str(body.get("error_description") or body.get("error") or "token request rejected"))
        if r.status_code >= 400:
            logger.warning("Salesforce: %s failed with status %s", what, r.status_code)
            raise UpstreamUnavailable(f"{what} failed with status {r.status_code}")
        return _json_body(r, what)

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for an access token (and id_token)."""
        c = self.config
        data = {
            "code": code,
            "client_id": c.session_client_id,
            "client_secret": c.session_client_secret,
            "redirect_uri": c.session_callback_url,
            "grant_type": "authorization_code",
        }
        token = await self._post_form(c.session_token_url, data, "authorization code exchange")
        logger.info("Salesforce: exchanged authorization code (instance %s)", token.get("instance_url"))
        return token

    async def client_credentials(self) -> Dict[str, Any]:
        c = self.config
        data = {
            "grant_type": "client_credentials",
            "client_id": c.application_client_id,
            "client_secret": c.application_client_secret,
        }
        token = await self._post_form(c.application_token_endpoint, data, "client credentials exchange")
        logger.info("Salesforce: received client credentials token")
        return token

    async def introspect(self, token: str) -> Dict[str, Any]:
        c = self.config
        if not c.session_instance_url:
            raise ConfigurationError("SF_OAUTH_SESSION_INSTANCE_URL is not configured")
        data = {
            "token": token,
            "client_id": c.session_client_id,
            "client_secret": c.session_client_secret,
            "token_type_hint": "access_token",
        }
        result = await self._post_form(
            c.session_instance_url + "/services/oauth2/introspect",
            data,
            "token introspection",
            headers={"Accept": "application/json"},
        )
        logger.info("Salesforce: introspection active=%s", result.get("active"))
        return result


class SalesforceRestApi:
    """Minimal CRM REST client bound to one instance url and bearer token."""

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = "v59.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.instance_url = (instance_url or "").rstrip("/")
        self.access_token = access_token or ""
        self.api_version = api_version
        self.timeout = timeout
        self.transport = transport

    @property
    def ready(self) -> bool:
        return bool(self.instance_url and self.access_token)

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.ready:
            raise AuthExpired("no CRM session available")
        url = f"{self.instance_url}/services/data/{self.api_version}{path}"
        headers = {"Authorization": f"Bearer {self.access_token}", "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Salesforce: %s %s failed", method, path, exc_info=True)
            raise UpstreamUnavailable(f"CRM request failed: {exc}") from exc
        if r.status_code == 401:
            raise AuthExpired("CRM session expired or invalid")
        if r.status_code >= 400:
            logger.warning("Salesforce: %s %s returned %s: %s", method, path, r.status_code, r.text[:200])
            raise UpstreamUnavailable(f"CRM request failed with status {r.status_code}")
        return _json_body(r, "CRM request")

    async def query(self, soql: str) -> Dict[str, Any]:
        """Run one query; only the first page of results is returned."""
        resp = await self._request("GET", "/query", params={"q": soql})
        if not resp.get("done", True) and resp.get("nextRecordsUrl"):
            logger.info("Salesforce: query returned a partial page (%s total records)", resp.get("totalSize"))
        return resp

    async def insert(self, sobject: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", f"/sobjects/{sobject}", json=fields)
