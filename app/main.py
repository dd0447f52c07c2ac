from __future__ import annotations

import hashlib
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from app.catalog import CatalogState, load_user_history, refresh_catalog
from app.config import Config
from app.errors import AuthExpired, PortalError
from app.models import User
from app.salesforce_client import OAuthClient, SalesforceRestApi
from app.services import PurchasedVideoService, WatchedVideoService
from app.session import clear_session, is_logged_in, read_session, set_session
from app.shell import shell_state
from app.youtube_client import YouTubeData


logger = logging.getLogger("portal")


def create_app(config: Optional[Config] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Build the portal app; `transport` replaces the network for every upstream client."""
    config = config or Config.from_env()
    if config.override_enabled:
        logger.warning("Session override is enabled; OAuth login is bypassed")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        # Warm the catalog on boot when credentials allow it.
        if config.application_configured or config.override_enabled:
            try:
                await current_catalog(force=True)
            except PortalError:
                logger.warning("Catalog: initial build failed", exc_info=True)
        yield

    app = FastAPI(title="Video Portal", lifespan=lifespan)
    app.state.config = config
    app.state.oauth = OAuthClient(config, transport=transport)
    app.state.youtube = YouTubeData(config.youtube_api_key, timeout=config.http_timeout, transport=transport)
    app.state.catalog = CatalogState()

    static_dir = config.static_dir
    if os.path.isdir(static_dir):
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    def _api(instance_url: str, access_token: str) -> SalesforceRestApi:
        return SalesforceRestApi(
            instance_url,
            access_token,
            api_version=config.api_version,
            timeout=config.http_timeout,
            transport=transport,
        )

    def session_api(request: Request) -> SalesforceRestApi:
        creds = read_session(request, config)
        return _api(creds.instance_url, creds.access_token)

    def catalog_key(request: Optional[Request] = None) -> Optional[str]:
        """Cache key naming whose credentials query the catalog; None when nobody may."""
        if config.application_configured:
            return "application"
        if request is not None:
            token = read_session(request, config).access_token
        elif config.override_enabled:
            token = config.session_access_token_override
        else:
            token = ""
        if not token:
            return None
        return "session:" + hashlib.sha256(token.encode("utf-8")).hexdigest()

    def catalog_credentials(request: Optional[Request] = None):
        """Credentials for a catalog rebuild; only called when the cached catalog is stale."""

        async def resolve() -> SalesforceRestApi:
            if config.application_configured:
                token = await app.state.oauth.client_credentials()
                return _api(str(token.get("instance_url") or ""), str(token.get("access_token") or ""))
            if request is not None:
                return session_api(request)
            return _api(config.session_instance_url_override, config.session_access_token_override)

        return resolve

    async def current_catalog(request: Optional[Request] = None, force: bool = False):
        key = catalog_key(request)
        if key is None:
            raise AuthExpired("login required to browse the catalog")
        return await refresh_catalog(
            app.state.catalog,
            key,
            catalog_credentials(request),
            app.state.youtube,
            default_thumbnail=config.default_thumbnail,
            refresh_minutes=config.catalog_refresh_minutes,
            force=force,
        )

    def history_services(request: Request):
        api = session_api(request)
        if not api.ready:
            raise AuthExpired("login required")
        return WatchedVideoService(api), PurchasedVideoService(api)

    def index_response() -> FileResponse:
        path = os.path.join(static_dir, "index.html")
        if not os.path.isfile(path):
            raise HTTPException(status_code=404, detail="index.html not found")
        return FileResponse(path)

    @app.exception_handler(PortalError)
    async def _portal_error(request: Request, exc: PortalError):
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.get("/health")
    async def health():
        return {"ok": True, "service": "video_portal", "catalogReady": any(e.parser.is_initialized() for e in app.state.catalog.entries.values())}

    @app.get("/login")
    async def login():
        return RedirectResponse(app.state.oauth.login_url())

    @app.get("/logout")
    async def logout():
        resp = RedirectResponse("/")
        clear_session(resp, config)
        return resp

    @app.get("/oauth/api/request")
    async def oauth_callback(code: str = ""):
        if not code:
            return JSONResponse({"ok": False, "error": "missing_code"}, status_code=400)
        token = await app.state.oauth.exchange_code(code)
        access_token = str(token.get("access_token") or "")
        if not access_token:
            raise AuthExpired("token response carried no access_token")
        resp = RedirectResponse("/")
        set_session(resp, config, str(token.get("instance_url") or ""), access_token)
        return resp

    @app.get("/connect")
    async def connect():
        token = await app.state.oauth.client_credentials()
        return JSONResponse(token)

    @app.get("/introspect")
    async def introspect(request: Request):
        creds = read_session(request, config)
        if not creds.access_token:
            raise AuthExpired("no session token to introspect")
        result = await app.state.oauth.introspect(creds.access_token)
        return JSONResponse(result)

    @app.get("/api/shell")
    async def api_shell(request: Request):
        return JSONResponse(shell_state(is_logged_in(request, config), app.state.catalog.parser(catalog_key(request))))

    @app.get("/api/videos")
    async def api_videos(request: Request):
        parser = await current_catalog(request)
        return JSONResponse(
            {
                "ready": parser.is_initialized(),
                "lastRefresh": app.state.catalog.last_refresh(catalog_key(request)),
                "videos": [v.to_dict() for v in parser.get_videos()],
            }
        )

    @app.post("/api/refresh")
    async def api_refresh(request: Request):
        parser = await current_catalog(request, force=True)
        return JSONResponse({"ok": True, "videos": len(parser.get_videos()), "lastRefresh": app.state.catalog.last_refresh(catalog_key(request))})

    @app.get("/api/user")
    async def api_user(request: Request):
        watched, purchased = history_services(request)
        user = await load_user_history(User(config.user_id), watched, purchased)
        return JSONResponse(user.to_dict())

    async def _save_history(request: Request, payload: Dict[str, Any], kind: str):
        resource_id = str(payload.get("resourceId") or "").strip()
        if not resource_id:
            return JSONResponse({"ok": False, "error": "missing_resource_id"}, status_code=400)
        watched, purchased = history_services(request)
        service = watched if kind == "watched" else purchased
        service.set_user_id(config.user_id)
        result = await service.save(resource_id, payload.get("timestamp"))
        return JSONResponse({"ok": True, "id": result.get("id"), "resourceId": resource_id})

    @app.post("/api/user/watched")
    async def api_user_watched(request: Request, payload: Dict[str, Any] = Body(...)):
        return await _save_history(request, payload, "watched")

    @app.post("/api/user/purchased")
    async def api_user_purchased(request: Request, payload: Dict[str, Any] = Body(...)):
        return await _save_history(request, payload, "purchased")

    @app.get("/")
    async def index():
        return index_response()

    @app.get("/{full_path:path}")
    async def spa(full_path: str):
        return index_response()

    return app


app = create_app()
