import json
from typing import Callable, Dict, List
from urllib.parse import parse_qs

import httpx
import pytest

from app.config import Config


INSTANCE = "https://crm.example.com"


class UpstreamRouter:
    """Route requests to handlers by (method, host + path); record every call."""

    def __init__(self) -> None:
        self.routes: Dict[tuple, Callable[[httpx.Request], httpx.Response]] = {}
        self.calls: List[httpx.Request] = []

    def add(self, method: str, url: str, handler) -> None:
        if not callable(handler):
            payload = handler
            handler = lambda request: httpx.Response(200, json=payload)
        self.routes[(method.upper(), url)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "no route", "url": str(request.url)})
        return handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.url.path == path]


def form(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def body(request: httpx.Request) -> dict:
    return json.loads(request.content.decode())


@pytest.fixture
def router() -> UpstreamRouter:
    return UpstreamRouter()


@pytest.fixture
def config(tmp_path) -> Config:
    (tmp_path / "index.html").write_text("<html><body>portal shell</body></html>", encoding="utf-8")
    return Config(
        app_env="development",
        session_url=f"{INSTANCE}/services/oauth2/authorize",
        session_token_url=f"{INSTANCE}/services/oauth2/token",
        session_instance_url=INSTANCE,
        session_client_id="session-client",
        session_client_secret="session-secret",
        session_callback_url="http://localhost/oauth/api/request",
        application_token_endpoint=f"{INSTANCE}/services/oauth2/token",
        application_client_id="app-client",
        application_client_secret="app-secret",
        api_version="v59.0",
        user_id="005USER",
        youtube_api_key="yt-key",
        default_thumbnail="/static/default.png",
        cookie_secure=False,
        static_dir=str(tmp_path),
    )
