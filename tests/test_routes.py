import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from conftest import INSTANCE, form

QUERY_URL = f"{INSTANCE}/services/data/v59.0/query"
TOKEN_URL = f"{INSTANCE}/services/oauth2/token"
YT_URL = "https://www.googleapis.com/youtube/v3/videos"


def token_endpoint(request):
    data = form(request)
    if data["grant_type"] == "authorization_code":
        if data["code"] != "good-code":
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "authentication failure"})
        return httpx.Response(200, json={"access_token": "user-token", "instance_url": INSTANCE, "id_token": "jwt"})
    return httpx.Response(200, json={"access_token": "app-token", "instance_url": INSTANCE, "token_type": "Bearer"})


@pytest.fixture
def client(config, router):
    router.add("POST", TOKEN_URL, token_endpoint)
    return TestClient(create_app(config, transport=router.transport()))


def set_cookies(header_values):
    return {v.split("=", 1)[0]: v for v in header_values}


def test_login_redirects_to_authorize_url(client):
    resp = client.get("/login", follow_redirects=False)
    assert resp.status_code in (302, 307)
    location = resp.headers["location"]
    assert location.startswith(f"{INSTANCE}/services/oauth2/authorize?")
    assert "client_id=session-client" in location
    assert "response_type=code" in location
    assert "state=some_state" in location


def test_logout_clears_both_cookies(client):
    resp = client.get("/logout", follow_redirects=False)
    assert resp.headers["location"] == "/"
    cookies = set_cookies(resp.headers.get_list("set-cookie"))
    for name in ("instanceUrl", "accessToken"):
        assert cookies[name].startswith(f'{name}="";') or cookies[name].startswith(f"{name}=;")
        assert "01 Jan 1970" in cookies[name]


def test_oauth_callback_sets_session_cookies(client, router):
    resp = client.get("/oauth/api/request", params={"code": "good-code"}, follow_redirects=False)
    assert resp.headers["location"] == "/"
    cookies = set_cookies(resp.headers.get_list("set-cookie"))
    assert "user-token" in cookies["accessToken"]
    assert "Max-Age=86400" in cookies["accessToken"]
    assert "HttpOnly" in cookies["accessToken"]
    assert form(router.calls[0])["code"] == "good-code"


def test_oauth_callback_with_bad_code_is_401(client):
    resp = client.get("/oauth/api/request", params={"code": "stale"}, follow_redirects=False)
    assert resp.status_code == 401
    assert resp.json() == {"ok": False, "error": "auth_expired", "detail": "authentication failure"}


def test_oauth_callback_without_code_is_400(client):
    resp = client.get("/oauth/api/request", follow_redirects=False)
    assert resp.status_code == 400


def test_connect_returns_application_token(client):
    resp = client.get("/connect")
    assert resp.status_code == 200
    assert resp.json()["access_token"] == "app-token"


def test_introspect_requires_session(client, router):
    assert client.get("/introspect").status_code == 401
    router.add("POST", f"{INSTANCE}/services/oauth2/introspect", lambda r: httpx.Response(200, json={"active": form(r)["token"] == "user-token"}))
    client.cookies.set("accessToken", "user-token")
    assert client.get("/introspect").json() == {"active": True}


def test_shell_menu_follows_login_state(client):
    shell = client.get("/api/shell").json()
    assert shell["loggedIn"] is False
    assert shell["ready"] is False
    assert shell["splash"]
    assert [i["label"] for i in shell["menu"]] == ["home", "settings", "login"]

    client.cookies.set("accessToken", "user-token")
    shell = client.get("/api/shell").json()
    assert shell["loggedIn"] is True
    assert shell["menu"][-1] == {"url": "/logout", "label": "logout", "hidden": True}


def test_videos_build_catalog_then_shell_is_ready(client, router):
    router.add("GET", QUERY_URL, {"done": True, "records": [{"Id": "a1", "Name": "Vid A"}]})
    router.add("GET", YT_URL, {"items": [{"id": "a1", "snippet": {"thumbnails": {"default": {"url": "a1.jpg"}}}}]})

    data = client.get("/api/videos").json()
    assert data["ready"] is True
    assert data["videos"][0]["name"] == "Vid A"
    assert data["videos"][0]["thumbnail"] == {"default": {"url": "a1.jpg"}}
    assert data["videos"][0]["duration"] is None
    assert router.calls_to("/services/data/v59.0/query")[0].headers["authorization"] == "Bearer app-token"

    shell = client.get("/api/shell").json()
    assert shell["ready"] is True
    assert shell["splash"] is None


def test_videos_report_upstream_failure(client, router):
    router.add("GET", QUERY_URL, lambda r: httpx.Response(500, text="boom"))
    resp = client.get("/api/videos")
    assert resp.status_code == 502
    assert resp.json()["error"] == "upstream_unavailable"


def test_videos_fall_back_to_session_credentials(config, router):
    config.application_client_id = ""
    router.add("GET", QUERY_URL, {"records": []})
    client = TestClient(create_app(config, transport=router.transport()))
    assert client.get("/api/videos").status_code == 401

    client.cookies.set("instanceUrl", INSTANCE)
    client.cookies.set("accessToken", "user-token")
    assert client.get("/api/videos").json()["videos"] == []
    assert router.calls[-1].headers["authorization"] == "Bearer user-token"


def test_override_applies_only_outside_production(config, router):
    config.allow_session_override = True
    config.session_instance_url_override = INSTANCE
    config.session_access_token_override = "override-token"
    assert TestClient(create_app(config, transport=router.transport())).get("/api/shell").json()["loggedIn"] is True

    config.app_env = "production"
    assert TestClient(create_app(config, transport=router.transport())).get("/api/shell").json()["loggedIn"] is False


def test_user_history_and_save(client, router):
    def query(request):
        if "FROM Watched__c" in request.url.params["q"]:
            return httpx.Response(200, json={"records": [{"ResourceID__c": "a1", "Timestamp__c": 30}]})
        return httpx.Response(200, json={"records": []})

    router.add("GET", QUERY_URL, query)
    router.add("POST", f"{INSTANCE}/services/data/v59.0/sobjects/Purchased__c", lambda r: httpx.Response(201, json={"id": "p1"}))

    assert client.get("/api/user").status_code == 401

    client.cookies.set("instanceUrl", INSTANCE)
    client.cookies.set("accessToken", "user-token")
    user = client.get("/api/user").json()
    assert user == {"userId": "005USER", "watched": [{"resourceId": "a1", "timestamp": 30}], "purchased": []}

    resp = client.post("/api/user/purchased", json={"resourceId": "a1"})
    assert resp.json() == {"ok": True, "id": "p1", "resourceId": "a1"}
    assert client.post("/api/user/watched", json={}).status_code == 400


def test_index_and_catch_all_serve_shell(client):
    assert "portal shell" in client.get("/").text
    assert "portal shell" in client.get("/videos/a1").text
    assert client.get("/health").json()["ok"] is True


def test_session_catalog_is_not_served_to_other_callers(config, router):
    config.application_client_id = ""

    def query(request):
        owner = request.headers["authorization"].removeprefix("Bearer ")
        return httpx.Response(200, json={"records": [{"Id": f"{owner}-1", "Name": f"Private to {owner}"}]})

    router.add("GET", QUERY_URL, query)
    app = create_app(config, transport=router.transport())

    alice = TestClient(app, cookies={"instanceUrl": INSTANCE, "accessToken": "alice"})
    assert [v["name"] for v in alice.get("/api/videos").json()["videos"]] == ["Private to alice"]

    anonymous = TestClient(app)
    resp = anonymous.get("/api/videos")
    assert resp.status_code == 401
    assert resp.json()["error"] == "auth_expired"
    assert anonymous.get("/api/shell").json()["ready"] is False

    bob = TestClient(app, cookies={"instanceUrl": INSTANCE, "accessToken": "bob"})
    assert [v["name"] for v in bob.get("/api/videos").json()["videos"]] == ["Private to bob"]
    assert len(router.calls_to("/services/data/v59.0/query")) == 2


def test_fresh_catalog_reads_skip_the_token_endpoint(config, router):
    tokens = {"status": 200}

    def token(request):
        if tokens["status"] != 200:
            return httpx.Response(tokens["status"])
        return token_endpoint(request)

    router.add("POST", TOKEN_URL, token)
    router.add("GET", QUERY_URL, {"records": [{"Id": "a1", "Name": "Vid A"}]})
    router.add("GET", YT_URL, {"items": []})
    client = TestClient(create_app(config, transport=router.transport()))

    for _ in range(3):
        assert client.get("/api/videos").status_code == 200
    assert len(router.calls_to("/services/oauth2/token")) == 1
    assert len(router.calls_to("/services/data/v59.0/query")) == 1

    tokens["status"] = 503
    resp = client.get("/api/videos")
    assert resp.status_code == 200
    assert resp.json()["videos"][0]["name"] == "Vid A"


def test_refresh_rebuilds_fresh_catalog(client, router):
    router.add("GET", QUERY_URL, {"records": [{"Id": "a1"}, {"Id": "a2"}]})
    router.add("GET", YT_URL, {"items": []})

    assert client.get("/api/videos").status_code == 200
    resp = client.post("/api/refresh")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert resp.json()["videos"] == 2
    assert resp.json()["lastRefresh"] > 0
    assert len(router.calls_to("/services/data/v59.0/query")) == 2


def test_refresh_requires_credentials(config, router):
    config.application_client_id = ""
    client = TestClient(create_app(config, transport=router.transport()))
    assert client.post("/api/refresh").status_code == 401
    assert router.calls == []
