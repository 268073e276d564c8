#    Copyright 2025 FAO
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.
#
#    Author: Carlo Cancellieri (ccancellieri@gmail.com)
#    Company: FAO, Viale delle Terme di Caracalla, 00100 Rome, Italy
#    Contact: copyright@fao.org - http://fao.org/contact-us/terms/en/

import asyncio
from typing import Optional

import httpx
import pytest
from fastapi import FastAPI, Request, Depends
from starlette.testclient import TestClient
from starlette_session import SessionMiddleware

from session_sharing.fastapi_middleware.fastapi_bridge import SessionSharingMiddleware
from session_sharing.fastapi_middleware.routes import create_router
from session_sharing.fastapi_middleware.tools import get_current_uid, require_session
from session_sharing.shared.gatekeeper import build_gatekeeper
from session_sharing.shared.jwt_utils import sign_assertion, verify_assertion
from session_sharing.shared.settings import SETTINGS_KEY
from session_sharing.shared.stores import InMemorySettingsStore, InMemoryUserStore

SECRET = "s3cr3t"


def exchange_transport(claims):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"token": sign_assertion(claims, SECRET)})

    return httpx.MockTransport(handler)


def build_app(settings=None, claims=None, with_session=True, debug=False):
    stored = {"secret": SECRET, "exchangeTokenEndpoint": "https://idp.example.com/exchange"}
    stored.update(settings or {})
    user_store = InMemoryUserStore()
    gatekeeper = build_gatekeeper(
        InMemorySettingsStore({SETTINGS_KEY: stored}),
        user_store,
        transport=exchange_transport(claims or {"id": 42, "email": "a@x.com"}),
    )
    asyncio.run(gatekeeper.loader.reload())

    app = FastAPI()
    app.add_middleware(SessionSharingMiddleware, gatekeeper=gatekeeper)
    if with_session:
        app.add_middleware(SessionMiddleware, secret_key="test-secret", cookie_name="session")
    app.include_router(create_router(gatekeeper.loader, debug=debug))

    @app.get("/")
    async def home(uid: Optional[int] = Depends(get_current_uid)):
        return {"uid": uid}

    @app.get("/account")
    async def account(uid: int = Depends(require_session)):
        return {"uid": uid}

    @app.get("/logout")
    async def logout(request: Request):
        request.session.pop("uid", None)
        return {"message": "bye"}

    @app.get("/api/ping")
    async def ping(uid: Optional[int] = Depends(get_current_uid)):
        return {"uid": uid}

    return TestClient(app), user_store, gatekeeper


def test_guest_without_cookie():
    client, _, _ = build_app()
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"uid": None}


def test_require_session_rejects_guest():
    client, _, _ = build_app()
    response = client.get("/account")
    assert response.status_code == 401


def test_cookie_establishes_session_end_to_end():
    client, user_store, _ = build_app()
    client.cookies.set("token", "raw-refresh-token")

    response = client.get("/account")
    assert response.status_code == 200
    assert response.json() == {"uid": 1}
    assert user_store.external_ids["appId"] == {"42": 1}
    assert user_store.users[1]["email"] == "a@x.com"

    # Trusted session: no second account, same uid
    response = client.get("/")
    assert response.json() == {"uid": 1}
    assert len(user_store.users) == 1


def test_guest_redirect_carries_return_url():
    client, _, _ = build_app({
        "url": "https://forum.example.com",
        "guestRedirect": "https://idp.example.com/login?next=%1",
    })

    response = client.get("/category/5", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == (
        "https://idp.example.com/login?next=https%3A%2F%2Fforum.example.com%2Fcategory%2F5"
    )


def test_excluded_route_is_not_bridged():
    client, user_store, _ = build_app({"guestRedirect": "https://idp.example.com/login"})
    client.cookies.set("token", "raw-refresh-token")

    response = client.get("/api/ping")

    assert response.status_code == 200
    assert response.json() == {"uid": None}
    assert user_store.users == {}


def test_logout_is_not_undone_by_stale_cookie():
    client, user_store, _ = build_app({
        "behaviour": "revalidate",
        "cookieDomain": "example.com",
        "logoutEndpoint": "https://idp.example.com/logout",
    })
    client.cookies.set("token", "raw-refresh-token")
    assert client.get("/").json() == {"uid": 1}

    response = client.get("/logout")
    assert response.status_code == 200
    set_cookie = response.headers.get_list("set-cookie")
    assert any(c.startswith("token=") and "Domain=example.com" in c for c in set_cookie)

    client.cookies.set("token", "raw-refresh-token")
    response = client.get("/", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://idp.example.com/logout"
    assert len(user_store.users) == 1


def test_invalid_assertion_downgrades_to_guest():
    client, user_store, _ = build_app(claims={"id": 42})
    client.cookies.set("token", "raw-refresh-token")

    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"uid": None}
    assert user_store.users == {}


def test_requires_session_middleware():
    client, _, _ = build_app(with_session=False)
    with pytest.raises(RuntimeError, match="requires SessionMiddleware"):
        client.get("/")


def test_admin_api_masks_secret():
    client, _, _ = build_app()
    response = client.get("/api/admin/plugins/session-sharing")

    assert response.status_code == 200
    body = response.json()
    assert body["ready"] is True
    assert body["settings"]["secret"] == "********"
    assert body["settings"]["cookieName"] == "token"


def test_admin_page_renders():
    client, _, _ = build_app()
    response = client.get("/admin/plugins/session-sharing")
    assert response.status_code == 200
    assert "Session Sharing" in response.text


def test_admin_reload():
    client, _, gatekeeper = build_app()
    asyncio.run(gatekeeper.loader.store.set(SETTINGS_KEY, {}))

    response = client.post("/api/admin/plugins/session-sharing/reload")

    assert response.json() == {"ready": False}
    assert gatekeeper.loader.ready is False


def test_debug_route_only_when_enabled():
    client, _, _ = build_app()
    assert client.get("/debug/session").status_code == 404


def test_debug_route_sets_signed_cookie():
    client, _, _ = build_app({"payload:username": "username"}, debug=True)

    response = client.get("/debug/session")

    assert response.status_code == 200
    set_cookie = response.headers["set-cookie"]
    assert "HttpOnly" in set_cookie
    assert "Max-Age=1814400" in set_cookie
    claims = verify_assertion(response.cookies["token"], SECRET, ["HS256"])
    assert claims == {"id": 1, "email": "testUser@example.org", "username": "testUser"}


def test_logout_clears_bridge_cookie_for_trusted_session():
    client, _, _ = build_app({"cookieDomain": "example.com"})
    client.cookies.set("token", "raw-refresh-token")
    assert client.get("/").json() == {"uid": 1}

    response = client.get("/logout")

    assert response.status_code == 200
    set_cookie = response.headers.get_list("set-cookie")
    assert any(c.startswith("token=") and "Domain=example.com" in c for c in set_cookie)
