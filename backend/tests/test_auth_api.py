"""
Auth API contract: registration, password login and logout.

The session cookie is marked Secure, so the plain-HTTP test client does not
send it back on its own; tests read the session id from `Set-Cookie` and set
it on the client explicitly.
"""

from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

import main  # type: ignore
from identity_access.users import UserDirectory


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture(autouse=True)
def _fast_hashing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PASSWORD_BCRYPT_ROUNDS", "4")


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


def _session_id(resp: httpx.Response) -> str:
    header = resp.headers.get("set-cookie") or ""
    prefix = f"{main.SESSION_COOKIE_NAME}="
    assert header.startswith(prefix), header
    return header[len(prefix):].split(";", 1)[0]


def _use_session(client: httpx.AsyncClient, sid: str) -> None:
    client.cookies.clear()
    client.cookies.set(main.SESSION_COOKIE_NAME, sid)


async def _register(client, email="santri.baru@example.org", password="rahasia123"):
    return await client.post(
        "/auth/register", json={"email": email, "name": "Santri Baru", "password": password}
    )


async def test_register_creates_active_student_and_session(store):
    async with _client() as client:
        resp = await _register(client, email="  Santri.Baru@Example.ORG ")
        assert resp.status_code == 201
        body = resp.json()
        assert body["role"] == "mahasiswa"
        assert body["name"] == "Santri Baru"
        cookie = resp.headers.get("set-cookie") or ""
        assert "HttpOnly" in cookie and "Secure" in cookie
        assert "samesite=lax" in cookie.lower()

        _use_session(client, _session_id(resp))
        me = await client.get("/api/me")
    assert me.status_code == 200
    assert me.json()["sub"] == body["sub"]

    user = store.find("users", id=body["sub"])
    assert user["email"] == "santri.baru@example.org"
    assert user["active"] is True
    assert user["password_hash"] and user["password_hash"] != "rahasia123"
    assert "password_hash" not in body


async def test_register_duplicate_email_conflicts(world):
    async with _client() as client:
        resp = await _register(client, email="S1@example.org")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "duplicate_email"


@pytest.mark.parametrize(
    "email, password, status",
    [
        ("not-an-email", "rahasia123", 400),
        ("santri@example.org", "12345", 422),
        ("santri@example.org", "ü" * 40, 400),
    ],
)
async def test_register_validation(email, password, status):
    async with _client() as client:
        resp = await _register(client, email=email, password=password)
    assert resp.status_code == status


async def test_login_issues_session_usable_on_me(store):
    async with _client() as client:
        await _register(client)
        client.cookies.clear()
        resp = await client.post(
            "/auth/login", json={"email": "SANTRI.BARU@example.org", "password": "rahasia123"}
        )
        assert resp.status_code == 200
        assert resp.headers.get("Cache-Control") == "private, no-store"
        _use_session(client, _session_id(resp))
        me = await client.get("/api/me")
    assert me.status_code == 200
    assert me.json()["role"] == "mahasiswa"
    assert me.json()["expires_at"]


@pytest.mark.parametrize(
    "email, password",
    [
        ("santri.baru@example.org", "salah-sandi"),
        ("unknown@example.org", "rahasia123"),
    ],
)
async def test_login_with_wrong_credentials_is_refused(email, password):
    async with _client() as client:
        await _register(client)
        resp = await client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 401
    assert resp.json() == {"error": "invalid_credentials"}
    assert "set-cookie" not in resp.headers


async def test_user_without_password_cannot_log_in(world):
    async with _client() as client:
        resp = await client.post("/auth/login", json={"email": "admin@example.org", "password": "whatever1"})
    assert resp.status_code == 401


async def test_inactive_user_cannot_log_in(store):
    async with _client() as client:
        user_id = (await _register(client)).json()["sub"]
        UserDirectory(store).set_active(user_id, False)
        resp = await client.post(
            "/auth/login", json={"email": "santri.baru@example.org", "password": "rahasia123"}
        )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "account_inactive"


async def test_logout_revokes_session_and_clears_cookie():
    async with _client() as client:
        sid = _session_id(await _register(client))
        _use_session(client, sid)
        assert (await client.get("/api/me")).status_code == 200

        resp = await client.post("/auth/logout")
        assert resp.status_code == 204
        cookie = resp.headers.get("set-cookie") or ""
        assert cookie.startswith(f"{main.SESSION_COOKIE_NAME}=")
        assert "max-age=0" in cookie.lower()

        _use_session(client, sid)
        me = await client.get("/api/me")
    assert me.status_code == 401
    assert main.SESSION_STORE.get(sid) is None


async def test_logout_without_session_is_harmless():
    async with _client() as client:
        resp = await client.post("/auth/logout")
    assert resp.status_code == 204


async def test_login_requires_origin_under_strict_csrf(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STRICT_CSRF", "true")
    async with _client() as client:
        refused = await client.post(
            "/auth/login", json={"email": "santri.baru@example.org", "password": "rahasia123"}
        )
        allowed = await client.post(
            "/auth/register",
            json={"email": "santri.baru@example.org", "name": "Santri Baru", "password": "rahasia123"},
            headers={"Origin": "http://test"},
        )
    assert refused.status_code == 403
    assert refused.json()["detail"] == "csrf_violation"
    assert allowed.status_code == 201
