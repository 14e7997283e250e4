"""
Authentication routes: local registration, login and logout.

Why:
    Keep session creation in a dedicated router. A successful register or
    login creates a server-side session and sets only its opaque id in the
    `mamal_session` cookie; the auth middleware resolves it on later requests.

Notes:
    - These paths are public in the auth middleware.
    - Self-registration always creates an active `mahasiswa` account.
    - Unknown e-mail and wrong password both answer 401 invalid_credentials.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from identity_access.passwords import MIN_PASSWORD_LENGTH
from wiring import get_users
from .security import _csrf_guard, _private_error

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("mamal.web.auth")

SESSION_TTL_SECONDS = 3600


class RegisterPayload(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=72)


class LoginPayload(BaseModel):
    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=200)


def _main_module():
    # Late import: main owns the session store and cookie name.
    import main

    return main


def _cookie_opts() -> dict:
    """Hardened session cookie flags, identical in every environment."""
    return {"httponly": True, "secure": True, "samesite": "lax", "path": "/"}


def _session_response(user: dict, *, status_code: int) -> JSONResponse:
    mod = _main_module()
    rec = mod.SESSION_STORE.create(
        user_id=user["id"], role=user.get("role") or "", name=user.get("name") or "", ttl_seconds=SESSION_TTL_SECONDS
    )
    resp = JSONResponse(
        {"sub": user["id"], "name": user.get("name") or "", "role": user.get("role")},
        status_code=status_code,
        headers={"Cache-Control": "private, no-store"},
    )
    resp.set_cookie(key=mod.SESSION_COOKIE_NAME, value=rec.session_id, max_age=SESSION_TTL_SECONDS, **_cookie_opts())
    return resp


@auth_router.post("/auth/register")
async def auth_register(request: Request, payload: RegisterPayload):
    """
    Create an active student account and log it in.

    Behavior:
        - 201 with {sub, name, role} and a fresh session cookie
        - 400 invalid_email | invalid_name | invalid_password
        - 409 duplicate_email
    Permissions:
        Public.
    """
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    try:
        user = get_users().register(email=payload.email, name=payload.name, password=payload.password)
    except ValueError as exc:
        detail = str(exc) or "bad_request"
        if detail.startswith("duplicate_"):
            return _private_error({"error": "conflict", "detail": detail}, status_code=409)
        return _private_error({"error": "bad_request", "detail": detail}, status_code=400)
    logger.info("user registered id=%s", user["id"][-6:])
    return _session_response(user, status_code=201)


@auth_router.post("/auth/login")
async def auth_login(request: Request, payload: LoginPayload):
    """
    Verify e-mail and password and start a session.

    Behavior:
        - 200 with {sub, name, role} and a fresh session cookie
        - 401 invalid_credentials
        - 403 account_inactive when the credentials match a deactivated user
    Permissions:
        Public.
    """
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    try:
        user = get_users().authenticate(payload.email, payload.password)
    except PermissionError as exc:
        return _private_error({"error": "forbidden", "detail": str(exc)}, status_code=403)
    if not user:
        return _private_error({"error": "invalid_credentials"}, status_code=401)
    logger.info("user logged in id=%s", user["id"][-6:])
    return _session_response(user, status_code=200)


@auth_router.post("/auth/logout")
async def auth_logout(request: Request):
    """
    Delete the server-side session and expire the cookie (204, idempotent).

    Permissions:
        Public; without a session this only clears the cookie.
    """
    csrf = _csrf_guard(request)
    if csrf:
        return csrf
    mod = _main_module()
    sid = request.cookies.get(mod.SESSION_COOKIE_NAME)
    if sid:
        mod.SESSION_STORE.delete(sid)
    resp = Response(status_code=204, headers={"Cache-Control": "private, no-store"})
    resp.set_cookie(key=mod.SESSION_COOKIE_NAME, value="", max_age=0, expires=0, **_cookie_opts())
    return resp
