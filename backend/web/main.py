"mamal class management"
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from identity_access.stores import SessionStore
from storage.errors import InfrastructureError


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via MAMAL_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("MAMAL_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


try:
    from dotenv import load_dotenv
    if _should_load_dotenv():
        load_dotenv()
except ImportError:
    pass

# Minimal production safety checks (fail-fast on insecure config)
import config as _cfg  # noqa: E402

_cfg.ensure_secure_config_on_startup()

from routes.admin import admin_router  # noqa: E402
from routes.auth import auth_router  # noqa: E402
from routes.memorization import memorization_router  # noqa: E402
from routes.privileges import privileges_router  # noqa: E402
from wiring import get_users  # noqa: E402

logger = logging.getLogger("mamal.web")
SESSION_COOKIE_NAME = "mamal_session"
SESSION_STORE = SessionStore()

app = FastAPI(title="mamal", description="Class management with per-class privileges", version="0.1.0")

_NO_STORE = {"Cache-Control": "private, no-store"}


def _is_public_path(path: str) -> bool:
    return path in ("/health", "/favicon.ico", "/auth/register", "/auth/login", "/auth/logout")


def _unauthenticated() -> JSONResponse:
    return JSONResponse({"error": "unauthenticated"}, status_code=401, headers={**_NO_STORE, "Vary": "Origin"})


def _unavailable() -> JSONResponse:
    return JSONResponse({"error": "unavailable"}, status_code=503, headers=_NO_STORE)


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Resolve the session cookie to a live user record.

    The session only carries the user id. Role and active flag are re-read
    from the identity store on every request, so a deactivated user loses
    access immediately and a role change applies to the next request.
    """
    if _is_public_path(request.url.path):
        return await call_next(request)

    sid = request.cookies.get(SESSION_COOKIE_NAME)
    rec = SESSION_STORE.get(sid) if sid else None
    if not rec:
        return _unauthenticated()
    try:
        user = get_users().get_active_user(rec.user_id)
    except InfrastructureError as exc:
        logger.warning("user lookup failed: %s", exc.__class__.__name__)
        return _unavailable()
    if not user:
        return _unauthenticated()

    # Expose minimal, read-only user context for downstream handlers.
    request.state.user = {"sub": user["id"], "name": user.get("name") or "", "role": user.get("role")}
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.exception_handler(InfrastructureError)
async def infrastructure_error_handler(request: Request, exc: InfrastructureError):
    # Retryable for the client; never reported as a permission result.
    logger.warning("record store unavailable path=%s err=%s", request.url.path, exc.__class__.__name__)
    return _unavailable()


app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(privileges_router)
app.include_router(memorization_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    return JSONResponse({"status": "healthy"}, headers=_NO_STORE)


@app.get("/api/me")
async def get_me(request: Request):
    user = getattr(request.state, "user", None) or {}
    sid = request.cookies.get(SESSION_COOKIE_NAME) or ""
    rec = SESSION_STORE.get(sid)
    exp_iso = (
        datetime.fromtimestamp(rec.expires_at, tz=timezone.utc).isoformat(timespec="seconds")
        if rec and rec.expires_at
        else None
    )
    return JSONResponse(
        {
            "sub": user.get("sub"),
            "role": user.get("role"),
            "name": user.get("name", ""),
            "expires_at": exp_iso,
        },
        headers=_NO_STORE,
    )
