"""
Configuration and startup security checks for mamal.

Why: Privilege data decides who may act for a class. A production process must
never silently run on a throwaway in-memory store or an unencrypted database
link. This module provides a single guard that enforces minimal production
safety constraints without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

from storage.config import database_dsn, load_store_config


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - Record store settings must parse (backend name, numeric ranges).
    - The record store must be Postgres, not the in-memory store.
    - A DSN must be configured and must not explicitly disable TLS.
    """
    try:
        cfg = load_store_config()
    except ValueError as exc:
        raise SystemExit(f"Refusing to start: invalid record store configuration ({exc}).")

    env = os.getenv("MAMAL_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    if cfg.backend != "postgres":
        raise SystemExit(
            "Refusing to start: RECORD_STORE_BACKEND must be 'postgres' in production (in-memory data is lost on restart)."
        )

    dsn = database_dsn() or ""
    if not dsn:
        raise SystemExit("Refusing to start: MAMAL_DATABASE_URL/DATABASE_URL is unset in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: database DSN contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )
