"""
Record store configuration and backend selection.

Intent:
    Read the environment once, validate it and build the record store the
    services share. Keeps DSN handling and backend choice out of the web layer.

Behavior:
    - `RECORD_STORE_BACKEND` selects "memory" (default in dev) or "postgres".
    - DSN: `MAMAL_DATABASE_URL`, falling back to `DATABASE_URL`.
    - `RECORD_STORE_CONNECT_TIMEOUT` (1..60 seconds, default 5).
    - `RECORD_STORE_AUTO_MIGRATE` (true/false) applies the schema on startup.
    - `ASSIGNMENT_MAX_ATTEMPTS` (1..10, default 3) bounds retries when a
      concurrent assignment trips a unique index.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Optional

from .memory import InMemoryRecordStore
from .ports import RecordStoreProtocol

_log = logging.getLogger("mamal.storage")

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class StoreConfig:
    backend: str  # "memory" | "postgres"
    dsn: Optional[str]
    connect_timeout_seconds: int
    auto_migrate: bool
    assignment_max_attempts: int


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < low or value > high:
        raise ValueError(f"{name} out of range ({low}..{high}), got: {value}")
    return value


def database_dsn() -> Optional[str]:
    for name in ("MAMAL_DATABASE_URL", "DATABASE_URL"):
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def load_store_config() -> StoreConfig:
    """Parse and validate record store settings from environment variables."""
    backend = (os.getenv("RECORD_STORE_BACKEND") or "memory").strip().lower()
    if backend not in {"memory", "postgres"}:
        raise ValueError("RECORD_STORE_BACKEND must be 'memory' or 'postgres'")
    return StoreConfig(
        backend=backend,
        dsn=database_dsn(),
        connect_timeout_seconds=_int_env("RECORD_STORE_CONNECT_TIMEOUT", 5, low=1, high=60),
        auto_migrate=(os.getenv("RECORD_STORE_AUTO_MIGRATE") or "").strip().lower() in _TRUE,
        assignment_max_attempts=_int_env("ASSIGNMENT_MAX_ATTEMPTS", 3, low=1, high=10),
    )


def build_record_store(config: Optional[StoreConfig] = None) -> RecordStoreProtocol:
    """Return the configured store, falling back to memory when Postgres is unusable.

    The fallback only happens when the Postgres store cannot be constructed
    (driver missing, no DSN). Prod-like environments refuse that situation
    earlier in `web.config.ensure_secure_config_on_startup`.
    """
    cfg = config or load_store_config()
    if cfg.backend == "postgres":
        try:
            from .postgres import PostgresRecordStore

            store = PostgresRecordStore(cfg.dsn or "", connect_timeout=cfg.connect_timeout_seconds)
        except RuntimeError as exc:
            _log.warning("Postgres record store unavailable, using in-memory store: %s", exc)
            return InMemoryRecordStore()
        if cfg.auto_migrate:
            from .schema import ensure_schema

            ensure_schema(cfg.dsn or "")
        _log.info("record store backend=postgres")
        return store
    _log.info("record store backend=memory")
    return InMemoryRecordStore()


__all__ = ["StoreConfig", "load_store_config", "build_record_store", "database_dsn"]
