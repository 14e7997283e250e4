"""
Process-wide wiring of the record store and the services built on it.

Why:
    The host process owns the store lifecycle; the core only receives it by
    injection. Routes resolve services through these accessors so tests can
    swap the store with `set_store` and get fresh services over it.
"""
from __future__ import annotations

from typing import Optional

from authorization.engine import AuthorizationEngine
from authorization.queries import PrivilegeQueries
from authorization.services.assignments import PrivilegeAssignmentService
from classroom.services.memorization import MemorizationService
from classroom.services.records import ClassroomService
from identity_access.users import UserDirectory
from storage.config import StoreConfig, build_record_store, load_store_config
from storage.ports import RecordStoreProtocol

_STORE: Optional[RecordStoreProtocol] = None
_CONFIG: Optional[StoreConfig] = None


def _get_config() -> StoreConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_store_config()
    return _CONFIG


def get_store() -> RecordStoreProtocol:
    """Return the shared store, building it from the environment on first use."""
    global _STORE
    if _STORE is None:
        _STORE = build_record_store(_get_config())
    return _STORE


def set_store(store: Optional[RecordStoreProtocol]) -> None:
    """Allow tests to swap the record store (None rebuilds from the environment)."""
    global _STORE, _CONFIG
    _STORE = store
    _CONFIG = None


def get_users() -> UserDirectory:
    return UserDirectory(get_store())


def get_classroom() -> ClassroomService:
    return ClassroomService(get_store())


def get_memorization() -> MemorizationService:
    return MemorizationService(get_store())


def get_engine() -> AuthorizationEngine:
    return AuthorizationEngine(get_store())


def get_assignments() -> PrivilegeAssignmentService:
    store = get_store()
    return PrivilegeAssignmentService(
        store,
        AuthorizationEngine(store),
        max_attempts=_get_config().assignment_max_attempts,
    )


def get_queries() -> PrivilegeQueries:
    return PrivilegeQueries(get_store())


__all__ = [
    "get_assignments",
    "get_classroom",
    "get_engine",
    "get_memorization",
    "get_queries",
    "get_store",
    "get_users",
    "set_store",
]
