"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
give every test a fresh in-memory record store and session store.
"""
import os
import sys
from pathlib import Path

import pytest

# Ensure modules in backend/ and backend/web are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
WEB_DIR = BACKEND_DIR / "web"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(WEB_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Clear env-driven toggles so every test starts from dev defaults.

    Why:
        Config and CSRF tests opt into prod semantics via environment
        variables; a leftover value would change unrelated tests.
    """
    for var in (
        "MAMAL_ENV",
        "MAMAL_TRUST_PROXY",
        "STRICT_CSRF",
        "RECORD_STORE_BACKEND",
        "RECORD_STORE_CONNECT_TIMEOUT",
        "RECORD_STORE_AUTO_MIGRATE",
        "ASSIGNMENT_MAX_ATTEMPTS",
        "MAMAL_DATABASE_URL",
        "DATABASE_URL",
        "PASSWORD_BCRYPT_ROUNDS",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _fresh_stores(_clear_env_toggles):
    """Wire a fresh in-memory record store and session store per test."""
    from storage.memory import InMemoryRecordStore
    import wiring  # type: ignore

    store = InMemoryRecordStore()
    wiring.set_store(store)
    main = sys.modules.get("main")
    if main is not None:
        from identity_access.stores import SessionStore

        main.SESSION_STORE = SessionStore()
    yield store
    wiring.set_store(None)


@pytest.fixture
def store(_fresh_stores):
    """The in-memory record store wired into the app for this test."""
    return _fresh_stores


@pytest.fixture
def world(store):
    """A seeded class with users, groups and study areas (see utils.seed)."""
    from utils.seed import seed_world

    return seed_world(store)


def _probe(dsn: str) -> bool:
    try:
        import psycopg  # type: ignore
    except Exception:
        return False
    try:
        with psycopg.connect(dsn, connect_timeout=3):  # type: ignore[arg-type]
            return True
    except Exception:
        return False


@pytest.fixture(autouse=True)
def _prune_live_db_env_when_unreachable():
    """Clear TEST_DATABASE_URL when the database it names is not reachable.

    Why:
        Optional live-DB tests key off this variable. A developer may export
        it while the local DB is down; the tests should then skip, not fail.
    """
    dsn = os.getenv("TEST_DATABASE_URL") or ""
    if dsn and not _probe(dsn):
        os.environ.pop("TEST_DATABASE_URL", None)
    yield
