"""
User directory and session store unit tests.
"""
from __future__ import annotations

import pytest

from identity_access.domain import UserRole, parse_role
from identity_access.passwords import hash_password
from identity_access.stores import SessionStore
from identity_access.users import UserDirectory


def test_create_user_normalises_email_and_role(store):
    users = UserDirectory(store)
    user = users.create_user(email="  Santri@Example.ORG ", name=" Santri ", role="MAHASISWA")
    assert user["email"] == "santri@example.org"
    assert user["name"] == "Santri"
    assert user["role"] == "mahasiswa"
    assert user["active"] is True


@pytest.mark.parametrize(
    "kwargs,code",
    [
        ({"email": "not-an-email", "name": "A", "role": "admin"}, "invalid_email"),
        ({"email": "a@example.org", "name": "  ", "role": "admin"}, "invalid_name"),
        ({"email": "a@example.org", "name": "A", "role": "teacher"}, "invalid_role"),
    ],
)
def test_create_user_validation(store, kwargs, code):
    with pytest.raises(ValueError) as excinfo:
        UserDirectory(store).create_user(**kwargs)
    assert str(excinfo.value) == code


def test_duplicate_email_is_rejected(store):
    users = UserDirectory(store)
    users.create_user(email="a@example.org", name="A", role="admin")
    with pytest.raises(ValueError) as excinfo:
        users.create_user(email="A@example.org", name="B", role="dosen")
    assert str(excinfo.value) == "duplicate_email"


def test_soft_disable_hides_user_from_active_lookups(store):
    users = UserDirectory(store)
    user = users.create_user(email="a@example.org", name="A", role="dosen")
    users.set_active(user["id"], False)
    assert users.get_active_user(user["id"]) is None
    assert users.get_user(user["id"])["active"] is False
    assert users.list_users(role="dosen") == []
    assert [u["id"] for u in users.list_users(role="dosen", active_only=False)] == [user["id"]]


def test_only_admin_may_change_role(store):
    users = UserDirectory(store)
    user = users.create_user(email="a@example.org", name="A", role="mahasiswa")
    with pytest.raises(PermissionError):
        users.change_role("dosen", user["id"], "admin")
    with pytest.raises(PermissionError):
        users.change_role("nonsense", user["id"], "admin")
    updated = users.change_role(UserRole.ADMIN, user["id"], "dosen")
    assert updated["role"] == "dosen"


def test_missing_user_raises_lookup_error(store):
    users = UserDirectory(store)
    with pytest.raises(LookupError):
        users.set_active("missing", False)
    with pytest.raises(LookupError):
        users.change_role("admin", "missing", "dosen")


def test_register_creates_active_student_without_exposing_hash(store, monkeypatch):
    monkeypatch.setenv("PASSWORD_BCRYPT_ROUNDS", "4")
    users = UserDirectory(store)
    user = users.register(email="Baru@Example.org", name="Baru", password="rahasia123")
    assert user["role"] == "mahasiswa" and user["active"] is True
    assert "password_hash" not in user
    assert "password_hash" not in users.get_user(user["id"])
    assert all("password_hash" not in u for u in users.list_users())
    assert store.find("users", id=user["id"])["password_hash"].startswith("$2")


def test_authenticate_checks_password_and_active_flag(store, monkeypatch):
    monkeypatch.setenv("PASSWORD_BCRYPT_ROUNDS", "4")
    users = UserDirectory(store)
    user = users.register(email="baru@example.org", name="Baru", password="rahasia123")
    assert users.authenticate(" BARU@example.org", "rahasia123")["id"] == user["id"]
    assert users.authenticate("baru@example.org", "rahasia124") is None
    assert users.authenticate("nobody@example.org", "rahasia123") is None
    assert users.authenticate("not-an-email", "rahasia123") is None
    users.set_active(user["id"], False)
    with pytest.raises(PermissionError) as excinfo:
        users.authenticate("baru@example.org", "rahasia123")
    assert str(excinfo.value) == "account_inactive"


@pytest.mark.parametrize("password", ["12345", "x" * 73, None])
def test_register_rejects_unusable_passwords(store, password):
    with pytest.raises(ValueError) as excinfo:
        UserDirectory(store).register(email="baru@example.org", name="Baru", password=password)
    assert str(excinfo.value) == "invalid_password"
    assert store.find_many("users") == []


def test_bcrypt_rounds_are_validated(monkeypatch):
    monkeypatch.setenv("PASSWORD_BCRYPT_ROUNDS", "2")
    with pytest.raises(ValueError):
        hash_password("rahasia123")


def test_parse_role_accepts_enum_and_strings():
    assert parse_role(UserRole.INSTRUCTOR) is UserRole.INSTRUCTOR
    assert parse_role(" Dosen ") is UserRole.INSTRUCTOR
    with pytest.raises(ValueError):
        parse_role(None)


def test_session_store_roundtrip_and_expiry():
    sessions = SessionStore()
    rec = sessions.create(user_id="u1", role="admin", name="A")
    assert sessions.get(rec.session_id).user_id == "u1"
    sessions.delete(rec.session_id)
    assert sessions.get(rec.session_id) is None
    expired = sessions.create(user_id="u2", role="dosen", ttl_seconds=-1)
    assert sessions.get(expired.session_id) is None
