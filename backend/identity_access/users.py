"""User directory service (Identity Store).

Why:
    Keeps user records (global role, active flag) behind the record-store port
    so web adapters stay thin and the authorization core can rely on a single
    source of truth for "who is this and are they still allowed in".

Behavior:
    - E-mail addresses are unique and stored lower-case.
    - Users are never hard-deleted; `set_active(False)` soft-disables them.
    - The global role is fixed at creation; only an admin may change it.
    - Self-registration always creates an active `mahasiswa`.
    - The password hash never leaves this module; returned records omit it.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import List, Optional

from storage.errors import UniqueConstraintError
from storage.ports import RecordStoreProtocol

from .domain import UserRole, parse_role
from .passwords import hash_password, verify_password

logger = logging.getLogger("mamal.identity_access")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("invalid_email")
    email = value.strip().lower()
    if not email or len(email) > 320 or not _EMAIL_RE.match(email):
        raise ValueError("invalid_email")
    return email


def _normalize_name(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("invalid_name")
    name = value.strip()
    if not name or len(name) > 200:
        raise ValueError("invalid_name")
    return name


def _public(user: Optional[dict]) -> Optional[dict]:
    if user is None:
        return None
    out = dict(user)
    out.pop("password_hash", None)
    return out


@dataclass
class UserDirectory:
    """Use cases for user records (framework-independent)."""

    store: RecordStoreProtocol

    def create_user(
        self,
        *,
        email: object,
        name: object,
        role: object,
        active: bool = True,
        password: object = None,
    ) -> dict:
        """Create a user; without a password the account cannot log in locally."""
        normalized_email = _normalize_email(email)
        display_name = _normalize_name(name)
        user_role = parse_role(role)
        password_hash = hash_password(password) if password is not None else None
        try:
            user = self.store.create(
                "users",
                {
                    "email": normalized_email,
                    "name": display_name,
                    "role": user_role.value,
                    "active": bool(active),
                    "password_hash": password_hash,
                },
            )
        except UniqueConstraintError:
            raise ValueError("duplicate_email")
        logger.info("user created id=%s role=%s", user["id"][-6:], user_role.value)
        return _public(user) or {}

    def register(self, *, email: object, name: object, password: object) -> dict:
        """Self-service sign-up: an active student account with a password."""
        if password is None:
            raise ValueError("invalid_password")
        return self.create_user(email=email, name=name, role=UserRole.STUDENT, password=password)

    def authenticate(self, email: object, password: object) -> Optional[dict]:
        """Return the user matching the credentials, or None.

        Behavior:
            - Unknown e-mail and wrong password look the same to the caller.
            - Correct credentials of a deactivated account raise
              PermissionError("account_inactive").
        """
        try:
            normalized_email = _normalize_email(email)
        except ValueError:
            return None
        user = self.store.find("users", email=normalized_email)
        if not user or not verify_password(password, user.get("password_hash")):
            logger.info("login refused reason=invalid_credentials")
            return None
        if not user.get("active"):
            logger.info("login refused id=%s reason=account_inactive", user["id"][-6:])
            raise PermissionError("account_inactive")
        return _public(user)

    def get_user(self, user_id: str) -> Optional[dict]:
        if not user_id:
            return None
        return _public(self.store.find("users", id=user_id))

    def get_active_user(self, user_id: str) -> Optional[dict]:
        """Return the user only while the account is active."""
        user = self.get_user(user_id)
        if not user or not user.get("active"):
            return None
        return user

    def list_users(self, *, role: object = None, active_only: bool = True) -> List[dict]:
        filters: dict = {}
        if role is not None:
            filters["role"] = parse_role(role).value
        if active_only:
            filters["active"] = True
        users = [_public(u) or {} for u in self.store.find_many("users", **filters)]
        return sorted(users, key=lambda u: (u.get("name") or "").lower())

    def set_active(self, user_id: str, active: bool) -> dict:
        if not isinstance(active, bool):
            raise ValueError("invalid_active")
        if not self.store.update_many("users", {"active": active}, id=user_id):
            raise LookupError("user_not_found")
        logger.info("user active changed id=%s active=%s", user_id[-6:], active)
        return self.get_user(user_id) or {}

    def change_role(self, actor_role: object, user_id: str, role: object) -> dict:
        """Change a user's global role.

        Permissions:
            Admin only; any other actor raises PermissionError("forbidden").
        """
        try:
            is_admin = parse_role(actor_role) is UserRole.ADMIN
        except ValueError:
            is_admin = False
        if not is_admin:
            raise PermissionError("forbidden")
        new_role = parse_role(role)
        if not self.store.update_many("users", {"role": new_role.value}, id=user_id):
            raise LookupError("user_not_found")
        logger.info("user role changed id=%s role=%s", user_id[-6:], new_role.value)
        return self.get_user(user_id) or {}


__all__ = ["UserDirectory"]
