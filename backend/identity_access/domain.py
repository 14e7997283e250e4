"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed global roles to avoid drift between services and web layer.
- Role names follow the institution's vocabulary (admin, dosen, mahasiswa).
"""

from __future__ import annotations

from enum import Enum

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"admin", "dosen", "mahasiswa"})


class UserRole(str, Enum):
    ADMIN = "admin"
    INSTRUCTOR = "dosen"
    STUDENT = "mahasiswa"


def parse_role(value: object) -> UserRole:
    """Return the canonical role for `value`; raises ValueError("invalid_role")."""
    if isinstance(value, UserRole):
        return value
    if isinstance(value, str):
        try:
            return UserRole(value.strip().lower())
        except ValueError:
            pass
    raise ValueError("invalid_role")


__all__ = ["ALLOWED_ROLES", "UserRole", "parse_role"]
