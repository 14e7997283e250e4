"""
Password hashing for local accounts (bcrypt).

Only the bcrypt hash is stored. bcrypt ignores input past 72 bytes, so longer
passwords are refused instead of being silently truncated.
"""
from __future__ import annotations

import os
from typing import Optional

import bcrypt

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72
_DEFAULT_ROUNDS = 12


def _rounds() -> int:
    raw = (os.getenv("PASSWORD_BCRYPT_ROUNDS") or "").strip()
    if not raw:
        return _DEFAULT_ROUNDS
    try:
        rounds = int(raw)
    except ValueError as exc:
        raise ValueError("invalid PASSWORD_BCRYPT_ROUNDS") from exc
    if rounds < 4 or rounds > 16:
        raise ValueError("PASSWORD_BCRYPT_ROUNDS out of range (4-16)")
    return rounds


def _password_bytes(password: object) -> bytes:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError("invalid_password")
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError("invalid_password")
    return encoded


def hash_password(password: object) -> str:
    """Return the bcrypt hash of a password (raises ValueError("invalid_password"))."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=_rounds())).decode("utf-8")


def verify_password(password: object, password_hash: Optional[str]) -> bool:
    if not password_hash or not isinstance(password, str):
        return False
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


__all__ = ["MIN_PASSWORD_LENGTH", "hash_password", "verify_password"]
