"""
Storage error types shared by all record-store backends.

Why:
    Callers must be able to tell "the store is unavailable" apart from every
    domain outcome (permission denied, duplicate grant, ...). Both backends
    raise exactly these two types so services never depend on driver errors.
"""
from __future__ import annotations


class InfrastructureError(RuntimeError):
    """Storage or transport failure. Retryable from the caller's perspective."""


class UniqueConstraintError(Exception):
    """A write violated a declared unique constraint.

    `constraint` names the violated index (e.g. `uq_student_privilege_singular`)
    when the backend can report it, else an empty string.
    """

    def __init__(self, table: str, constraint: str = "") -> None:
        super().__init__(f"unique constraint violated on {table}: {constraint or 'unknown'}")
        self.table = table
        self.constraint = constraint


__all__ = ["InfrastructureError", "UniqueConstraintError"]
