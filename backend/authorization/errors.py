"""
Error taxonomy and the discriminated result of privilege mutations.

Mutations never raise for the domain errors below; they return an
`AssignmentResult` carrying the kind. Storage failures are not part of this
taxonomy: they raise `storage.errors.InfrastructureError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_ENROLLED = "not_enrolled"
    DUPLICATE_GRANT = "duplicate_grant"
    PROTECTED_GRANT = "protected_grant"
    MISSING_SCOPE = "missing_scope"
    INVALID_ROLE_KIND = "invalid_role_kind"
    # Never returned in a result; storage failures raise and map to HTTP 503.
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True)
class AssignmentResult:
    ok: bool
    error: Optional[ErrorKind] = None
    privilege: Optional[dict] = None

    @classmethod
    def success(cls, privilege: Optional[dict] = None) -> "AssignmentResult":
        return cls(ok=True, privilege=privilege)

    @classmethod
    def failure(cls, kind: ErrorKind) -> "AssignmentResult":
        return cls(ok=False, error=kind)


__all__ = ["AssignmentResult", "ErrorKind"]
