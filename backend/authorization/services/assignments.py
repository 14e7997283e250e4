"""Privilege assignment protocol (the only writer of privilege rows).

Why:
    Replacing the holder of a singular role means deleting one row and inserting
    another. Both steps run in one store transaction so no reader ever sees a
    class with two secretaries, or with none mid-reassignment.

Behavior:
    - Every mutation returns an `AssignmentResult`; domain refusals
      (forbidden, not enrolled, missing scope, ...) never raise.
    - Storage failures raise `InfrastructureError`.
    - Unique indexes in the store are the final backstop. A reassignment that
      loses a race against a concurrent one hits `UniqueConstraintError` and is
      retried (bounded by `max_attempts`) so the last writer wins cleanly.

Permissions:
    - Instructor privileges and the general leader: the caller checks that the
      actor is an admin before invoking these operations.
    - Other student privileges: the actor must be the current general leader
      of the class; checked here.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Optional

from storage.errors import InfrastructureError, UniqueConstraintError
from storage.ports import RecordStoreProtocol

from authorization.domain import (
    CLASS_SINGULAR_KINDS,
    SCOPE_TABLES,
    SCOPED_KINDS,
    InstructorRole,
    StudentRole,
    parse_instructor_role,
    parse_student_role,
)
from authorization.engine import AuthorizationEngine
from authorization.errors import AssignmentResult, ErrorKind

logger = logging.getLogger("mamal.authorization")


def _tail(value: Optional[str]) -> str:
    return (value or "")[-6:]


@dataclass
class PrivilegeAssignmentService:
    """Grant and revoke instructor and student privileges."""

    store: RecordStoreProtocol
    engine: AuthorizationEngine
    max_attempts: int = 3

    # --- Instructor privileges (admin) -----------------------------------------
    def assign_instructor_privilege(
        self, *, actor_id: str, target_id: str, class_id: str, role_kind: object
    ) -> AssignmentResult:
        try:
            kind = parse_instructor_role(role_kind)
        except ValueError:
            return self._refuse(ErrorKind.INVALID_ROLE_KIND, class_id, role_kind)
        filters = {"user_id": target_id, "class_id": class_id, "role_kind": kind.value}
        if self.store.find("instructor_privileges", **filters):
            return self._refuse(ErrorKind.DUPLICATE_GRANT, class_id, kind.value)
        try:
            row = self.store.create("instructor_privileges", {**filters, "assigned_by": actor_id or None})
        except UniqueConstraintError:
            # A concurrent request granted the same privilege first.
            return self._refuse(ErrorKind.DUPLICATE_GRANT, class_id, kind.value)
        self._granted(row)
        return AssignmentResult.success(row)

    def remove_instructor_privilege(
        self, *, actor_id: str, target_id: str, class_id: str, role_kind: object
    ) -> AssignmentResult:
        """Delete the matching grant; removing a missing grant is a no-op success."""
        try:
            kind = parse_instructor_role(role_kind)
        except ValueError:
            return self._refuse(ErrorKind.INVALID_ROLE_KIND, class_id, role_kind)
        removed = self.store.delete_many(
            "instructor_privileges", user_id=target_id, class_id=class_id, role_kind=kind.value
        )
        if removed:
            logger.info(
                "instructor privilege removed class=%s kind=%s by=%s",
                _tail(class_id),
                kind.value,
                _tail(actor_id),
            )
        return AssignmentResult.success()

    # --- General leader (admin) ------------------------------------------------
    def assign_general_leader(self, *, actor_id: str, target_id: str, class_id: str) -> AssignmentResult:
        """Make the target the class's general leader, replacing any current one."""
        enrollment = self.engine.resolve_active_enrollment(target_id, class_id)
        if enrollment is None:
            return self._refuse(ErrorKind.NOT_ENROLLED, class_id, StudentRole.GENERAL_LEADER.value)
        return self._replace_holder(
            actor_id=actor_id,
            enrollment=enrollment,
            class_id=class_id,
            kind=StudentRole.GENERAL_LEADER,
            scope={},
        )

    def revoke_general_leader(self, *, actor_id: str, class_id: str) -> AssignmentResult:
        """Remove the class's general leader, if any (idempotent)."""
        removed = self.store.delete_many(
            "student_privileges", class_id=class_id, role_kind=StudentRole.GENERAL_LEADER.value
        )
        if removed:
            logger.info("general leader revoked class=%s by=%s", _tail(class_id), _tail(actor_id))
        return AssignmentResult.success()

    # --- Other student privileges (general leader) ------------------------------
    def assign_student_privilege(
        self,
        *,
        actor_id: str,
        target_id: str,
        class_id: str,
        role_kind: object,
        group_id: Optional[str] = None,
        study_area_id: Optional[str] = None,
    ) -> AssignmentResult:
        """Grant a student privilege on behalf of the class's general leader.

        Checks run in this order: an actor is given (unauthorized), the actor
        is the general leader (forbidden), role kind is known
        (invalid_role_kind), it is not the general leader kind
        (protected_grant), the target is actively enrolled (not_enrolled),
        and a scoped kind names a group/study area of this class
        (missing_scope). Only then is anything written.
        """
        if not actor_id:
            return self._refuse(ErrorKind.UNAUTHORIZED, class_id, role_kind)
        if not self.engine.is_general_leader(actor_id, class_id):
            return self._refuse(ErrorKind.FORBIDDEN, class_id, role_kind)
        try:
            kind = parse_student_role(role_kind)
        except ValueError:
            return self._refuse(ErrorKind.INVALID_ROLE_KIND, class_id, role_kind)
        if kind is StudentRole.GENERAL_LEADER:
            return self._refuse(ErrorKind.PROTECTED_GRANT, class_id, kind.value)
        enrollment = self.engine.resolve_active_enrollment(target_id, class_id)
        if enrollment is None:
            return self._refuse(ErrorKind.NOT_ENROLLED, class_id, kind.value)
        scope: dict = {}
        scope_column = SCOPED_KINDS.get(kind)
        if scope_column is not None:
            scope_id = group_id if scope_column == "group_id" else study_area_id
            if not scope_id or not self.store.find(SCOPE_TABLES[scope_column], id=scope_id, class_id=class_id):
                return self._refuse(ErrorKind.MISSING_SCOPE, class_id, kind.value)
            scope[scope_column] = scope_id
        return self._replace_holder(
            actor_id=actor_id,
            enrollment=enrollment,
            class_id=class_id,
            kind=kind,
            scope=scope,
        )

    def remove_student_privilege(
        self, *, actor_id: str, target_id: str, class_id: str, role_kind: object
    ) -> AssignmentResult:
        """Revoke a student privilege on behalf of the class's general leader.

        Rows of any enrollment the target has in the class are removed, so a
        grant left behind by an inactive enrollment can still be cleaned up.
        Removing a missing grant is a no-op success.
        """
        if not actor_id:
            return self._refuse(ErrorKind.UNAUTHORIZED, class_id, role_kind)
        if not self.engine.is_general_leader(actor_id, class_id):
            return self._refuse(ErrorKind.FORBIDDEN, class_id, role_kind)
        try:
            kind = parse_student_role(role_kind)
        except ValueError:
            return self._refuse(ErrorKind.INVALID_ROLE_KIND, class_id, role_kind)
        if kind is StudentRole.GENERAL_LEADER:
            return self._refuse(ErrorKind.PROTECTED_GRANT, class_id, kind.value)
        removed = 0
        with self.store.transaction():
            for enrollment in self.store.find_many("enrollments", user_id=target_id, class_id=class_id):
                removed += self.store.delete_many(
                    "student_privileges", enrollment_id=enrollment["id"], class_id=class_id, role_kind=kind.value
                )
        if removed:
            logger.info(
                "student privilege removed class=%s kind=%s by=%s", _tail(class_id), kind.value, _tail(actor_id)
            )
        return AssignmentResult.success()

    # --- Helpers ---------------------------------------------------------------
    def _replace_holder(
        self, *, actor_id: str, enrollment: dict, class_id: str, kind: StudentRole, scope: dict
    ) -> AssignmentResult:
        """Delete the current holder(s) and insert the new grant atomically."""
        row = {
            "enrollment_id": enrollment["id"],
            "class_id": class_id,
            "role_kind": kind.value,
            "assigned_by": actor_id or None,
            **scope,
        }

        def unit() -> dict:
            with self.store.transaction():
                if kind in CLASS_SINGULAR_KINDS:
                    self.store.delete_many("student_privileges", class_id=class_id, role_kind=kind.value)
                else:
                    self.store.delete_many(
                        "student_privileges", class_id=class_id, role_kind=kind.value, **scope
                    )
                    # The target may hold this kind under another scope; they move.
                    self.store.delete_many(
                        "student_privileges",
                        enrollment_id=enrollment["id"],
                        class_id=class_id,
                        role_kind=kind.value,
                    )
                return self.store.create("student_privileges", row)

        created = self._with_retry(unit, class_id, kind.value)
        self._granted(created)
        return AssignmentResult.success(created)

    def _with_retry(self, unit: Callable[[], dict], class_id: str, kind: str) -> dict:
        attempts = max(1, int(self.max_attempts))
        for attempt in range(1, attempts + 1):
            try:
                return unit()
            except UniqueConstraintError as exc:
                logger.info(
                    "privilege reassignment raced class=%s kind=%s attempt=%s constraint=%s",
                    _tail(class_id),
                    kind,
                    attempt,
                    exc.constraint,
                )
        logger.warning("privilege reassignment gave up class=%s kind=%s", _tail(class_id), kind)
        raise InfrastructureError("privilege reassignment contention")

    def _granted(self, row: dict) -> None:
        logger.info(
            "privilege granted class=%s kind=%s by=%s",
            _tail(row.get("class_id")),
            row.get("role_kind"),
            _tail(row.get("assigned_by")),
        )

    def _refuse(self, kind: ErrorKind, class_id: str, role_kind: object) -> AssignmentResult:
        label = role_kind.value if isinstance(role_kind, (InstructorRole, StudentRole)) else str(role_kind)[:40]
        logger.info("privilege change refused class=%s kind=%s error=%s", _tail(class_id), label, kind.value)
        return AssignmentResult.failure(kind)


__all__ = ["PrivilegeAssignmentService"]
