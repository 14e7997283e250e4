"""
Authorization engine: decisions over instructor and student privilege rows.

Why:
    Every "may this user do X in class C" question goes through here, so the
    application never re-derives role logic on its own.

Behavior:
    - Row predicates (`has_*`, `list_*`, `is_*`) look at privilege rows only and
      are total: unknown users or classes yield False/empty/None.
    - Student predicates first resolve the user's *active* enrollment; stale
      privilege rows of an inactive, graduated or dropped enrollment are never
      consulted.
    - `can(actor, capability, class_id)` adds the global-role layer: an admin
      is allowed everything, everyone else is judged on privilege rows.
    - Storage failures propagate as `InfrastructureError`; they are never
      reported as a denial.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Set, Tuple

from classroom.domain import EnrollmentStatus
from identity_access.domain import UserRole
from storage.ports import RecordStoreProtocol

from .domain import (
    Capability,
    InstructorRole,
    StudentRole,
    parse_capability,
    parse_instructor_role,
    parse_student_role,
)


@dataclass(frozen=True)
class Actor:
    """The acting user as resolved by the caller (id plus current global role)."""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


# Capability -> (instructor kinds that grant it, whether the general leader has it)
CAPABILITY_RULES: Dict[Capability, Tuple[FrozenSet[InstructorRole], bool]] = {
    Capability.MANAGE_MEMORIZATION: (frozenset({InstructorRole.MEMORIZATION_COORDINATOR}), False),
    Capability.MANAGE_ACHIEVEMENTS: (frozenset({InstructorRole.ACHIEVEMENT_COORDINATOR}), False),
    Capability.EVALUATE_CLASS: (
        frozenset({InstructorRole.CLASS_GUARDIAN, InstructorRole.CLASS_COORDINATOR}),
        False,
    ),
    Capability.MANAGE_ATTENDANCE: (
        frozenset(
            {
                InstructorRole.CLASS_GUARDIAN,
                InstructorRole.CO_INSTRUCTOR,
                InstructorRole.CLASS_COORDINATOR,
            }
        ),
        True,
    ),
    Capability.ASSIGN_STUDENT_PRIVILEGES: (frozenset(), True),
    Capability.MANAGE_GROUPS: (frozenset({InstructorRole.CLASS_GUARDIAN}), True),
}


@dataclass
class AuthorizationEngine:
    store: RecordStoreProtocol

    # --- Instructor privileges -------------------------------------------------
    def has_instructor_privilege(self, user_id: str, class_id: str, role_kind: object) -> bool:
        kind = parse_instructor_role(role_kind)
        if not user_id or not class_id:
            return False
        row = self.store.find("instructor_privileges", user_id=user_id, class_id=class_id, role_kind=kind.value)
        return row is not None

    def has_any_instructor_privilege(self, user_id: str, class_id: str) -> bool:
        if not user_id or not class_id:
            return False
        return self.store.find("instructor_privileges", user_id=user_id, class_id=class_id) is not None

    def list_instructor_privileges(self, user_id: str, class_id: str) -> Set[InstructorRole]:
        if not user_id or not class_id:
            return set()
        rows = self.store.find_many("instructor_privileges", user_id=user_id, class_id=class_id)
        return {InstructorRole(r["role_kind"]) for r in rows}

    # --- Student privileges ----------------------------------------------------
    def resolve_active_enrollment(self, user_id: str, class_id: str) -> Optional[dict]:
        """Return the user's active enrollment in the class, or None."""
        if not user_id or not class_id:
            return None
        return self.store.find(
            "enrollments", user_id=user_id, class_id=class_id, status=EnrollmentStatus.ACTIVE.value
        )

    def is_actively_enrolled(self, user_id: str, class_id: str) -> bool:
        return self.resolve_active_enrollment(user_id, class_id) is not None

    def has_student_privilege(self, user_id: str, class_id: str, role_kind: object) -> bool:
        kind = parse_student_role(role_kind)
        enrollment = self.resolve_active_enrollment(user_id, class_id)
        if enrollment is None:
            return False
        row = self.store.find(
            "student_privileges", enrollment_id=enrollment["id"], class_id=class_id, role_kind=kind.value
        )
        return row is not None

    def is_general_leader(self, user_id: str, class_id: str) -> bool:
        return self.has_student_privilege(user_id, class_id, StudentRole.GENERAL_LEADER)

    def list_student_privileges(self, user_id: str, class_id: str) -> Set[StudentRole]:
        enrollment = self.resolve_active_enrollment(user_id, class_id)
        if enrollment is None:
            return set()
        rows = self.store.find_many("student_privileges", enrollment_id=enrollment["id"], class_id=class_id)
        return {StudentRole(r["role_kind"]) for r in rows}

    # --- Composite capabilities ------------------------------------------------
    def has_capability(self, user_id: str, class_id: str, capability: object) -> bool:
        """Evaluate a capability from privilege rows alone (no global-role bypass)."""
        cap = parse_capability(capability)
        instructor_kinds, general_leader_allowed = CAPABILITY_RULES[cap]
        if instructor_kinds and self.list_instructor_privileges(user_id, class_id) & instructor_kinds:
            return True
        return general_leader_allowed and self.is_general_leader(user_id, class_id)

    def can_manage_memorization(self, user_id: str, class_id: str) -> bool:
        return self.has_capability(user_id, class_id, Capability.MANAGE_MEMORIZATION)

    def can_manage_achievements(self, user_id: str, class_id: str) -> bool:
        return self.has_capability(user_id, class_id, Capability.MANAGE_ACHIEVEMENTS)

    def can_evaluate_class(self, user_id: str, class_id: str) -> bool:
        return self.has_capability(user_id, class_id, Capability.EVALUATE_CLASS)

    def can_manage_attendance(self, user_id: str, class_id: str) -> bool:
        return self.has_capability(user_id, class_id, Capability.MANAGE_ATTENDANCE)

    def can_assign_student_privileges(self, user_id: str, class_id: str) -> bool:
        return self.has_capability(user_id, class_id, Capability.ASSIGN_STUDENT_PRIVILEGES)

    def can_manage_groups(self, user_id: str, class_id: str) -> bool:
        return self.has_capability(user_id, class_id, Capability.MANAGE_GROUPS)

    def can(self, actor: Optional[Actor], capability: object, class_id: str) -> bool:
        """Decide a capability for an acting user; admins are always allowed."""
        cap = parse_capability(capability)
        if actor is None or not actor.user_id:
            return False
        if actor.is_admin:
            return True
        return self.has_capability(actor.user_id, class_id, cap)

    def capabilities(self, actor: Optional[Actor], class_id: str) -> Dict[Capability, bool]:
        return {cap: self.can(actor, cap, class_id) for cap in Capability}


__all__ = ["Actor", "AuthorizationEngine", "CAPABILITY_RULES"]
