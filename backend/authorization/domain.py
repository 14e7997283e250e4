"""
Privilege vocabulary: the closed role-kind enumerations and capabilities.

Why:
    One canonical enumeration per privilege kind. Storage, display and HTTP
    layers convert at their boundary; everything inside the core compares
    these members only.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class InstructorRole(str, Enum):
    CO_INSTRUCTOR = "co_instructor"  # dosen pendamping
    CLASS_GUARDIAN = "class_guardian"  # wali kelas
    MEMORIZATION_COORDINATOR = "memorization_coordinator"  # pengurus hafalan
    ACHIEVEMENT_COORDINATOR = "achievement_coordinator"  # pengurus capaian materi
    CLASS_COORDINATOR = "class_coordinator"  # pengurus kelas


class StudentRole(str, Enum):
    GENERAL_LEADER = "general_leader"  # ketua umum
    GROUP_LEADER = "group_leader"  # ketua kelompok
    DISCIPLINE_OFFICER = "discipline_officer"  # kamtib
    STUDY_AREA_LEADER = "study_area_leader"  # ketua fan ilmu
    SECRETARY = "secretary"
    TREASURER = "treasurer"


class Capability(str, Enum):
    MANAGE_MEMORIZATION = "manage_memorization"
    MANAGE_ACHIEVEMENTS = "manage_achievements"
    EVALUATE_CLASS = "evaluate_class"
    MANAGE_ATTENDANCE = "manage_attendance"
    ASSIGN_STUDENT_PRIVILEGES = "assign_student_privileges"
    MANAGE_GROUPS = "manage_groups"


# At most one holder per class.
CLASS_SINGULAR_KINDS: FrozenSet[StudentRole] = frozenset(
    {
        StudentRole.GENERAL_LEADER,
        StudentRole.SECRETARY,
        StudentRole.TREASURER,
        StudentRole.DISCIPLINE_OFFICER,
    }
)

# At most one holder per (class, scope); the scope column is required.
SCOPED_KINDS: Dict[StudentRole, str] = {
    StudentRole.GROUP_LEADER: "group_id",
    StudentRole.STUDY_AREA_LEADER: "study_area_id",
}

# Scope column -> table the scope id must point into (within the same class).
SCOPE_TABLES: Dict[str, str] = {
    "group_id": "groups",
    "study_area_id": "study_areas",
}


def parse_instructor_role(value: object) -> InstructorRole:
    """Return the instructor role kind for `value` or raise ValueError("invalid_role_kind")."""
    if isinstance(value, InstructorRole):
        return value
    if isinstance(value, str):
        try:
            return InstructorRole(value.strip().lower())
        except ValueError:
            pass
    raise ValueError("invalid_role_kind")


def parse_student_role(value: object) -> StudentRole:
    """Return the student role kind for `value` or raise ValueError("invalid_role_kind")."""
    if isinstance(value, StudentRole):
        return value
    if isinstance(value, str):
        try:
            return StudentRole(value.strip().lower())
        except ValueError:
            pass
    raise ValueError("invalid_role_kind")


def parse_capability(value: object) -> Capability:
    if isinstance(value, Capability):
        return value
    if isinstance(value, str):
        try:
            return Capability(value.strip().lower())
        except ValueError:
            pass
    raise ValueError("invalid_capability")


__all__ = [
    "CLASS_SINGULAR_KINDS",
    "Capability",
    "InstructorRole",
    "SCOPED_KINDS",
    "SCOPE_TABLES",
    "StudentRole",
    "parse_capability",
    "parse_instructor_role",
    "parse_student_role",
]
