"""Classroom record service (Enrollment Store).

Why:
    Terms, classes, enrollments, groups and study areas are plain records, but
    a few rules matter to the privilege model: one enrollment per
    (user, class, term), groups and study areas always belong to exactly one
    class, and removing an enrollment or class also removes the privilege rows
    that depend on it.

Permissions:
    None enforced here. Callers (admin routes) check the global role first.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional

from identity_access.domain import UserRole
from storage.errors import UniqueConstraintError
from storage.ports import RecordStoreProtocol

from classroom.domain import DEFAULT_MAX_STUDENTS, EnrollmentStatus, parse_status

logger = logging.getLogger("mamal.classroom")


def _normalize_text(value: object, field: str, *, max_len: int = 200) -> str:
    if not isinstance(value, str):
        raise ValueError(f"invalid_{field}")
    trimmed = value.strip()
    if not trimmed or len(trimmed) > max_len:
        raise ValueError(f"invalid_{field}")
    return trimmed


def _normalize_optional_text(value: object, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"invalid_{field}")
    return value.strip() or None


def _normalize_positive_int(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid_{field}")
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid_{field}") from exc
    if number < 1:
        raise ValueError(f"invalid_{field}")
    return number


@dataclass
class ClassroomService:
    """Use cases for class records (framework-independent)."""

    store: RecordStoreProtocol

    # --- Terms and classes ---------------------------------------------------
    def create_term(self, *, name: object, active: bool = True) -> dict:
        term = self.store.create("terms", {"name": _normalize_text(name, "name"), "active": bool(active)})
        logger.info("term created id=%s", term["id"][-6:])
        return term

    def create_class(
        self,
        *,
        name: object,
        code: object,
        term_id: str,
        description: object = None,
        max_students: object = DEFAULT_MAX_STUDENTS,
    ) -> dict:
        if not self.store.find("terms", id=term_id):
            raise LookupError("term_not_found")
        record = self.store.create(
            "classes",
            {
                "name": _normalize_text(name, "name"),
                "code": _normalize_text(code, "code", max_len=50),
                "term_id": term_id,
                "description": _normalize_optional_text(description, "description"),
                "max_students": _normalize_positive_int(max_students, "max_students"),
                "active": True,
            },
        )
        logger.info("class created id=%s term=%s", record["id"][-6:], term_id[-6:])
        return record

    def get_class(self, class_id: str) -> Optional[dict]:
        return self.store.find("classes", id=class_id)

    def list_classes(self, *, term_id: Optional[str] = None) -> List[dict]:
        if term_id is not None:
            return self.store.find_many("classes", term_id=term_id)
        return self.store.find_many("classes", active=True)

    def delete_class(self, class_id: str) -> None:
        """Delete a class with its groups, study areas, enrollments, privileges and records."""
        with self.store.transaction():
            for table in (
                "hafalan_records",
                "student_privileges",
                "instructor_privileges",
                "enrollments",
                "groups",
                "study_areas",
            ):
                self.store.delete_many(table, class_id=class_id)
            deleted = self.store.delete_many("classes", id=class_id)
        if not deleted:
            raise LookupError("class_not_found")
        logger.info("class deleted id=%s", class_id[-6:])

    # --- Enrollments -----------------------------------------------------------
    def enroll_student(self, *, user_id: str, class_id: str) -> dict:
        """Enroll an active student in the class's term.

        Behavior:
            - Idempotent: an existing (user, class, term) enrollment is returned.
            - Refuses inactive users and non-students (`invalid_user`).
            - Refuses once `max_students` active enrollments exist (`class_full`).
        """
        klass = self.store.find("classes", id=class_id)
        if not klass:
            raise LookupError("class_not_found")
        user = self.store.find("users", id=user_id)
        if not user:
            raise LookupError("user_not_found")
        if not user.get("active") or user.get("role") != UserRole.STUDENT.value:
            raise ValueError("invalid_user")
        term_id = klass["term_id"]
        try:
            with self.store.transaction():
                existing = self.store.find("enrollments", user_id=user_id, class_id=class_id, term_id=term_id)
                if existing:
                    return existing
                active = self.store.find_many(
                    "enrollments", class_id=class_id, status=EnrollmentStatus.ACTIVE.value
                )
                if len(active) >= int(klass.get("max_students") or DEFAULT_MAX_STUDENTS):
                    raise ValueError("class_full")
                enrollment = self.store.create(
                    "enrollments",
                    {
                        "user_id": user_id,
                        "class_id": class_id,
                        "term_id": term_id,
                        "status": EnrollmentStatus.ACTIVE.value,
                    },
                )
        except UniqueConstraintError:
            # A concurrent request enrolled the same student first.
            found = self.store.find("enrollments", user_id=user_id, class_id=class_id, term_id=term_id)
            if not found:
                raise
            return found
        logger.info("student enrolled enrollment=%s class=%s", enrollment["id"][-6:], class_id[-6:])
        return enrollment

    def set_enrollment_status(self, enrollment_id: str, status: object) -> dict:
        new_status = parse_status(status)
        if not self.store.update_many("enrollments", {"status": new_status.value}, id=enrollment_id):
            raise LookupError("enrollment_not_found")
        logger.info("enrollment status changed id=%s status=%s", enrollment_id[-6:], new_status.value)
        return self.store.find("enrollments", id=enrollment_id) or {}

    def remove_enrollment(self, enrollment_id: str) -> None:
        """Delete an enrollment together with its student privileges and memorization records."""
        with self.store.transaction():
            self.store.delete_many("hafalan_records", enrollment_id=enrollment_id)
            self.store.delete_many("student_privileges", enrollment_id=enrollment_id)
            deleted = self.store.delete_many("enrollments", id=enrollment_id)
        if not deleted:
            raise LookupError("enrollment_not_found")
        logger.info("enrollment removed id=%s", enrollment_id[-6:])

    def get_enrollment(self, enrollment_id: str) -> Optional[dict]:
        return self.store.find("enrollments", id=enrollment_id)

    def list_active_enrollments(self, class_id: str) -> List[dict]:
        return self.store.find_many("enrollments", class_id=class_id, status=EnrollmentStatus.ACTIVE.value)

    # --- Groups and study areas -----------------------------------------------
    def create_group(self, *, class_id: str, name: object, group_number: object) -> dict:
        if not self.store.find("classes", id=class_id):
            raise LookupError("class_not_found")
        group = self.store.create(
            "groups",
            {
                "class_id": class_id,
                "name": _normalize_text(name, "name"),
                "group_number": _normalize_positive_int(group_number, "group_number"),
            },
        )
        logger.info("group created id=%s class=%s", group["id"][-6:], class_id[-6:])
        return group

    def create_study_area(self, *, class_id: str, name: object, description: object = None) -> dict:
        if not self.store.find("classes", id=class_id):
            raise LookupError("class_not_found")
        area = self.store.create(
            "study_areas",
            {
                "class_id": class_id,
                "name": _normalize_text(name, "name"),
                "description": _normalize_optional_text(description, "description"),
            },
        )
        logger.info("study area created id=%s class=%s", area["id"][-6:], class_id[-6:])
        return area

    def get_group(self, group_id: str) -> Optional[dict]:
        return self.store.find("groups", id=group_id)

    def get_study_area(self, study_area_id: str) -> Optional[dict]:
        return self.store.find("study_areas", id=study_area_id)

    def list_groups(self, class_id: str) -> List[dict]:
        return sorted(self.store.find_many("groups", class_id=class_id), key=lambda g: g.get("group_number") or 0)

    def list_study_areas(self, class_id: str) -> List[dict]:
        return self.store.find_many("study_areas", class_id=class_id)


__all__ = ["ClassroomService"]
