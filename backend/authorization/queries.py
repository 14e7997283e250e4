"""
Read-side helpers over privilege rows for admin and general-leader screens.

These are plain lookups; they make no authorization decision. Callers check
the actor's standing first (admin role, or general leader of the class).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from classroom.domain import EnrollmentStatus
from identity_access.domain import UserRole
from storage.ports import RecordStoreProtocol

from .domain import CLASS_SINGULAR_KINDS, StudentRole


@dataclass
class PrivilegeQueries:
    store: RecordStoreProtocol

    def get_general_leader(self, class_id: str) -> Optional[dict]:
        """Return the class's general leader (ids and name) or None."""
        row = self.store.find("student_privileges", class_id=class_id, role_kind=StudentRole.GENERAL_LEADER.value)
        if row is None:
            return None
        enrollment = self.store.find("enrollments", id=row["enrollment_id"]) or {}
        user = self.store.find("users", id=enrollment.get("user_id")) if enrollment.get("user_id") else None
        return {
            "privilege_id": row["id"],
            "enrollment_id": row["enrollment_id"],
            "user_id": enrollment.get("user_id"),
            "name": (user or {}).get("name"),
            "assigned_at": row.get("assigned_at"),
        }

    def class_privilege_summary(self, class_id: str) -> Dict[str, object]:
        """Holders of every student role kind in the class.

        Singular kinds map to one holder or None; group and study-area leaders
        are lists, each entry carrying its scope.
        """
        summary: Dict[str, object] = {kind.value: None for kind in CLASS_SINGULAR_KINDS}
        summary[StudentRole.GROUP_LEADER.value] = []
        summary[StudentRole.STUDY_AREA_LEADER.value] = []
        for row in self.store.find_many("student_privileges", class_id=class_id):
            holder = self._holder(row)
            kind = StudentRole(row["role_kind"])
            if kind in CLASS_SINGULAR_KINDS:
                summary[kind.value] = holder
            elif kind is StudentRole.GROUP_LEADER:
                group = self.store.find("groups", id=row.get("group_id")) if row.get("group_id") else None
                holder["group"] = group
                summary[kind.value].append(holder)  # type: ignore[union-attr]
            else:
                area = self.store.find("study_areas", id=row.get("study_area_id")) if row.get("study_area_id") else None
                holder["study_area"] = area
                summary[kind.value].append(holder)  # type: ignore[union-attr]
        return summary

    def class_members_with_privileges(self, class_id: str) -> List[dict]:
        """Active enrollments of the class, each with its user and student privileges."""
        members: List[dict] = []
        enrollments = self.store.find_many("enrollments", class_id=class_id, status=EnrollmentStatus.ACTIVE.value)
        for enrollment in enrollments:
            user = self.store.find("users", id=enrollment["user_id"]) or {}
            privileges = self.store.find_many("student_privileges", enrollment_id=enrollment["id"], class_id=class_id)
            members.append(
                {
                    "enrollment_id": enrollment["id"],
                    "user_id": enrollment["user_id"],
                    "name": user.get("name"),
                    "privileges": [
                        {
                            "role_kind": p["role_kind"],
                            "group_id": p.get("group_id"),
                            "study_area_id": p.get("study_area_id"),
                        }
                        for p in privileges
                    ],
                }
            )
        return sorted(members, key=lambda m: (m.get("name") or "").lower())

    def instructors_with_privileges(self) -> List[dict]:
        """Active instructors (by name) with their per-class instructor privileges."""
        instructors = self.store.find_many("users", role=UserRole.INSTRUCTOR.value, active=True)
        class_names: Dict[str, Optional[str]] = {}
        out: List[dict] = []
        for user in sorted(instructors, key=lambda u: (u.get("name") or "").lower()):
            grants = []
            for row in self.store.find_many("instructor_privileges", user_id=user["id"]):
                cid = row["class_id"]
                if cid not in class_names:
                    klass = self.store.find("classes", id=cid)
                    class_names[cid] = klass.get("name") if klass else None
                grants.append({"class_id": cid, "class_name": class_names[cid], "role_kind": row["role_kind"]})
            out.append({"user_id": user["id"], "name": user.get("name"), "privileges": grants})
        return out

    def classes_with_general_leader(self) -> List[dict]:
        """Every active class with its current general leader (or None)."""
        return [
            {
                "class_id": klass["id"],
                "name": klass.get("name"),
                "code": klass.get("code"),
                "general_leader": self.get_general_leader(klass["id"]),
            }
            for klass in self.store.find_many("classes", active=True)
        ]

    def _holder(self, row: dict) -> dict:
        enrollment = self.store.find("enrollments", id=row["enrollment_id"]) or {}
        user_id = enrollment.get("user_id")
        user = self.store.find("users", id=user_id) if user_id else None
        return {
            "enrollment_id": row["enrollment_id"],
            "user_id": user_id,
            "name": (user or {}).get("name"),
        }


__all__ = ["PrivilegeQueries"]
