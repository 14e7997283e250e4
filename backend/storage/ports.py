"""
Record-store port shared by the identity, classroom and authorization contexts.

Keep this small and framework-agnostic so tests can supply simple fakes. Rows
are plain dicts; filters are exact matches on column names, where a `None`
value matches a NULL column.
"""
from __future__ import annotations

from typing import Any, ContextManager, Dict, List, Mapping, Optional, Protocol


# Closed set of tables and their columns. Both backends validate against this
# so a typo fails loudly instead of silently matching nothing.
TABLE_COLUMNS: Dict[str, tuple[str, ...]] = {
    "users": ("id", "email", "name", "role", "active", "password_hash", "created_at"),
    "terms": ("id", "name", "active", "created_at"),
    "classes": ("id", "name", "code", "term_id", "description", "max_students", "active", "created_at"),
    "enrollments": ("id", "user_id", "class_id", "term_id", "status", "enrolled_at"),
    "groups": ("id", "class_id", "name", "group_number", "created_at"),
    "study_areas": ("id", "class_id", "name", "description", "created_at"),
    "instructor_privileges": ("id", "user_id", "class_id", "role_kind", "assigned_by", "assigned_at"),
    "student_privileges": (
        "id",
        "enrollment_id",
        "class_id",
        "role_kind",
        "group_id",
        "study_area_id",
        "assigned_by",
        "assigned_at",
    ),
    "hafalan_records": (
        "id",
        "enrollment_id",
        "class_id",
        "study_area_id",
        "content",
        "verse_start",
        "verse_end",
        "status",
        "score",
        "notes",
        "evaluated_by",
        "evaluated_at",
        "created_at",
    ),
}


def check_columns(table: str, columns) -> None:
    """Raise ValueError for unknown tables or columns."""
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"unknown_table:{table}")
    for col in columns:
        if col not in allowed:
            raise ValueError(f"unknown_column:{table}.{col}")


class RecordStoreProtocol(Protocol):
    """Minimal repository contract consumed by the services.

    Permissions:
        None enforced here. Authorization decisions live in the engine and the
        assignment protocol; the store only persists.
    """

    def find(self, table: str, **filters: Any) -> Optional[dict]: ...

    def find_many(self, table: str, **filters: Any) -> List[dict]: ...

    def create(self, table: str, row: Mapping[str, Any]) -> dict: ...

    def delete_many(self, table: str, **filters: Any) -> int: ...

    def update_many(self, table: str, values: Mapping[str, Any], **filters: Any) -> int: ...

    def transaction(self) -> ContextManager[None]: ...


__all__ = ["RecordStoreProtocol", "TABLE_COLUMNS", "check_columns"]
