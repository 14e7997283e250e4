"""
Relational schema for the record stores.

Intent:
    Single source of truth for tables, foreign-key cascade rules and unique
    indexes. The Postgres store applies the DDL; the in-memory store enforces
    the same unique indexes and cascade rules in Python so both backends
    behave alike under tests.

Concurrency:
    The partial unique indexes on `student_privileges` are the final backstop
    for the singular role kinds: even if two reassignments race, the database
    never holds two secretaries for one class.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional, Tuple

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

_log = logging.getLogger("mamal.storage")

# Student role kinds with exactly one holder per class.
CLASS_SINGULAR_STUDENT_KINDS: Tuple[str, ...] = (
    "general_leader",
    "secretary",
    "treasurer",
    "discipline_officer",
)


@dataclass(frozen=True)
class UniqueIndex:
    name: str
    table: str
    columns: Tuple[str, ...]
    # Partial index predicate: `where_column in where_values`
    where_column: Optional[str] = None
    where_values: Tuple[str, ...] = ()

    def applies_to(self, row: dict) -> bool:
        if self.where_column is None:
            return True
        return row.get(self.where_column) in self.where_values

    def key_of(self, row: dict) -> Optional[tuple]:
        """Index key for `row`, or None when the row is not indexed.

        Mirrors SQL semantics: NULL never collides with NULL.
        """
        if not self.applies_to(row):
            return None
        key = tuple(row.get(c) for c in self.columns)
        if any(v is None for v in key):
            return None
        return key


@dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str
    parent: str
    on_delete: str  # "cascade" | "set null" | "restrict"


UNIQUE_INDEXES: Tuple[UniqueIndex, ...] = (
    UniqueIndex("uq_users_email", "users", ("email",)),
    UniqueIndex("uq_enrollment", "enrollments", ("user_id", "class_id", "term_id")),
    UniqueIndex("uq_instructor_privilege", "instructor_privileges", ("user_id", "class_id", "role_kind")),
    UniqueIndex("uq_student_privilege", "student_privileges", ("enrollment_id", "class_id", "role_kind")),
    UniqueIndex(
        "uq_student_privilege_singular",
        "student_privileges",
        ("class_id", "role_kind"),
        where_column="role_kind",
        where_values=CLASS_SINGULAR_STUDENT_KINDS,
    ),
    UniqueIndex(
        "uq_student_privilege_group_leader",
        "student_privileges",
        ("class_id", "role_kind", "group_id"),
        where_column="role_kind",
        where_values=("group_leader",),
    ),
    UniqueIndex(
        "uq_student_privilege_study_area_leader",
        "student_privileges",
        ("class_id", "role_kind", "study_area_id"),
        where_column="role_kind",
        where_values=("study_area_leader",),
    ),
)


FOREIGN_KEYS: Tuple[ForeignKey, ...] = (
    ForeignKey("classes", "term_id", "terms", "cascade"),
    ForeignKey("enrollments", "user_id", "users", "cascade"),
    ForeignKey("enrollments", "class_id", "classes", "cascade"),
    ForeignKey("enrollments", "term_id", "terms", "cascade"),
    ForeignKey("groups", "class_id", "classes", "cascade"),
    ForeignKey("study_areas", "class_id", "classes", "cascade"),
    ForeignKey("instructor_privileges", "user_id", "users", "cascade"),
    ForeignKey("instructor_privileges", "class_id", "classes", "cascade"),
    ForeignKey("instructor_privileges", "assigned_by", "users", "set null"),
    ForeignKey("student_privileges", "enrollment_id", "enrollments", "cascade"),
    ForeignKey("student_privileges", "class_id", "classes", "cascade"),
    ForeignKey("student_privileges", "group_id", "groups", "set null"),
    ForeignKey("student_privileges", "study_area_id", "study_areas", "set null"),
    ForeignKey("student_privileges", "assigned_by", "users", "set null"),
    ForeignKey("hafalan_records", "enrollment_id", "enrollments", "cascade"),
    ForeignKey("hafalan_records", "class_id", "classes", "cascade"),
    ForeignKey("hafalan_records", "study_area_id", "study_areas", "set null"),
    ForeignKey("hafalan_records", "evaluated_by", "users", "set null"),
)


def unique_indexes_for(table: str) -> Tuple[UniqueIndex, ...]:
    return tuple(ix for ix in UNIQUE_INDEXES if ix.table == table)


def foreign_keys_referencing(parent: str) -> Tuple[ForeignKey, ...]:
    return tuple(fk for fk in FOREIGN_KEYS if fk.parent == parent)


_TABLES_SQL = """
create table if not exists users (
    id text primary key,
    email text not null,
    name text not null,
    role text not null check (role in ('admin', 'dosen', 'mahasiswa')),
    active boolean not null default true,
    password_hash text,
    created_at timestamptz not null default now()
);

alter table users add column if not exists password_hash text;

create table if not exists terms (
    id text primary key,
    name text not null,
    active boolean not null default false,
    created_at timestamptz not null default now()
);

create table if not exists classes (
    id text primary key,
    name text not null,
    code text not null,
    term_id text not null references terms(id) on delete cascade,
    description text,
    max_students integer default 30,
    active boolean not null default true,
    created_at timestamptz not null default now()
);

create table if not exists enrollments (
    id text primary key,
    user_id text not null references users(id) on delete cascade,
    class_id text not null references classes(id) on delete cascade,
    term_id text not null references terms(id) on delete cascade,
    status text not null default 'active'
        check (status in ('active', 'inactive', 'graduated', 'dropped')),
    enrolled_at timestamptz not null default now()
);

create table if not exists groups (
    id text primary key,
    class_id text not null references classes(id) on delete cascade,
    name text not null,
    group_number integer not null,
    created_at timestamptz not null default now()
);

create table if not exists study_areas (
    id text primary key,
    class_id text not null references classes(id) on delete cascade,
    name text not null,
    description text,
    created_at timestamptz not null default now()
);

create table if not exists instructor_privileges (
    id text primary key,
    user_id text not null references users(id) on delete cascade,
    class_id text not null references classes(id) on delete cascade,
    role_kind text not null check (role_kind in (
        'co_instructor', 'class_guardian', 'memorization_coordinator',
        'achievement_coordinator', 'class_coordinator')),
    assigned_by text references users(id) on delete set null,
    assigned_at timestamptz not null default now()
);

create table if not exists student_privileges (
    id text primary key,
    enrollment_id text not null references enrollments(id) on delete cascade,
    class_id text not null references classes(id) on delete cascade,
    role_kind text not null check (role_kind in (
        'general_leader', 'group_leader', 'discipline_officer',
        'study_area_leader', 'secretary', 'treasurer')),
    group_id text references groups(id) on delete set null,
    study_area_id text references study_areas(id) on delete set null,
    assigned_by text references users(id) on delete set null,
    assigned_at timestamptz not null default now()
);

create table if not exists hafalan_records (
    id text primary key,
    enrollment_id text not null references enrollments(id) on delete cascade,
    class_id text not null references classes(id) on delete cascade,
    study_area_id text references study_areas(id) on delete set null,
    content text not null,
    verse_start integer,
    verse_end integer,
    status text not null default 'pending'
        check (status in ('pending', 'in_progress', 'completed', 'need_revision')),
    score numeric(5, 2),
    notes text,
    evaluated_by text references users(id) on delete set null,
    evaluated_at timestamptz,
    created_at timestamptz not null default now()
);

create index if not exists ix_hafalan_records_class on hafalan_records (class_id, status);
"""


def _index_sql(ix: UniqueIndex) -> str:
    cols = ", ".join(ix.columns)
    stmt = f"create unique index if not exists {ix.name} on {ix.table} ({cols})"
    if ix.where_column:
        values = ", ".join(f"'{v}'" for v in ix.where_values)
        stmt += f" where {ix.where_column} in ({values})"
    return stmt + ";"


def schema_sql() -> str:
    """Return the full idempotent DDL script."""
    return _TABLES_SQL + "\n" + "\n".join(_index_sql(ix) for ix in UNIQUE_INDEXES) + "\n"


def ensure_schema(dsn: str) -> None:
    """Apply the DDL against `dsn`. Safe to call repeatedly."""
    if not HAVE_PSYCOPG:
        raise RuntimeError("psycopg3 is required for ensure_schema")
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            for stmt in schema_sql().split(";"):
                if stmt.strip():
                    cur.execute(stmt)
        conn.commit()
    _log.info("record store schema ensured")


__all__ = [
    "CLASS_SINGULAR_STUDENT_KINDS",
    "FOREIGN_KEYS",
    "ForeignKey",
    "UNIQUE_INDEXES",
    "UniqueIndex",
    "ensure_schema",
    "foreign_keys_referencing",
    "schema_sql",
    "unique_indexes_for",
]
