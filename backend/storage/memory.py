"""
In-memory record store for development and tests.

Why:
    Mirrors the Postgres store closely enough (unique indexes, cascades,
    all-or-nothing transactions) that service tests exercise the same
    invariants without a database.

Concurrency:
    One re-entrant lock serialises every operation. `transaction()` holds the
    lock for the whole block, so a delete-then-insert unit is never observed
    half-applied by another thread and two units never interleave.
"""
from __future__ import annotations

import copy
from contextlib import contextmanager
from datetime import datetime, timezone
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional
from uuid import uuid4

from .errors import UniqueConstraintError
from .ports import TABLE_COLUMNS, check_columns
from .schema import foreign_keys_referencing, unique_indexes_for

# Timestamp column filled on insert when the caller omits it.
_TIMESTAMP_COLUMNS = {
    "users": "created_at",
    "terms": "created_at",
    "classes": "created_at",
    "enrollments": "enrolled_at",
    "groups": "created_at",
    "study_areas": "created_at",
    "instructor_privileges": "assigned_at",
    "student_privileges": "assigned_at",
    "hafalan_records": "created_at",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    return all(row.get(k) == v for k, v in filters.items())


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._tables: Dict[str, List[dict]] = {name: [] for name in TABLE_COLUMNS}
        self._lock = threading.RLock()
        self._depth = 0

    # --- Reads -----------------------------------------------------------------
    def find(self, table: str, **filters: Any) -> Optional[dict]:
        check_columns(table, filters)
        with self._lock:
            for row in self._tables[table]:
                if _matches(row, filters):
                    return dict(row)
        return None

    def find_many(self, table: str, **filters: Any) -> List[dict]:
        check_columns(table, filters)
        with self._lock:
            return [dict(r) for r in self._tables[table] if _matches(r, filters)]

    # --- Writes ----------------------------------------------------------------
    def create(self, table: str, row: Mapping[str, Any]) -> dict:
        check_columns(table, row)
        record = {col: None for col in TABLE_COLUMNS[table]}
        record.update(row)
        if not record.get("id"):
            record["id"] = str(uuid4())
        ts_col = _TIMESTAMP_COLUMNS.get(table)
        if ts_col and not record.get(ts_col):
            record[ts_col] = _now_iso()
        with self._lock:
            self._check_unique(table, record)
            self._tables[table].append(record)
        return dict(record)

    def update_many(self, table: str, values: Mapping[str, Any], **filters: Any) -> int:
        check_columns(table, values)
        check_columns(table, filters)
        if not filters:
            raise ValueError("update_many requires at least one filter")
        with self._lock:
            targets = [r for r in self._tables[table] if _matches(r, filters)]
            for r in targets:
                candidate = dict(r)
                candidate.update(values)
                self._check_unique(table, candidate, ignore_id=r["id"])
            for r in targets:
                r.update(values)
            return len(targets)

    def delete_many(self, table: str, **filters: Any) -> int:
        check_columns(table, filters)
        if not filters:
            raise ValueError("delete_many requires at least one filter")
        with self._lock:
            doomed = [r for r in self._tables[table] if _matches(r, filters)]
            if not doomed:
                return 0
            doomed_ids = {r["id"] for r in doomed}
            self._tables[table] = [r for r in self._tables[table] if r["id"] not in doomed_ids]
            self._apply_cascades(table, doomed_ids)
            return len(doomed)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the block atomically; restore the previous state on error.

        Nested calls join the outermost transaction.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            snapshot = copy.deepcopy(self._tables)
            self._depth = 1
            try:
                yield
            except BaseException:
                self._tables = snapshot
                raise
            finally:
                self._depth = 0

    # --- Helpers ---------------------------------------------------------------
    def _check_unique(self, table: str, record: dict, ignore_id: Optional[str] = None) -> None:
        for ix in unique_indexes_for(table):
            key = ix.key_of(record)
            if key is None:
                continue
            for existing in self._tables[table]:
                if existing["id"] == ignore_id:
                    continue
                if ix.key_of(existing) == key:
                    raise UniqueConstraintError(table, ix.name)

    def _apply_cascades(self, parent: str, parent_ids: set) -> None:
        for fk in foreign_keys_referencing(parent):
            rows = self._tables[fk.table]
            hit = [r for r in rows if r.get(fk.column) in parent_ids]
            if not hit:
                continue
            if fk.on_delete == "cascade":
                child_ids = {r["id"] for r in hit}
                self._tables[fk.table] = [r for r in rows if r["id"] not in child_ids]
                self._apply_cascades(fk.table, child_ids)
            elif fk.on_delete == "set null":
                for r in hit:
                    r[fk.column] = None

    def reset(self) -> None:
        """Drop all rows (test helper)."""
        with self._lock:
            for name in self._tables:
                self._tables[name] = []


__all__ = ["InMemoryRecordStore"]
