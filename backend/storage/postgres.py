"""
Postgres-backed record store (psycopg3).

Design:
    - Outside a transaction every call opens a short-lived connection.
    - `transaction()` binds one connection to the current thread; all store
      calls on that thread reuse it and commit or roll back together.
    - Returns plain dicts (timestamps as ISO strings, numerics as floats) so
      services stay independent of the driver.

Security:
    Table and column names come only from the closed `TABLE_COLUMNS` set and
    are quoted; values are always bound parameters.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
import logging
import threading
from typing import Any, Iterator, List, Mapping, Optional, Tuple
from uuid import uuid4

from .errors import InfrastructureError, UniqueConstraintError
from .ports import check_columns

try:
    import psycopg
    from psycopg.rows import dict_row
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    dict_row = None  # type: ignore
    UniqueViolation = None  # type: ignore
    HAVE_PSYCOPG = False
else:  # pragma: no cover - import errors handled above
    try:
        from psycopg.errors import UniqueViolation  # type: ignore
    except Exception:  # pragma: no cover - fallback when errors module unavailable
        UniqueViolation = None  # type: ignore

_log = logging.getLogger("mamal.storage")

_ORDER_COLUMNS = {
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


def _q(ident: str) -> str:
    return '"' + ident.replace('"', '""') + '"'


def _where(filters: Mapping[str, Any]) -> Tuple[str, list]:
    clauses = []
    params: list = []
    for col, val in filters.items():
        if val is None:
            clauses.append(f"{_q(col)} is null")
        else:
            clauses.append(f"{_q(col)} = %s")
            params.append(val)
    if not clauses:
        return "", params
    return " where " + " and ".join(clauses), params


def _normalize(row: Optional[Mapping[str, Any]]) -> Optional[dict]:
    if row is None:
        return None
    out = {}
    for k, v in dict(row).items():
        if isinstance(v, datetime):
            v = v.astimezone(timezone.utc).isoformat()
        elif isinstance(v, Decimal):
            v = float(v)
        out[k] = v
    return out


class PostgresRecordStore:
    """Record store on top of psycopg3.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string.
    connect_timeout:
        Seconds before a connection attempt is abandoned (InfrastructureError).
    """

    def __init__(self, dsn: str, *, connect_timeout: int = 5) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for PostgresRecordStore")
        if not dsn:
            raise RuntimeError("No database DSN provided for PostgresRecordStore")
        self._dsn = dsn
        self._connect_timeout = int(connect_timeout)
        self._local = threading.local()

    # --- Connection handling ---------------------------------------------------
    def _connect(self):
        try:
            return psycopg.connect(self._dsn, connect_timeout=self._connect_timeout)
        except Exception as exc:
            raise self._translate("connect", exc) from exc

    @staticmethod
    def _is_driver_error(exc: BaseException) -> bool:
        err_cls = getattr(psycopg, "Error", None)
        if isinstance(err_cls, type) and isinstance(exc, err_cls):
            return True
        return getattr(exc, "sqlstate", None) is not None or isinstance(exc, OSError)

    def _translate(self, table: str, exc: BaseException) -> Exception:
        sqlstate = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
        if (UniqueViolation is not None and isinstance(exc, UniqueViolation)) or sqlstate == "23505":
            diag = getattr(exc, "diag", None)
            return UniqueConstraintError(table, getattr(diag, "constraint_name", "") or "")
        _log.warning("record store failure table=%s err=%s", table, exc.__class__.__name__)
        return InfrastructureError(f"record store unavailable ({exc.__class__.__name__})")

    @contextmanager
    def _connection(self, table: str) -> Iterator[Any]:
        bound = getattr(self._local, "conn", None)
        if bound is not None:
            try:
                yield bound
            except (UniqueConstraintError, InfrastructureError, ValueError):
                raise
            except Exception as exc:
                if self._is_driver_error(exc):
                    raise self._translate(table, exc) from exc
                raise
            return
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except (UniqueConstraintError, InfrastructureError, ValueError):
            conn.rollback()
            raise
        except Exception as exc:
            try:
                conn.rollback()
            except Exception:
                pass
            if self._is_driver_error(exc):
                raise self._translate(table, exc) from exc
            raise
        finally:
            conn.close()

    def _execute(self, table: str, stmt: str, params: list, *, fetch: str) -> Any:
        with self._connection(table) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(stmt, params)
                if fetch == "one":
                    return _normalize(cur.fetchone())
                if fetch == "all":
                    return [_normalize(r) for r in (cur.fetchall() or [])]
                return int(cur.rowcount or 0)

    # --- Port ------------------------------------------------------------------
    def find(self, table: str, **filters: Any) -> Optional[dict]:
        check_columns(table, filters)
        where, params = _where(filters)
        order = _ORDER_COLUMNS[table]
        stmt = f"select * from {_q(table)}{where} order by {_q(order)}, {_q('id')} limit 1"
        return self._execute(table, stmt, params, fetch="one")

    def find_many(self, table: str, **filters: Any) -> List[dict]:
        check_columns(table, filters)
        where, params = _where(filters)
        order = _ORDER_COLUMNS[table]
        stmt = f"select * from {_q(table)}{where} order by {_q(order)}, {_q('id')}"
        return self._execute(table, stmt, params, fetch="all")

    def create(self, table: str, row: Mapping[str, Any]) -> dict:
        check_columns(table, row)
        values = {k: v for k, v in row.items() if v is not None}
        values.setdefault("id", str(uuid4()))
        cols = list(values.keys())
        stmt = (
            f"insert into {_q(table)} ({', '.join(_q(c) for c in cols)}) "
            f"values ({', '.join(['%s'] * len(cols))}) returning *"
        )
        created = self._execute(table, stmt, [values[c] for c in cols], fetch="one")
        if created is None:
            raise InfrastructureError(f"{table} insert returned no row")
        return created

    def update_many(self, table: str, values: Mapping[str, Any], **filters: Any) -> int:
        check_columns(table, values)
        check_columns(table, filters)
        if not filters:
            raise ValueError("update_many requires at least one filter")
        if not values:
            return 0
        assignments = ", ".join(f"{_q(c)} = %s" for c in values)
        where, params = _where(filters)
        stmt = f"update {_q(table)} set {assignments}{where}"
        return self._execute(table, stmt, list(values.values()) + params, fetch="count")

    def delete_many(self, table: str, **filters: Any) -> int:
        check_columns(table, filters)
        if not filters:
            raise ValueError("delete_many requires at least one filter")
        where, params = _where(filters)
        return self._execute(table, f"delete from {_q(table)}{where}", params, fetch="count")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit every store call made in the block together, or none of them."""
        if getattr(self._local, "conn", None) is not None:
            yield
            return
        conn = self._connect()
        self._local.conn = conn
        try:
            yield
        except BaseException:
            self._local.conn = None
            try:
                conn.rollback()
            except Exception as exc:
                _log.warning("rollback failed: %s", exc.__class__.__name__)
            conn.close()
            raise
        self._local.conn = None
        try:
            conn.commit()
        except Exception as exc:
            if self._is_driver_error(exc):
                raise self._translate("commit", exc) from exc
            raise
        finally:
            conn.close()


__all__ = ["PostgresRecordStore"]
