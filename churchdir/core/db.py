"""PostgreSQL access for the ``churches`` collection.

Every :class:`ChurchStore` owns its own small connection pool so that each
enrichment worker talks to the database through a private handle.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import psycopg2
from psycopg2 import extras, pool

from churchdir.core.config import ConfigError

logger = logging.getLogger(__name__)

CHURCH_COLUMNS = frozenset(
    {
        "id",
        "slug",
        "name",
        "address",
        "city",
        "state",
        "state_abbr",
        "zip",
        "lat",
        "lng",
        "phone",
        "email",
        "website",
        "denomination",
        "worship_style",
        "service_times",
        "has_kids_ministry",
        "has_youth_group",
        "has_small_groups",
        "ai_description",
        "ai_what_to_expect",
        "ai_generated_at",
        "source",
        "source_id",
        "created_at",
        "updated_at",
    }
)
_JSON_COLUMNS = frozenset({"service_times"})
_READ_ONLY_COLUMNS = frozenset({"id", "created_at", "updated_at"})
QUEUE_STATUSES = ("pending", "processing", "completed", "failed")

Filters = Optional[Mapping[str, Any]]


class StoreError(RuntimeError):
    """Raised when a database operation fails."""


def _check_queue_status(status: str) -> None:
    if status not in QUEUE_STATUSES:
        raise ValueError(f"Unknown enrichment queue status: {status}")


def _check_columns(columns: Iterable[str]) -> List[str]:
    checked = list(columns)
    unknown = [column for column in checked if column not in CHURCH_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown churches column(s): {', '.join(sorted(unknown))}")
    return checked


def _build_where(
    filters: Filters = None,
    null_fields: Sequence[str] = (),
    any_null_fields: Sequence[str] = (),
) -> Tuple[str, Dict[str, Any]]:
    clauses: List[str] = []
    params: Dict[str, Any] = {}

    for column, value in (filters or {}).items():
        _check_columns([column])
        key = f"f_{column}"
        if value is None:
            clauses.append(f"{column} IS NULL")
        elif isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(f"{column} = ANY(%({key})s)")
            params[key] = list(value)
        else:
            clauses.append(f"{column} = %({key})s")
            params[key] = value

    for column in _check_columns(null_fields):
        clauses.append(f"{column} IS NULL")

    any_null = _check_columns(any_null_fields)
    if any_null:
        clauses.append("(" + " OR ".join(f"{column} IS NULL" for column in any_null) + ")")

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


def _prepare_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    prepared: Dict[str, Any] = {}
    for column, value in values.items():
        if column in _JSON_COLUMNS and value is not None:
            prepared[column] = extras.Json(value)
        else:
            prepared[column] = value
    return prepared


class ChurchStore:
    """Predicate queries, inserts, partial updates and deletes over ``churches``."""

    def __init__(self, dsn: str, *, minconn: int = 1, maxconn: int = 2) -> None:
        if not dsn:
            raise ConfigError("DATABASE_URL is required for database connections")
        self._dsn = dsn
        self._minconn = minconn
        self._maxconn = maxconn
        self._pool: Optional[pool.SimpleConnectionPool] = None

    def _get_pool(self) -> pool.SimpleConnectionPool:
        if self._pool is None:
            try:
                self._pool = pool.SimpleConnectionPool(
                    self._minconn,
                    self._maxconn,
                    dsn=self._dsn,
                    connect_timeout=10,
                )
            except psycopg2.Error as exc:
                raise StoreError(f"Unable to connect to the database: {exc}") from exc
            logger.info("Database connection pool initialised")
        return self._pool

    @contextmanager
    def connection(self):
        """Context manager yielding a pooled connection."""
        pg_pool = self._get_pool()
        conn = pg_pool.getconn()
        try:
            yield conn
        finally:
            pg_pool.putconn(conn)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None

    def _execute(self, query: str, params: Mapping[str, Any], fetch: Optional[str] = None) -> Any:
        with self.connection() as conn:
            try:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    cur.execute(query, params)
                    if fetch == "all":
                        result = [dict(row) for row in cur.fetchall()]
                    elif fetch == "one":
                        row = cur.fetchone()
                        result = dict(row) if row is not None else None
                    else:
                        result = cur.rowcount
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise StoreError(str(exc).strip()) from exc
        return result

    def fetch(
        self,
        filters: Filters = None,
        *,
        null_fields: Sequence[str] = (),
        any_null_fields: Sequence[str] = (),
        columns: Sequence[str] = (),
        order_by: Sequence[str] = ("created_at", "id"),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Return rows matching equality filters and ``IS NULL`` predicates."""
        where, params = _build_where(filters, null_fields, any_null_fields)
        select = ", ".join(_check_columns(columns)) if columns else "*"
        query = f"SELECT {select} FROM churches {where}"
        if order_by:
            query += " ORDER BY " + ", ".join(_check_columns(order_by))
        if limit is not None:
            query += " LIMIT %(limit)s"
            params["limit"] = limit
        if offset:
            query += " OFFSET %(offset)s"
            params["offset"] = offset
        return self._execute(query, params, fetch="all")

    def iter_rows(
        self,
        filters: Filters = None,
        *,
        page_size: int = 1000,
        limit: Optional[int] = None,
        **query: Any,
    ) -> Iterator[Dict[str, Any]]:
        """Yield rows page by page using offset pagination."""
        offset = 0
        yielded = 0
        while limit is None or yielded < limit:
            size = page_size if limit is None else min(page_size, limit - yielded)
            rows = self.fetch(filters, limit=size, offset=offset, **query)
            for row in rows:
                yield row
            yielded += len(rows)
            offset += len(rows)
            if len(rows) < size:
                break

    def find_one(self, filters: Filters = None, *, columns: Sequence[str] = ()) -> Optional[Dict[str, Any]]:
        rows = self.fetch(filters, columns=columns, order_by=(), limit=1)
        return rows[0] if rows else None

    def count(
        self,
        filters: Filters = None,
        *,
        null_fields: Sequence[str] = (),
        any_null_fields: Sequence[str] = (),
    ) -> int:
        where, params = _build_where(filters, null_fields, any_null_fields)
        row = self._execute(f"SELECT COUNT(*) AS total FROM churches {where}", params, fetch="one")
        return int(row["total"]) if row else 0

    def count_by_source(self) -> Dict[str, int]:
        rows = self._execute(
            "SELECT source, COUNT(*) AS total FROM churches WHERE source IS NOT NULL GROUP BY source",
            {},
            fetch="all",
        )
        return {row["source"]: int(row["total"]) for row in rows}

    def insert(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert one church and return its ``id``, ``name`` and ``slug``."""
        columns = _check_columns(values.keys())
        if set(columns) & _READ_ONLY_COLUMNS:
            raise ValueError("id, created_at and updated_at are managed by the database")
        if not values.get("name"):
            raise ValueError("name is required for insert")
        placeholders = ", ".join(f"%({column})s" for column in columns)
        query = (
            f"INSERT INTO churches ({', '.join(columns)}) VALUES ({placeholders}) "
            "RETURNING id, name, slug"
        )
        row = self._execute(query, _prepare_values(values), fetch="one")
        logger.debug("Inserted church %s", values.get("name"))
        return row

    def update(self, church_id: Any, values: Mapping[str, Any]) -> bool:
        """Apply a partial update; ``updated_at`` is always refreshed."""
        columns = [column for column in _check_columns(values.keys()) if column != "updated_at"]
        if "id" in columns:
            raise ValueError("id cannot be updated")
        assignments = [f"{column} = %({column})s" for column in columns]
        assignments.append("updated_at = NOW()")
        params = _prepare_values({column: values[column] for column in columns})
        params["church_id"] = church_id
        query = f"UPDATE churches SET {', '.join(assignments)} WHERE id = %(church_id)s"
        return self._execute(query, params) > 0

    def delete(self, church_id: Any) -> bool:
        return self._execute("DELETE FROM churches WHERE id = %(church_id)s", {"church_id": church_id}) > 0

    def enqueue_enrichment(self, church_id: Any) -> None:
        self._execute(
            "INSERT INTO enrichment_queue (church_id, status, created_at) "
            "VALUES (%(church_id)s, 'pending', NOW()) "
            "ON CONFLICT (church_id) DO UPDATE SET status = 'pending', error = NULL, "
            "started_at = NULL, completed_at = NULL",
            {"church_id": church_id},
        )

    def fetch_queue(self, status: str = "pending", limit: int = 10) -> List[Any]:
        """Return church ids of queue entries in ``status``, oldest first."""
        _check_queue_status(status)
        rows = self._execute(
            "SELECT church_id FROM enrichment_queue WHERE status = %(status)s "
            "ORDER BY created_at LIMIT %(limit)s",
            {"status": status, "limit": limit},
            fetch="all",
        )
        return [row["church_id"] for row in rows]

    def set_queue_status(self, church_ids: Sequence[Any], status: str, error: Optional[str] = None) -> int:
        _check_queue_status(status)
        ids = [str(church_id) for church_id in church_ids]
        if not ids:
            return 0
        assignments = ["status = %(status)s", "error = %(error)s"]
        if status == "processing":
            assignments.append("started_at = NOW()")
        elif status in ("completed", "failed"):
            assignments.append("completed_at = NOW()")
        query = f"UPDATE enrichment_queue SET {', '.join(assignments)} WHERE church_id::text = ANY(%(church_ids)s)"
        return self._execute(query, {"status": status, "error": error, "church_ids": ids})

    def queue_stats(self) -> Dict[str, int]:
        rows = self._execute(
            "SELECT status, COUNT(*) AS total FROM enrichment_queue GROUP BY status",
            {},
            fetch="all",
        )
        stats = {status: 0 for status in QUEUE_STATUSES}
        stats.update({row["status"]: int(row["total"]) for row in rows})
        return stats

    def retry_failed(self, limit: int = 100) -> int:
        """Move up to ``limit`` failed queue entries back to pending."""
        rows = self._execute(
            "UPDATE enrichment_queue SET status = 'pending', error = NULL, started_at = NULL, completed_at = NULL "
            "WHERE church_id IN (SELECT church_id FROM enrichment_queue WHERE status = 'failed' "
            "ORDER BY created_at LIMIT %(limit)s) RETURNING church_id",
            {"limit": limit},
            fetch="all",
        )
        return len(rows)
