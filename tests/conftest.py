import sys
import threading
from pathlib import Path

import pytest

# Ensure the `churchdir` package is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeStore:
    """In-memory stand-in for ``ChurchStore`` sharing one row list across handles."""

    def __init__(self, rows=None, lock=None):
        self.rows = rows if rows is not None else []
        self.lock = lock or threading.Lock()
        self.updates = []
        self.deleted = []
        self.inserted = []
        self.queued = []
        self.queue = {}
        self.fetch_calls = []
        self.fetch_errors = []
        self.closed = False

    @staticmethod
    def _matches(row, filters, null_fields, any_null_fields):
        for column, value in (filters or {}).items():
            if value is None:
                if row.get(column) is not None:
                    return False
            elif isinstance(value, (list, tuple, set, frozenset)):
                if row.get(column) not in value:
                    return False
            elif row.get(column) != value:
                return False
        if any(row.get(column) is not None for column in null_fields):
            return False
        if any_null_fields and all(row.get(column) is not None for column in any_null_fields):
            return False
        return True

    def fetch(self, filters=None, *, null_fields=(), any_null_fields=(), columns=(), order_by=("created_at", "id"), limit=None, offset=0):
        with self.lock:
            self.fetch_calls.append({"filters": filters, "limit": limit, "offset": offset})
            if self.fetch_errors:
                raise self.fetch_errors.pop(0)
            matched = [row for row in self.rows if self._matches(row, filters, null_fields, any_null_fields)]
            if order_by:
                matched.sort(key=lambda row: tuple(row.get(column, 0) for column in order_by))
            matched = matched[offset:]
            if limit is not None:
                matched = matched[:limit]
            if columns:
                return [{column: row.get(column) for column in columns} for row in matched]
            return [dict(row) for row in matched]

    def iter_rows(self, filters=None, *, page_size=1000, limit=None, **query):
        return iter(self.fetch(filters, limit=limit, **query))

    def find_one(self, filters=None, *, columns=()):
        rows = self.fetch(filters, columns=columns, order_by=(), limit=1)
        return rows[0] if rows else None

    def count(self, filters=None, *, null_fields=(), any_null_fields=()):
        with self.lock:
            return sum(1 for row in self.rows if self._matches(row, filters, null_fields, any_null_fields))

    def count_by_source(self):
        totals = {}
        for row in self.rows:
            if row.get("source"):
                totals[row["source"]] = totals.get(row["source"], 0) + 1
        return totals

    def insert(self, values):
        with self.lock:
            new_id = max([row.get("id", 0) for row in self.rows] + [0]) + 1
            row = {"ai_description": None, "created_at": new_id, **values, "id": new_id}
            self.rows.append(row)
            self.inserted.append(dict(values))
            return {"id": new_id, "name": values.get("name"), "slug": values.get("slug")}

    def update(self, church_id, values):
        with self.lock:
            self.updates.append((church_id, dict(values)))
            for row in self.rows:
                if row.get("id") == church_id:
                    row.update(values)
                    return True
            return False

    def delete(self, church_id):
        with self.lock:
            self.deleted.append(church_id)
            before = len(self.rows)
            self.rows[:] = [row for row in self.rows if row.get("id") != church_id]
            self.queue.pop(church_id, None)
            return len(self.rows) < before

    def enqueue_enrichment(self, church_id):
        self.queued.append(church_id)
        self.queue[church_id] = {"status": "pending", "error": None}

    def fetch_queue(self, status="pending", limit=10):
        return [church_id for church_id, entry in self.queue.items() if entry["status"] == status][:limit]

    def set_queue_status(self, church_ids, status, error=None):
        changed = 0
        for church_id in church_ids:
            if church_id in self.queue:
                self.queue[church_id] = {"status": status, "error": error}
                changed += 1
        return changed

    def queue_stats(self):
        stats = {status: 0 for status in ("pending", "processing", "completed", "failed")}
        for entry in self.queue.values():
            stats[entry["status"]] += 1
        return stats

    def retry_failed(self, limit=100):
        failed = [church_id for church_id, entry in self.queue.items() if entry["status"] == "failed"][:limit]
        for church_id in failed:
            self.queue[church_id] = {"status": "pending", "error": None}
        return len(failed)

    def close(self):
        self.closed = True


class FakeAIClient:
    """Returns canned ``EnrichmentResult`` objects keyed by church name."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default
        self.contexts = []
        self.lock = threading.Lock()

    def generate_combined_enrichment(self, context):
        with self.lock:
            self.contexts.append(context)
        response = self.responses.get(context.name, self.default)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(context)
        return response


@pytest.fixture
def make_store():
    return FakeStore


@pytest.fixture
def make_ai_client():
    return FakeAIClient
