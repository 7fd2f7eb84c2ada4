"""Sharded, rate-limited AI enrichment of un-enriched church rows.

Each worker owns a disjoint list of states (shards) plus a private store
handle and AI client. Workers share nothing except a stop event, which is
checked between records and between shards; a record that is in flight when
the event is set still completes.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from churchdir.core.db import ChurchStore, StoreError
from churchdir.core.site_fetcher import WebsiteContent, fetch_website_content
from churchdir.etl.normalize import infer_denomination_from_name, looks_like_church
from churchdir.etl.states import ALL_STATES
from churchdir.models import EnrichmentResult
from churchdir.vendors.ai_client import ChurchContext

logger = logging.getLogger(__name__)

BATCH_SIZE_PER_WORKER = 50
DELAY_BETWEEN_RECORDS = 1.0
DELAY_ON_ERROR = 5.0
DEFAULT_WORKERS = 5
MAX_CONSECUTIVE_FETCH_FAILURES = 5
NEEDS_REVIEW_MARKER = "NEEDS_REVIEW"
QUEUE_BATCH_SIZE = 10
MAX_QUEUE_BATCH = 50
QUEUE_RECORD_DELAY = 0.5
UNENRICHED = ("ai_description",)
BATCH_ORDER = ("created_at", "id")


class RecordOutcome(str, Enum):
    SUCCESS = "success"
    NEEDS_REVIEW = "needs_review"
    DELETED = "deleted"
    ERROR = "error"


class WorkerState(str, Enum):
    IDLE = "idle"
    FETCHING_BATCH = "fetching_batch"
    PROCESSING_RECORD = "processing_record"
    SHARD_EXHAUSTED = "shard_exhausted"
    DONE = "done"


@dataclass(slots=True)
class WorkerStats:
    worker_id: int
    processed: int = 0
    success: int = 0
    needs_review: int = 0
    deleted: int = 0
    errors: int = 0
    current_shard: Optional[str] = None
    state: WorkerState = WorkerState.IDLE

    def record(self, outcome: RecordOutcome) -> None:
        self.processed += 1
        if outcome is RecordOutcome.SUCCESS:
            self.success += 1
        elif outcome is RecordOutcome.NEEDS_REVIEW:
            self.needs_review += 1
        elif outcome is RecordOutcome.DELETED:
            self.deleted += 1
        else:
            self.errors += 1


@dataclass(slots=True)
class PoolSummary:
    workers: List[WorkerStats] = field(default_factory=list)
    failed_workers: List[int] = field(default_factory=list)

    def _total(self, attribute: str) -> int:
        return sum(getattr(stats, attribute) for stats in self.workers)

    @property
    def processed(self) -> int:
        return self._total("processed")

    @property
    def success(self) -> int:
        return self._total("success")

    @property
    def needs_review(self) -> int:
        return self._total("needs_review")

    @property
    def deleted(self) -> int:
        return self._total("deleted")

    @property
    def errors(self) -> int:
        return self._total("errors")


def distribute_states(states: Sequence[str], workers: int) -> List[List[str]]:
    """Round-robin ``states`` over ``workers`` lists."""
    if workers < 1:
        raise ValueError("workers must be at least 1")
    distribution: List[List[str]] = [[] for _ in range(workers)]
    for index, state in enumerate(states):
        distribution[index % workers].append(state)
    return distribution


def build_enrichment_update(
    row: Mapping[str, Any],
    enrichment: EnrichmentResult,
    email: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Partial update for a successfully enriched row."""
    update: Dict[str, Any] = {
        "ai_description": enrichment.description,
        "ai_what_to_expect": enrichment.what_to_expect,
        "ai_generated_at": now or datetime.now(timezone.utc),
    }

    denomination = enrichment.denomination or row.get("denomination") or infer_denomination_from_name(row.get("name"))
    if denomination:
        update["denomination"] = denomination
    if enrichment.worship_style:
        update["worship_style"] = list(enrichment.worship_style)
    if enrichment.service_times:
        update["service_times"] = [entry.to_dict() for entry in enrichment.service_times]
    if enrichment.has_kids_ministry is not None:
        update["has_kids_ministry"] = enrichment.has_kids_ministry
    if enrichment.has_youth_group is not None:
        update["has_youth_group"] = enrichment.has_youth_group
    if enrichment.has_small_groups is not None:
        update["has_small_groups"] = enrichment.has_small_groups
    if email and not row.get("email"):
        update["email"] = email
    return update


class EnrichmentWorker:
    def __init__(
        self,
        worker_id: int,
        states: Sequence[str],
        store: ChurchStore,
        ai_client: Any,
        *,
        stop_event: Optional[threading.Event] = None,
        batch_size: int = BATCH_SIZE_PER_WORKER,
        record_delay: float = DELAY_BETWEEN_RECORDS,
        error_delay: float = DELAY_ON_ERROR,
        skip_website: bool = False,
        dry_run: bool = False,
        fetcher: Callable[[str], WebsiteContent] = fetch_website_content,
    ) -> None:
        self.worker_id = worker_id
        self.states = list(states)
        self.store = store
        self.ai_client = ai_client
        self.stop_event = stop_event or threading.Event()
        self.batch_size = batch_size
        self.record_delay = record_delay
        self.error_delay = error_delay
        self.skip_website = skip_website
        self.dry_run = dry_run
        self.fetcher = fetcher
        self.stats = WorkerStats(worker_id=worker_id)
        self.last_error: Optional[str] = None

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    def _wait(self, seconds: float) -> None:
        if seconds > 0:
            self.stop_event.wait(seconds)

    def run(self) -> WorkerStats:
        logger.info("[worker %s] Starting with shards: %s", self.worker_id, ", ".join(self.states) or "none")
        for shard in self.states:
            if self.stopped:
                break
            self.process_shard(shard)
        self.stats.state = WorkerState.DONE
        logger.info(
            "[worker %s] Finished: processed=%s success=%s needs_review=%s deleted=%s errors=%s",
            self.worker_id,
            self.stats.processed,
            self.stats.success,
            self.stats.needs_review,
            self.stats.deleted,
            self.stats.errors,
        )
        return self.stats

    def process_shard(self, shard: str) -> None:
        """Pull full batches for ``shard`` until a short page signals exhaustion."""
        self.stats.current_shard = shard
        logger.info("[worker %s] Processing %s", self.worker_id, shard)
        # Rows this worker leaves un-enriched stay ahead in the ordering.
        offset = 0
        seen: set = set()
        failures = 0

        while not self.stopped:
            self.stats.state = WorkerState.FETCHING_BATCH
            try:
                rows = self.store.fetch(
                    {"state": shard},
                    null_fields=UNENRICHED,
                    order_by=BATCH_ORDER,
                    limit=self.batch_size,
                    offset=offset,
                )
            except StoreError as exc:
                failures += 1
                logger.error("[worker %s] Error fetching %s batch: %s", self.worker_id, shard, exc)
                if failures >= MAX_CONSECUTIVE_FETCH_FAILURES:
                    logger.error("[worker %s] Giving up on %s after %s failed pulls", self.worker_id, shard, failures)
                    break
                self._wait(self.error_delay)
                continue
            failures = 0

            fresh = [row for row in rows if row.get("id") not in seen]
            seen.update(row.get("id") for row in fresh)
            offset += self.process_rows(fresh)

            logger.info(
                "[worker %s] %s: %s enriched, %s errors",
                self.worker_id,
                shard,
                self.stats.success,
                self.stats.errors,
            )
            if len(rows) < self.batch_size or not fresh:
                break

        self.stats.state = WorkerState.SHARD_EXHAUSTED
        logger.info("[worker %s] %s complete", self.worker_id, shard)

    def process_rows(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """Process ``rows`` in order and return how many remain un-enriched."""
        remaining = 0
        for row in rows:
            if self.stopped:
                break
            outcome = self.process_record(row)
            if outcome is RecordOutcome.ERROR or self.dry_run:
                remaining += 1
            self._wait(self.error_delay if outcome is RecordOutcome.ERROR else self.record_delay)
        return remaining

    def process_record(self, row: Mapping[str, Any]) -> RecordOutcome:
        self.stats.state = WorkerState.PROCESSING_RECORD
        self.last_error = None
        name = row.get("name") or ""
        try:
            website = WebsiteContent()
            if not self.skip_website and row.get("website"):
                website = self.fetcher(row["website"])

            context = ChurchContext(
                name=name,
                city=row.get("city") or "",
                state=row.get("state") or "",
                denomination=row.get("denomination"),
                website=row.get("website"),
                website_content=website.content,
            )
            enrichment = self.ai_client.generate_combined_enrichment(context)
            outcome = self._apply(row, enrichment, website.email)
        except Exception as exc:  # noqa: BLE001
            logger.error("[worker %s] Error enriching %s: %s", self.worker_id, name, exc)
            self.last_error = str(exc)
            outcome = RecordOutcome.ERROR

        self.stats.record(outcome)
        self._mark_queue(row.get("id"), outcome)
        return outcome

    def _mark_queue(self, church_id: Any, outcome: RecordOutcome) -> None:
        # Deleted churches take their queue entry with them.
        if self.dry_run or church_id is None or outcome is RecordOutcome.DELETED:
            return
        status = "failed" if outcome is RecordOutcome.ERROR else "completed"
        try:
            self.store.set_queue_status([church_id], status, self.last_error)
        except StoreError as exc:
            logger.warning("[worker %s] Could not mark queue entry for %s as %s: %s", self.worker_id, church_id, status, exc)

    def _apply(self, row: Mapping[str, Any], enrichment: EnrichmentResult, email: Optional[str]) -> RecordOutcome:
        name = row.get("name") or ""
        if enrichment.is_empty:
            if looks_like_church(name):
                logger.info("[worker %s] Empty enrichment for %s - marking for review", self.worker_id, name)
                if not self.dry_run:
                    self.store.update(row["id"], {"ai_description": NEEDS_REVIEW_MARKER})
                return RecordOutcome.NEEDS_REVIEW

            logger.info("[worker %s] Empty enrichment for %s - deleting as non-church", self.worker_id, name)
            if not self.dry_run:
                self.store.delete(row["id"])
            return RecordOutcome.DELETED

        update = build_enrichment_update(row, enrichment, email)
        if self.dry_run:
            logger.info("[worker %s] Dry run, would update %s: %s", self.worker_id, name, sorted(update))
        else:
            self.store.update(row["id"], update)
        return RecordOutcome.SUCCESS


def run_single_batch(
    store: ChurchStore,
    ai_client: Any,
    *,
    limit: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
    **worker_options: Any,
) -> WorkerStats:
    """Process up to ``limit`` (or every) un-enriched row in ``created_at`` order."""
    rows = store.fetch(null_fields=UNENRICHED, order_by=BATCH_ORDER, limit=limit)
    logger.info("Found %s churches to enrich", len(rows))
    worker = EnrichmentWorker(0, [], store, ai_client, stop_event=stop_event, **worker_options)
    worker.process_rows(rows)
    worker.stats.state = WorkerState.DONE
    return worker.stats


def _run_worker(
    worker_id: int,
    shards: Sequence[str],
    store_factory: Callable[[], ChurchStore],
    ai_client_factory: Callable[[], Any],
    stop_event: threading.Event,
    worker_options: Dict[str, Any],
) -> WorkerStats:
    store = store_factory()
    try:
        worker = EnrichmentWorker(worker_id, shards, store, ai_client_factory(), stop_event=stop_event, **worker_options)
        return worker.run()
    finally:
        close = getattr(store, "close", None)
        if callable(close):
            close()


def run_pool(
    store_factory: Callable[[], ChurchStore],
    ai_client_factory: Callable[[], Any],
    *,
    workers: int = DEFAULT_WORKERS,
    states: Sequence[str] = ALL_STATES,
    stop_event: Optional[threading.Event] = None,
    **worker_options: Any,
) -> PoolSummary:
    """Run one thread per worker over a round-robin partition of ``states``."""
    stop_event = stop_event or threading.Event()
    assignments = [shards for shards in distribute_states(states, workers) if shards]
    logger.info("Starting %s workers over %s shards", len(assignments), len(states))

    summary = PoolSummary()
    if not assignments:
        return summary

    with ThreadPoolExecutor(max_workers=len(assignments), thread_name_prefix="enrich") as executor:
        futures = {
            executor.submit(_run_worker, worker_id, shards, store_factory, ai_client_factory, stop_event, worker_options): worker_id
            for worker_id, shards in enumerate(assignments, start=1)
        }
        for future in as_completed(futures):
            worker_id = futures[future]
            try:
                summary.workers.append(future.result())
            except Exception as exc:  # noqa: BLE001
                logger.error("[worker %s] Crashed: %s; stopping the pool", worker_id, exc)
                stop_event.set()
                summary.workers.append(WorkerStats(worker_id=worker_id, state=WorkerState.DONE))
                summary.failed_workers.append(worker_id)
    summary.workers.sort(key=lambda stats: stats.worker_id)

    logger.info(
        "Pool finished: processed=%s success=%s needs_review=%s deleted=%s errors=%s",
        summary.processed,
        summary.success,
        summary.needs_review,
        summary.deleted,
        summary.errors,
    )
    return summary


@dataclass(slots=True)
class QueueItemResult:
    church_id: Any
    success: bool
    outcome: Optional[RecordOutcome] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"churchId": str(self.church_id), "success": self.success}
        if self.outcome is not None:
            payload["outcome"] = self.outcome.value
        if self.error:
            payload["error"] = self.error
        return payload


class EnrichmentQueue:
    """Drains the ``enrichment_queue`` entries written when churches are imported.

    Pending entries are claimed as ``processing`` and each church goes through
    :meth:`EnrichmentWorker.process_record`, which marks the entry
    ``completed`` or ``failed``. Failed entries can be put back to ``pending``
    with :meth:`retry_failed`.
    """

    def __init__(
        self,
        store: ChurchStore,
        ai_client: Any,
        *,
        record_delay: float = QUEUE_RECORD_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        **worker_options: Any,
    ) -> None:
        self.store = store
        self.worker = EnrichmentWorker(0, [], store, ai_client, record_delay=0, error_delay=0, **worker_options)
        self.record_delay = record_delay
        self._sleep = sleep

    def enrich_church(self, church_id: Any) -> QueueItemResult:
        row = self.store.find_one({"id": church_id})
        if row is None:
            self.store.set_queue_status([church_id], "failed", "Church not found")
            return QueueItemResult(church_id=church_id, success=False, error="Church not found")

        outcome = self.worker.process_record(row)
        if outcome is RecordOutcome.ERROR:
            return QueueItemResult(church_id=church_id, success=False, outcome=outcome, error=self.worker.last_error)
        return QueueItemResult(church_id=church_id, success=True, outcome=outcome)

    def process(self, batch_size: int = QUEUE_BATCH_SIZE) -> List[QueueItemResult]:
        church_ids = self.store.fetch_queue("pending", min(max(batch_size, 1), MAX_QUEUE_BATCH))
        if not church_ids:
            return []

        self.store.set_queue_status(church_ids, "processing")
        results: List[QueueItemResult] = []
        for position, church_id in enumerate(church_ids):
            results.append(self.enrich_church(church_id))
            if position < len(church_ids) - 1 and self.record_delay > 0:
                self._sleep(self.record_delay)

        logger.info(
            "Queue batch finished: processed=%s successful=%s failed=%s",
            len(results),
            sum(1 for result in results if result.success),
            sum(1 for result in results if not result.success),
        )
        return results

    def stats(self) -> Dict[str, int]:
        return self.store.queue_stats()

    def retry_failed(self, limit: int = 100) -> int:
        retried = self.store.retry_failed(limit)
        logger.info("Requeued %s failed enrichment entries", retried)
        return retried
