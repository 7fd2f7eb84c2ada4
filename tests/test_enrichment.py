import threading
from datetime import datetime, timezone

import pytest

from churchdir.core import enrichment
from churchdir.core.db import StoreError
from churchdir.core.enrichment import EnrichmentWorker, RecordOutcome, WorkerState
from churchdir.core.site_fetcher import WebsiteContent
from churchdir.etl.states import ALL_STATES
from churchdir.models import EnrichmentResult, ServiceTime

GOOD = EnrichmentResult(
    description="A welcoming congregation.",
    what_to_expect="Casual dress.\nOne hour service.",
    worship_style=["Contemporary"],
    service_times=[ServiceTime(day="Sunday", time="10:00 AM")],
    has_kids_ministry=True,
)
EMPTY = EnrichmentResult(description="", what_to_expect="")


def church(church_id, name=None, state="Texas", **extra):
    row = {
        "id": church_id,
        "name": name or f"Church {church_id}",
        "city": "Austin",
        "state": state,
        "website": None,
        "email": None,
        "denomination": None,
        "ai_description": None,
        "created_at": church_id,
    }
    row.update(extra)
    return row


def make_worker(store, ai_client, states=("Texas",), **kwargs):
    kwargs.setdefault("record_delay", 0)
    kwargs.setdefault("error_delay", 0)
    kwargs.setdefault("fetcher", lambda url: WebsiteContent())
    return EnrichmentWorker(1, list(states), store, ai_client, **kwargs)


def test_distribute_states_round_robin():
    assert enrichment.distribute_states(["A", "B", "C", "D", "E"], 2) == [["A", "C", "E"], ["B", "D"]]
    assert enrichment.distribute_states(["A"], 3) == [["A"], [], []]
    with pytest.raises(ValueError):
        enrichment.distribute_states(["A"], 0)


@pytest.mark.parametrize("workers", [1, 5, 7, 51, 60])
def test_distribute_states_partitions_every_shard_once(workers):
    shards = [state for assigned in enrichment.distribute_states(ALL_STATES, workers) for state in assigned]
    assert sorted(shards) == sorted(ALL_STATES)
    assert len(shards) == len(set(shards))


def test_build_enrichment_update():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    row = {"name": "Trinity Lutheran Church", "denomination": None, "email": None}

    update = enrichment.build_enrichment_update(row, GOOD, "info@trinity.example", now=now)

    assert update["ai_description"] == "A welcoming congregation."
    assert update["ai_generated_at"] == now
    assert update["denomination"] == "Lutheran"
    assert update["worship_style"] == ["Contemporary"]
    assert update["service_times"] == [{"day": "Sunday", "time": "10:00 AM"}]
    assert update["has_kids_ministry"] is True
    assert "has_youth_group" not in update
    assert update["email"] == "info@trinity.example"


def test_build_enrichment_update_keeps_existing_email():
    row = {"name": "Grace Church", "denomination": "Baptist", "email": "office@grace.example"}
    update = enrichment.build_enrichment_update(row, GOOD, "info@grace.example")
    assert "email" not in update
    assert update["denomination"] == "Baptist"


def test_empty_enrichment_deletes_non_church(make_store, make_ai_client):
    store = make_store([church(1, "Joe's Plumbing")])
    worker = make_worker(store, make_ai_client(default=EMPTY))

    outcome = worker.process_record(store.rows[0])

    assert outcome is RecordOutcome.DELETED
    assert store.deleted == [1]
    assert store.rows == []
    assert worker.stats.deleted == 1


def test_empty_enrichment_marks_church_for_review(make_store, make_ai_client):
    store = make_store([church(1, "Grace Fellowship Chapel")])
    worker = make_worker(store, make_ai_client(default=EMPTY))

    outcome = worker.process_record(store.rows[0])

    assert outcome is RecordOutcome.NEEDS_REVIEW
    assert store.updates == [(1, {"ai_description": enrichment.NEEDS_REVIEW_MARKER})]
    assert store.rows[0]["ai_description"] == enrichment.NEEDS_REVIEW_MARKER
    assert store.count(null_fields=enrichment.UNENRICHED) == 0


def test_successful_record_uses_website_content(make_store, make_ai_client):
    store = make_store([church(1, "Grace Church", website="https://grace.example")])
    client = make_ai_client(default=GOOD)
    fetched = []

    def fetcher(url):
        fetched.append(url)
        return WebsiteContent(content="Sunday worship at 10", email="info@grace.example")

    worker = make_worker(store, client, fetcher=fetcher)

    assert worker.process_record(store.rows[0]) is RecordOutcome.SUCCESS
    assert fetched == ["https://grace.example"]
    assert client.contexts[0].website_content == "Sunday worship at 10"
    church_id, update = store.updates[0]
    assert church_id == 1
    assert update["ai_what_to_expect"] == GOOD.what_to_expect
    assert update["email"] == "info@grace.example"


def test_skip_website_does_not_fetch(make_store, make_ai_client):
    store = make_store([church(1, "Grace Church", website="https://grace.example")])
    fetched = []
    worker = make_worker(store, make_ai_client(default=GOOD), skip_website=True, fetcher=fetched.append)

    worker.process_record(store.rows[0])

    assert fetched == []


def test_ai_failure_leaves_row_unenriched(make_store, make_ai_client):
    store = make_store([church(1, "Grace Church")])
    worker = make_worker(store, make_ai_client(default=RuntimeError("overloaded")))

    outcome = worker.process_record(store.rows[0])

    assert outcome is RecordOutcome.ERROR
    assert store.updates == []
    assert worker.stats.errors == 1
    assert store.rows[0]["ai_description"] is None


def test_process_shard_skips_failed_rows_without_reprocessing(make_store, make_ai_client):
    store = make_store([church(1, "Broken Church"), church(2), church(3), church(4, state="Ohio")])
    client = make_ai_client({"Broken Church": RuntimeError("bad json")}, default=GOOD)
    worker = make_worker(store, client, batch_size=2)

    worker.process_shard("Texas")

    assert [context.name for context in client.contexts] == ["Broken Church", "Church 2", "Church 3"]
    assert [call["offset"] for call in store.fetch_calls] == [0, 1]
    assert (worker.stats.processed, worker.stats.success, worker.stats.errors) == (3, 2, 1)
    assert worker.stats.state is WorkerState.SHARD_EXHAUSTED


def test_dry_run_processes_each_row_once_and_writes_nothing(make_store, make_ai_client):
    store = make_store([church(1, "Joe's Plumbing"), church(2), church(3)])
    client = make_ai_client({"Joe's Plumbing": EMPTY}, default=GOOD)
    worker = make_worker(store, client, batch_size=2, dry_run=True)

    worker.run()

    assert len(client.contexts) == 3
    assert store.updates == []
    assert store.deleted == []
    assert (worker.stats.success, worker.stats.deleted) == (2, 1)
    assert worker.stats.state is WorkerState.DONE


def test_unenriched_count_never_increases(make_store, make_ai_client):
    store = make_store([church(index, "Joe's Plumbing" if index % 3 == 0 else None) for index in range(1, 8)])
    client = make_ai_client({"Church 4": RuntimeError("timeout")}, default=lambda context: EMPTY if "Plumbing" in context.name else GOOD)
    worker = make_worker(store, client, batch_size=3)
    counts = [store.count(null_fields=enrichment.UNENRICHED)]

    original = worker.process_record

    def tracking(row):
        outcome = original(row)
        counts.append(store.count(null_fields=enrichment.UNENRICHED))
        return outcome

    worker.process_record = tracking
    worker.run()

    assert counts == sorted(counts, reverse=True)
    assert counts[-1] == 1


def test_shard_gives_up_after_repeated_fetch_failures(make_store, make_ai_client):
    store = make_store([church(1)])
    store.fetch_errors = [StoreError("connection reset")] * enrichment.MAX_CONSECUTIVE_FETCH_FAILURES
    client = make_ai_client(default=GOOD)
    worker = make_worker(store, client)

    worker.process_shard("Texas")

    assert len(store.fetch_calls) == enrichment.MAX_CONSECUTIVE_FETCH_FAILURES
    assert client.contexts == []


def test_shard_recovers_from_transient_fetch_failure(make_store, make_ai_client):
    store = make_store([church(1)])
    store.fetch_errors = [StoreError("connection reset")]
    worker = make_worker(store, make_ai_client(default=GOOD))

    worker.process_shard("Texas")

    assert worker.stats.success == 1


def test_stop_event_finishes_in_flight_record(make_store, make_ai_client):
    store = make_store([church(1), church(2), church(3)])
    stop_event = threading.Event()

    def stop_after_first(context):
        stop_event.set()
        return GOOD

    worker = make_worker(store, make_ai_client(default=stop_after_first), stop_event=stop_event)

    worker.run()

    assert worker.stats.processed == 1
    assert worker.stats.success == 1
    assert len(store.fetch_calls) == 1


def test_run_single_batch_respects_limit_and_order(make_store, make_ai_client):
    store = make_store([church(3), church(1), church(2), church(4, ai_description="done")])
    client = make_ai_client(default=GOOD)

    stats = enrichment.run_single_batch(store, client, limit=2, record_delay=0, error_delay=0)

    assert [context.name for context in client.contexts] == ["Church 1", "Church 2"]
    assert stats.success == 2
    assert stats.state is WorkerState.DONE


def test_run_pool_enriches_every_shard_once(make_store, make_ai_client):
    rows = [church(index, state=state) for index, state in enumerate(["Texas", "Texas", "Ohio", "Iowa", "Iowa", "Utah"], start=1)]
    lock = threading.Lock()
    stores = []
    client = make_ai_client(default=GOOD)

    def store_factory():
        store = make_store(rows, lock)
        stores.append(store)
        return store

    summary = enrichment.run_pool(
        store_factory,
        lambda: client,
        workers=2,
        states=["Texas", "Ohio", "Iowa", "Utah"],
        record_delay=0,
        error_delay=0,
        fetcher=lambda url: WebsiteContent(),
    )

    assert summary.processed == 6
    assert summary.success == 6
    assert len(summary.workers) == 2
    assert sorted(context.name for context in client.contexts) == sorted(row["name"] for row in rows)
    assert all(row["ai_description"] == GOOD.description for row in rows)
    assert len(stores) == 2
    assert all(store.closed for store in stores)


def test_run_pool_honours_preset_stop_event(make_store, make_ai_client):
    stop_event = threading.Event()
    stop_event.set()
    client = make_ai_client(default=GOOD)

    summary = enrichment.run_pool(
        lambda: make_store([church(1)]),
        lambda: client,
        workers=3,
        states=["Texas"],
        stop_event=stop_event,
    )

    assert summary.processed == 0
    assert len(summary.workers) == 1
    assert client.contexts == []


def test_run_pool_stops_when_a_worker_crashes(make_store, make_ai_client):
    rows = [church(index, state=state) for index, state in enumerate(["Texas", "Ohio"], start=1)]
    lock = threading.Lock()
    stop_event = threading.Event()
    client = make_ai_client(default=GOOD)
    calls = []

    def ai_client_factory():
        with lock:
            calls.append(1)
            first = len(calls) == 1
        if first:
            raise RuntimeError("invalid API key")
        return client

    summary = enrichment.run_pool(
        lambda: make_store(rows, lock),
        ai_client_factory,
        workers=2,
        states=["Texas", "Ohio"],
        stop_event=stop_event,
        record_delay=0,
        error_delay=0,
    )

    assert stop_event.is_set()
    assert len(summary.failed_workers) == 1
    assert [stats.worker_id for stats in summary.workers] == [1, 2]


def test_worker_marks_queue_entries(make_store, make_ai_client):
    store = make_store([church(1, "Grace Church"), church(2, "Broken Church"), church(3, "Joe's Plumbing")])
    for church_id in (1, 2, 3):
        store.enqueue_enrichment(church_id)
    client = make_ai_client({"Broken Church": RuntimeError("overloaded"), "Joe's Plumbing": EMPTY}, default=GOOD)
    worker = make_worker(store, client)

    outcomes = [worker.process_record(row) for row in list(store.rows)]

    assert outcomes == [RecordOutcome.SUCCESS, RecordOutcome.ERROR, RecordOutcome.DELETED]
    assert store.queue == {
        1: {"status": "completed", "error": None},
        2: {"status": "failed", "error": "overloaded"},
    }


def test_dry_run_leaves_queue_untouched(make_store, make_ai_client):
    store = make_store([church(1)])
    store.enqueue_enrichment(1)

    make_worker(store, make_ai_client(default=GOOD), dry_run=True).process_record(store.rows[0])

    assert store.queue[1]["status"] == "pending"


def test_queue_worker_survives_queue_write_errors(make_store, make_ai_client):
    store = make_store([church(1)])

    def broken_set_queue_status(church_ids, status, error=None):
        raise StoreError("deadlock detected")

    store.set_queue_status = broken_set_queue_status

    assert make_worker(store, make_ai_client(default=GOOD)).process_record(store.rows[0]) is RecordOutcome.SUCCESS
    assert store.rows[0]["ai_description"] == GOOD.description


def test_enrichment_queue_processes_pending_entries(make_store, make_ai_client):
    store = make_store([church(1), church(2, "Broken Church"), church(3)])
    for church_id in (1, 2, 3):
        store.enqueue_enrichment(church_id)
    store.set_queue_status([3], "completed")
    client = make_ai_client({"Broken Church": RuntimeError("overloaded")}, default=GOOD)
    sleeps = []
    queue = enrichment.EnrichmentQueue(store, client, sleep=sleeps.append)

    results = queue.process(batch_size=10)

    assert [result.church_id for result in results] == [1, 2]
    assert results[0].to_dict() == {"churchId": "1", "success": True, "outcome": "success"}
    assert results[1].to_dict() == {"churchId": "2", "success": False, "outcome": "error", "error": "overloaded"}
    assert sleeps == [enrichment.QUEUE_RECORD_DELAY]
    assert queue.stats() == {"pending": 0, "processing": 0, "completed": 2, "failed": 1}

    assert queue.retry_failed() == 1
    assert store.queue[2] == {"status": "pending", "error": None}
    assert len(queue.process()) == 1
    assert store.queue[2]["status"] == "failed"


def test_enrichment_queue_caps_batch_and_handles_missing_church(make_store, make_ai_client):
    store = make_store()
    store.enqueue_enrichment(9)
    requested = []
    fetch_queue = store.fetch_queue

    def tracking_fetch_queue(status="pending", limit=10):
        requested.append(limit)
        return fetch_queue(status, limit)

    store.fetch_queue = tracking_fetch_queue
    queue = enrichment.EnrichmentQueue(store, make_ai_client(default=GOOD), sleep=lambda seconds: None)

    results = queue.process(batch_size=500)

    assert requested == [enrichment.MAX_QUEUE_BATCH]
    assert (results[0].success, results[0].error) == (False, "Church not found")
    assert store.queue[9]["status"] == "failed"
    assert queue.process() == []
