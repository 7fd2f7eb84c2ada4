"""CLI job that generates AI descriptions and visitor guides for churches."""

import argparse
import logging
import signal
import threading
from typing import Callable, Optional, Sequence

from churchdir.core.config import ConfigError, Settings, get_settings, require_ai_key, require_database_url
from churchdir.core.db import ChurchStore, StoreError
from churchdir.core.enrichment import UNENRICHED, PoolSummary, run_pool, run_single_batch
from churchdir.vendors.ai_client import create_ai_client

logger = logging.getLogger(__name__)

DEFAULT_BATCH = 10
DELAY_BETWEEN_ROUNDS = 2.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate AI content for churches without a description")
    parser.add_argument("--batch", type=int, default=DEFAULT_BATCH, help="Number of churches to process (default: 10)")
    parser.add_argument("--all", action="store_true", help="Process every church without AI content")
    parser.add_argument("--workers", type=int, help="Run N parallel workers sharded by state")
    parser.add_argument("--continuous", action="store_true", help="Repeat until no church is left to enrich")
    parser.add_argument("--dry-run", action="store_true", help="Generate content without saving it")
    parser.add_argument("--skip-website", action="store_true", help="Do not fetch church websites")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _run_round(
    args: argparse.Namespace,
    store: ChurchStore,
    store_factory: Callable[[], ChurchStore],
    ai_client_factory: Callable,
    stop_event: threading.Event,
) -> PoolSummary:
    options = {"skip_website": args.skip_website, "dry_run": args.dry_run}
    if args.workers:
        return run_pool(store_factory, ai_client_factory, workers=args.workers, stop_event=stop_event, **options)

    limit = None if args.all else args.batch
    stats = run_single_batch(store, ai_client_factory(), limit=limit, stop_event=stop_event, **options)
    return PoolSummary(workers=[stats])


def run_enrichment(
    args: argparse.Namespace,
    *,
    settings: Optional[Settings] = None,
    stop_event: Optional[threading.Event] = None,
) -> int:
    settings = settings or get_settings()
    stop_event = stop_event or threading.Event()

    if args.workers is not None and args.workers < 1:
        logger.error("--workers must be at least 1")
        return 1
    if args.batch < 1:
        logger.error("--batch must be at least 1")
        return 1

    try:
        dsn = require_database_url(settings)
        require_ai_key(settings)
        create_ai_client(settings)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    store = ChurchStore(dsn)
    try:
        try:
            remaining = store.count(null_fields=UNENRICHED)
        except StoreError as exc:
            logger.error("Error fetching churches: %s", exc)
            return 1

        logger.info(
            "%s churches without AI content (workers=%s, dry_run=%s, skip_website=%s)",
            remaining,
            args.workers or 1,
            args.dry_run,
            args.skip_website,
        )
        if remaining == 0:
            logger.info("No churches need enrichment")
            return 0

        totals = PoolSummary()
        round_number = 0
        while not stop_event.is_set():
            round_number += 1
            try:
                summary = _run_round(
                    args,
                    store,
                    lambda: ChurchStore(dsn),
                    lambda: create_ai_client(settings),
                    stop_event,
                )
            except StoreError as exc:
                logger.error("Error fetching churches: %s", exc)
                return 1
            totals.workers.extend(summary.workers)
            totals.failed_workers.extend(summary.failed_workers)
            logger.info(
                "Round %s: processed=%s success=%s needs_review=%s deleted=%s errors=%s",
                round_number,
                summary.processed,
                summary.success,
                summary.needs_review,
                summary.deleted,
                summary.errors,
            )

            if not args.continuous or args.dry_run or stop_event.is_set():
                break
            if summary.processed - summary.errors == 0:
                logger.warning("Round %s changed no church; stopping continuous mode", round_number)
                break
            try:
                remaining = store.count(null_fields=UNENRICHED)
            except StoreError as exc:
                logger.error("Error counting churches: %s", exc)
                return 1
            if remaining == 0:
                logger.info("All churches have been enriched")
                break
            logger.info("%s churches remaining", remaining)
            stop_event.wait(DELAY_BETWEEN_ROUNDS)

        logger.info(
            "Enrichment complete: processed=%s success=%s needs_review=%s deleted=%s errors=%s%s",
            totals.processed,
            totals.success,
            totals.needs_review,
            totals.deleted,
            totals.errors,
            " (dry run - nothing saved)" if args.dry_run else "",
        )
        if totals.failed_workers:
            logger.error("Workers %s stopped with an error", ", ".join(str(worker_id) for worker_id in totals.failed_workers))
            return 1
        return 0
    finally:
        store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    stop_event = threading.Event()

    def _request_stop(signum, frame) -> None:
        logger.warning("Stop requested; finishing in-flight records")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    return run_enrichment(args, stop_event=stop_event)


if __name__ == "__main__":
    raise SystemExit(main())
