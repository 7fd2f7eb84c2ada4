"""CLI job to acquire churches from a provider and persist them."""

import argparse
import logging
from dataclasses import replace
from typing import Optional, Sequence

from churchdir.core.config import ConfigError, Settings, get_settings, require_database_url
from churchdir.core.db import ChurchStore, StoreError
from churchdir.core.ingestion import IngestionOptions, IngestionService
from churchdir.models import ChurchSearchParams
from churchdir.vendors.base import ProviderError
from churchdir.vendors.manager import create_provider_manager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import churches from an acquisition provider")
    parser.add_argument("--provider", help="Provider name (google_places, openstreetmap, serpapi, churchesusa)")
    parser.add_argument("--city", help="City to search")
    parser.add_argument("--state", help="State name or abbreviation")
    parser.add_argument("--lat", type=float, help="Latitude of the search centre")
    parser.add_argument("--lng", type=float, help="Longitude of the search centre")
    parser.add_argument("--radius", dest="radius_miles", type=float, help="Search radius in miles")
    parser.add_argument("--limit", type=int, help="Maximum number of records to import")
    parser.add_argument("--source-id", dest="source_id", help="Import a single place by its provider id")
    parser.add_argument("--csv", dest="csv_path", help="Directory CSV path for the churchesusa provider")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and dedup without writing")
    parser.add_argument("--no-queue", action="store_true", help="Do not queue new churches for enrichment")
    parser.add_argument("--update-existing", action="store_true", help="Refresh duplicates instead of skipping them")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def run_import(args: argparse.Namespace, *, settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    if args.csv_path:
        settings = replace(settings, churches_csv_path=args.csv_path)

    has_place = bool(args.city and args.state)
    has_coordinates = args.lat is not None and args.lng is not None
    if not args.source_id and not has_place and not has_coordinates:
        logger.error("Provide --city and --state, --lat and --lng, or --source-id")
        return 1

    try:
        dsn = require_database_url(settings)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    manager = create_provider_manager(settings)
    if args.provider and args.provider not in manager.available_providers():
        logger.error("Provider %s not configured (available: %s)", args.provider, ", ".join(manager.available_providers()) or "none")
        return 1

    options = IngestionOptions(
        update_existing=args.update_existing,
        queue_enrichment=not args.no_queue,
        dry_run=args.dry_run,
    )
    store = ChurchStore(dsn)
    service = IngestionService(store, manager)
    try:
        if args.source_id:
            single = service.import_single(args.source_id, args.provider, options)
            if not single.success:
                logger.error("Import of %s failed: %s", args.source_id, single.error)
                return 1
            logger.info("Imported %s (%s)", single.church.get("name"), single.church.get("id"))
            return 0

        params = ChurchSearchParams(
            city=args.city,
            state=args.state,
            lat=args.lat,
            lng=args.lng,
            radius_miles=args.radius_miles,
            limit=args.limit,
        )
        result = service.import_from_provider(params, args.provider, options)
    except (ProviderError, StoreError) as exc:
        logger.error("Import failed: %s", exc)
        return 1
    finally:
        store.close()

    logger.info(
        "Completed import: imported=%d updated=%d skipped=%d errors=%d%s",
        result.imported,
        result.updated,
        result.skipped,
        result.errors,
        " (dry run - nothing saved)" if args.dry_run else "",
    )
    for detail in result.error_details:
        logger.warning("  %s: %s", detail["name"], detail["error"])
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    return run_import(args)


if __name__ == "__main__":
    raise SystemExit(main())
