"""CLI job that fills missing denomination/phone/website/email from the directory CSV.

Churches missing a denomination or phone are matched against the CSV by
normalised address first and normalised phone second. Only empty fields are
filled; existing values are never overwritten.
"""

import argparse
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from churchdir.core.config import ConfigError, get_settings, require_database_url
from churchdir.core.db import ChurchStore, StoreError
from churchdir.etl.normalize import map_denomination, normalize_address, normalize_phone
from churchdir.vendors.csv_directory import CsvDirectoryProvider

logger = logging.getLogger(__name__)

BACKFILL_COLUMNS = ("id", "name", "address", "city", "state_abbr", "phone", "denomination", "website", "email")
FILLABLE_FIELDS = ("denomination", "phone", "website", "email")


@dataclass(slots=True)
class CsvLookupData:
    phone: Optional[str] = None
    denomination: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None


@dataclass(slots=True)
class BackfillStats:
    processed: int = 0
    matched: int = 0
    no_match: int = 0
    denomination: int = 0
    phone: int = 0
    website: int = 0
    email: int = 0
    errors: int = 0


def build_lookup_maps(rows: Iterable[Mapping[str, Optional[str]]]) -> Tuple[Dict[str, CsvLookupData], Dict[str, CsvLookupData]]:
    """Address and phone lookups; the first CSV row for a key wins."""
    by_address: Dict[str, CsvLookupData] = {}
    by_phone: Dict[str, CsvLookupData] = {}
    csv_rows = 0

    for row in rows:
        csv_rows += 1
        address = (row.get("Address") or "").strip()
        city = (row.get("Suburb") or "").strip()
        state_abbr = (row.get("State") or "").strip().upper()
        if not address or not city or not state_abbr:
            continue

        phone = (row.get("Phone") or "").strip() or None
        data = CsvLookupData(
            phone=phone,
            denomination=map_denomination(row.get("Categories")),
            website=(row.get("Website") or "").strip() or None,
            email=(row.get("Emails") or "").split(",")[0].strip() or None,
        )
        if not data.phone and not data.denomination:
            continue

        by_address.setdefault(normalize_address(address, city, state_abbr), data)
        phone_key = normalize_phone(phone)
        if phone_key:
            by_phone.setdefault(phone_key, data)

    logger.info("Processed %s CSV rows: %s address keys, %s phone keys", csv_rows, len(by_address), len(by_phone))
    return by_address, by_phone


def plan_update(church: Mapping[str, Any], data: CsvLookupData) -> Dict[str, str]:
    return {
        field: getattr(data, field)
        for field in FILLABLE_FIELDS
        if not church.get(field) and getattr(data, field)
    }


def run_backfill(
    store: ChurchStore,
    csv_rows: Iterable[Mapping[str, Optional[str]]],
    *,
    dry_run: bool = False,
    limit: Optional[int] = None,
) -> BackfillStats:
    by_address, by_phone = build_lookup_maps(csv_rows)

    # Load the full candidate list first; updates remove rows from the predicate.
    churches = list(
        store.iter_rows(
            any_null_fields=("denomination", "phone"),
            columns=BACKFILL_COLUMNS,
            order_by=("id",),
            limit=limit,
        )
    )
    logger.info("Loaded %s churches that need backfill", len(churches))

    stats = BackfillStats()
    for position, church in enumerate(churches, start=1):
        stats.processed += 1
        address_key = normalize_address(church.get("address"), church.get("city"), church.get("state_abbr"))
        phone_key = normalize_phone(church.get("phone"))

        data = by_address.get(address_key)
        if data is None and phone_key:
            data = by_phone.get(phone_key)
        if data is None:
            stats.no_match += 1
            continue

        stats.matched += 1
        updates = plan_update(church, data)
        for field in updates:
            setattr(stats, field, getattr(stats, field) + 1)

        if updates and not dry_run:
            try:
                store.update(church["id"], updates)
            except StoreError as exc:
                logger.warning("Failed to update %s: %s", church.get("name"), exc)
                stats.errors += 1

        if position % 1000 == 0:
            logger.info("Progress: %s/%s - %s matched", position, len(churches), stats.matched)

    return stats


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backfill missing church data from the directory CSV")
    parser.add_argument("--csv", dest="csv_path", help="Path to churchesusa.csv (defaults to CHURCHES_CSV_PATH)")
    parser.add_argument("--dry-run", action="store_true", help="Preview without updating")
    parser.add_argument("--limit", type=int, help="Process only the first N churches")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    settings = get_settings()
    try:
        dsn = require_database_url(settings)
        provider = CsvDirectoryProvider(args.csv_path or settings.churches_csv_path)
        if not provider.is_configured():
            raise ConfigError(f"CSV file not found: {provider.csv_path}")
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    store = ChurchStore(dsn)
    try:
        stats = run_backfill(store, provider.iter_rows(), dry_run=args.dry_run, limit=args.limit)
    except StoreError as exc:
        logger.error("Error loading churches: %s", exc)
        return 1
    finally:
        store.close()

    logger.info(
        "Backfill summary: processed=%s matched=%s no_match=%s denomination=%s phone=%s website=%s email=%s errors=%s",
        stats.processed,
        stats.matched,
        stats.no_match,
        stats.denomination,
        stats.phone,
        stats.website,
        stats.email,
        stats.errors,
    )
    if args.dry_run:
        logger.info("Dry run - no records were updated")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
