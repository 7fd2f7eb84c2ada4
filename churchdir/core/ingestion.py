"""Dedup-aware import of acquired church records into the store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from churchdir.core.db import ChurchStore, StoreError
from churchdir.core.enrichment import NEEDS_REVIEW_MARKER
from churchdir.etl.normalize import normalize_address, normalize_phone
from churchdir.etl.states import state_abbr_for
from churchdir.etl.transform import to_church_row, to_update_fields
from churchdir.models import ChurchSearchParams, RawChurchRecord
from churchdir.vendors.manager import ProviderManager

logger = logging.getLogger(__name__)

DRY_RUN_ID = "dry-run"
MAX_RECORDS_PER_IMPORT = 500
MAX_BATCH_LOCATIONS = 50
DEFAULT_LIMIT_PER_LOCATION = 50
DEFAULT_LOCATION_DELAY = 1.0

_INDEX_COLUMNS = ("id", "address", "city", "state_abbr", "phone", "source", "source_id")


@dataclass(slots=True)
class IngestionOptions:
    skip_duplicates: bool = True
    update_existing: bool = False
    queue_enrichment: bool = True
    dry_run: bool = False


@dataclass(slots=True)
class IngestionResult:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    updated: int = 0
    churches: List[Dict[str, Any]] = field(default_factory=list)
    error_details: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": self.errors,
            "updated": self.updated,
            "churches": [{key: str(value) if key == "id" else value for key, value in church.items()} for church in self.churches],
            "errorDetails": list(self.error_details),
        }


@dataclass(slots=True)
class LocationImportResult:
    location: str
    success: bool
    result: Optional[IngestionResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"location": self.location, "success": self.success}
        if self.result is not None:
            payload["result"] = self.result.to_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class BatchImportResult:
    results: List[LocationImportResult] = field(default_factory=list)
    total_imported: int = 0
    total_skipped: int = 0
    total_errors: int = 0

    @property
    def locations_processed(self) -> int:
        return len(self.results)

    def summary(self) -> Dict[str, int]:
        return {
            "locationsProcessed": self.locations_processed,
            "totalImported": self.total_imported,
            "totalSkipped": self.total_skipped,
            "totalErrors": self.total_errors,
        }


@dataclass(slots=True)
class SingleImportResult:
    success: bool
    church: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class DuplicateIndex:
    """Source ids plus normalised address and phone keys of rows already known for one state."""

    def __init__(self) -> None:
        self._by_source: Dict[Tuple[str, str], Any] = {}
        self._by_address: Dict[str, Any] = {}
        self._by_phone: Dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._by_source) + len(self._by_address) + len(self._by_phone)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "DuplicateIndex":
        index = cls()
        for row in rows:
            index.add(
                row.get("id"),
                row.get("address"),
                row.get("city"),
                row.get("state_abbr"),
                row.get("phone"),
                source=row.get("source"),
                source_id=row.get("source_id"),
            )
        return index

    def add(
        self,
        church_id: Any,
        street: Optional[str],
        city: Optional[str],
        state_abbr: Optional[str],
        phone: Optional[str],
        *,
        source: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> None:
        source_key = self.source_key(source, source_id)
        if source_key:
            self._by_source.setdefault(source_key, church_id)
        address_key = self.address_key(street, city, state_abbr)
        if address_key:
            self._by_address.setdefault(address_key, church_id)
        phone_key = normalize_phone(phone)
        if phone_key:
            self._by_phone.setdefault(phone_key, church_id)

    @staticmethod
    def source_key(source: Optional[str], source_id: Optional[str]) -> Optional[Tuple[str, str]]:
        if not source or not source_id:
            return None
        return source, str(source_id)

    @staticmethod
    def address_key(street: Optional[str], city: Optional[str], state_abbr: Optional[str]) -> Optional[str]:
        key = normalize_address(street, city, state_abbr)
        # A key without a street part would merge every church in the same city.
        if key.startswith("|"):
            return None
        return key

    def match(
        self,
        street: Optional[str],
        city: Optional[str],
        state_abbr: Optional[str],
        phone: Optional[str],
        *,
        source: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Optional[Any]:
        source_key = self.source_key(source, source_id)
        if source_key and source_key in self._by_source:
            return self._by_source[source_key]
        address_key = self.address_key(street, city, state_abbr)
        if address_key and address_key in self._by_address:
            return self._by_address[address_key]
        phone_key = normalize_phone(phone)
        if phone_key and phone_key in self._by_phone:
            return self._by_phone[phone_key]
        return None


class IngestionService:
    def __init__(
        self,
        store: ChurchStore,
        provider_manager: ProviderManager,
        *,
        max_records: int = MAX_RECORDS_PER_IMPORT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.provider_manager = provider_manager
        self.max_records = max_records
        self._sleep = sleep

    def _load_index(self, state_abbr: str) -> DuplicateIndex:
        rows = self.store.iter_rows({"state_abbr": state_abbr}, columns=_INDEX_COLUMNS, order_by=("id",))
        index = DuplicateIndex.from_rows(rows)
        logger.debug("Loaded %s dedup keys for %s", len(index), state_abbr or "<no state>")
        return index

    def fetch_records(self, params: ChurchSearchParams, provider: Optional[str] = None) -> List[RawChurchRecord]:
        """Follow page tokens until exhausted or the record cap is reached."""
        cap = min(params.limit, self.max_records) if params.limit else self.max_records
        records: List[RawChurchRecord] = []
        page = params
        while True:
            result = self.provider_manager.search_churches(page, provider)
            records.extend(result.records)
            if len(records) >= cap or not result.next_page_token:
                break
            page = params.with_page_token(result.next_page_token)
        return records[:cap]

    def import_from_provider(
        self,
        params: ChurchSearchParams,
        provider: Optional[str] = None,
        options: Optional[IngestionOptions] = None,
    ) -> IngestionResult:
        records = self.fetch_records(params, provider)
        logger.info("Fetched %s records from %s", len(records), provider or self.provider_manager.default_provider_name)
        return self.import_records(records, options)

    def import_records(self, records: Sequence[RawChurchRecord], options: Optional[IngestionOptions] = None) -> IngestionResult:
        options = options or IngestionOptions()
        result = IngestionResult()
        indexes: Dict[str, DuplicateIndex] = {}

        for record in records:
            try:
                self._import_one(record, options, indexes, result)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to import %s: %s", record.name, exc)
                result.errors += 1
                result.error_details.append({"name": record.name, "error": str(exc)})

        logger.info(
            "Import finished: imported=%s updated=%s skipped=%s errors=%s",
            result.imported,
            result.updated,
            result.skipped,
            result.errors,
        )
        return result

    def _import_one(
        self,
        record: RawChurchRecord,
        options: IngestionOptions,
        indexes: Dict[str, DuplicateIndex],
        result: IngestionResult,
    ) -> None:
        state_abbr = (record.state_abbr or state_abbr_for(record.state)).upper()
        if state_abbr not in indexes:
            indexes[state_abbr] = self._load_index(state_abbr)
        index = indexes[state_abbr]

        match_id = index.match(
            record.street,
            record.city,
            state_abbr,
            record.phone,
            source=record.source,
            source_id=record.source_id,
        )
        if match_id is not None:
            if options.update_existing:
                if not options.dry_run and match_id != DRY_RUN_ID:
                    self.store.update(match_id, to_update_fields(record))
                result.updated += 1
                return
            if options.skip_duplicates:
                logger.debug("Skipping duplicate %s (matches %s)", record.name, match_id)
                result.skipped += 1
                return

        row = to_church_row(record)
        if options.dry_run:
            church = {"id": DRY_RUN_ID, "name": row["name"], "slug": row["slug"]}
        else:
            church = self.store.insert(row)

        index.add(
            church["id"],
            row["address"],
            row["city"],
            state_abbr,
            row["phone"],
            source=row["source"],
            source_id=row["source_id"],
        )
        result.imported += 1
        result.churches.append(church)

        if options.queue_enrichment and not options.dry_run and church.get("id"):
            self._queue_enrichment(church)

    def _queue_enrichment(self, church: Mapping[str, Any]) -> None:
        # The row already exists; a queue failure leaves it to the enrichment CLI.
        try:
            self.store.enqueue_enrichment(church["id"])
        except StoreError as exc:
            logger.warning("Could not queue %s for enrichment: %s", church.get("name"), exc)

    def import_single(
        self,
        source_id: str,
        provider: Optional[str] = None,
        options: Optional[IngestionOptions] = None,
    ) -> SingleImportResult:
        options = options or IngestionOptions()
        try:
            record = self.provider_manager.get_church_details(source_id, provider)
            if record is None:
                return SingleImportResult(success=False, error="Church not found")

            row = to_church_row(record)
            if options.dry_run:
                return SingleImportResult(success=True, church={**row, "id": DRY_RUN_ID})

            existing = self.store.find_one({"source": record.source, "source_id": record.source_id}, columns=("id",))
            if existing:
                self.store.update(existing["id"], to_update_fields(record))
                church = {"id": existing["id"], "name": row["name"], "slug": row["slug"]}
            else:
                church = self.store.insert(row)

            if options.queue_enrichment and church.get("id"):
                self._queue_enrichment(church)
            return SingleImportResult(success=True, church=church)
        except Exception as exc:  # noqa: BLE001
            logger.error("Single import of %s failed: %s", source_id, exc)
            return SingleImportResult(success=False, error=str(exc))

    def import_locations(
        self,
        locations: Sequence[Mapping[str, Any]],
        provider: Optional[str] = None,
        options: Optional[IngestionOptions] = None,
        *,
        limit_per_location: int = DEFAULT_LIMIT_PER_LOCATION,
        delay_seconds: float = DEFAULT_LOCATION_DELAY,
    ) -> BatchImportResult:
        """Import each ``{city, state, radius_miles?}`` location once, in order."""
        batch = BatchImportResult()
        for position, location in enumerate(locations):
            label = f"{location.get('city')}, {location.get('state')}"
            params = ChurchSearchParams(
                city=location.get("city"),
                state=location.get("state"),
                radius_miles=location.get("radius_miles"),
                limit=limit_per_location,
            )
            try:
                result = self.import_from_provider(params, provider, options)
            except Exception as exc:  # noqa: BLE001
                logger.error("Import for %s failed: %s", label, exc)
                batch.results.append(LocationImportResult(location=label, success=False, error=str(exc)))
                batch.total_errors += 1
            else:
                batch.results.append(LocationImportResult(location=label, success=True, result=result))
                batch.total_imported += result.imported
                batch.total_skipped += result.skipped
                batch.total_errors += result.errors

            if position < len(locations) - 1 and delay_seconds > 0:
                self._sleep(delay_seconds)
        return batch

    def get_stats(self) -> Dict[str, Any]:
        return {
            "totalChurches": self.store.count(),
            "bySource": self.store.count_by_source(),
            "pendingEnrichment": self.store.count(null_fields=("ai_description",)),
            "needsReview": self.store.count({"ai_description": NEEDS_REVIEW_MARKER}),
        }
