"""Business-directory CSV export (``churchesusa.csv``) as an acquisition source."""

from __future__ import annotations

import csv
import hashlib
import logging
import re
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from churchdir.etl.normalize import infer_denomination_from_name, map_denomination
from churchdir.etl.states import state_abbr_for, state_name_for
from churchdir.models import ChurchSearchParams, ChurchSearchResult, RawChurchRecord
from churchdir.vendors.base import ProviderError, safe_float, strip_or_none

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

EXCLUDED_CATEGORIES = (
    "Church of Jesus Christ of Latter-day Saints",
    "Church Supplies & Services",
    "Scientology Churches",
    "Mosques",
    "Unity Churches",
    "Eckankar Churches",
    "Metaphysical Churches",
    "Metaphysical Christian Churches",
    "Religious Science Churches",
    "Spiritualist Churches",
    "Unitarian Universalist Churches",
)
SCHOOL_INDICATORS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bschool\b",
        r"\bacademy\b",
        r"\belementary\b",
        r"\bpreschool\b",
        r"\bdaycare\b",
        r"\bchild care\b",
        r"\bchildcare\b",
        r"\blearning center\b",
        r"\bearly learning\b",
        r"\bkindergarten\b",
    )
)


def is_excluded_category(category: Optional[str]) -> bool:
    if not category:
        return False
    lowered = category.lower()
    return any(excluded.lower() in lowered for excluded in EXCLUDED_CATEGORIES)


def is_school(text: Optional[str]) -> bool:
    return bool(text) and any(pattern.search(text) for pattern in SCHOOL_INDICATORS)


def parse_geo_coordinates(value: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """Parse ``"33.24148,-117.00784"``; out-of-range or malformed input yields ``(None, None)``."""
    if not value:
        return None, None
    parts = value.replace('"', "").strip().split(",")
    if len(parts) != 2:
        return None, None
    lat, lng = safe_float(parts[0].strip()), safe_float(parts[1].strip())
    if lat is None or lng is None or not -90 <= lat <= 90 or not -180 <= lng <= 180:
        return None, None
    return lat, lng


def csv_denomination(category: Optional[str], name: Optional[str]) -> Optional[str]:
    return map_denomination(category) or infer_denomination_from_name(name)


def csv_source_id(name: str, address: str, city: str, state_abbr: str) -> str:
    digest = hashlib.sha1(f"{name}|{address}|{city}|{state_abbr}".lower().encode("utf-8")).hexdigest()
    return f"churchesusa-{digest[:12]}"


def _cell(row: Dict[str, Optional[str]], column: str) -> str:
    return (row.get(column) or "").strip()


class CsvDirectoryProvider:
    name = "churchesusa"

    def __init__(self, csv_path: Optional[str]) -> None:
        self.csv_path = Path(csv_path) if csv_path else None

    def is_configured(self) -> bool:
        return bool(self.csv_path and self.csv_path.is_file())

    def iter_rows(self) -> Iterator[Dict[str, Optional[str]]]:
        """Yield raw CSV rows keyed by header."""
        if not self.is_configured():
            raise ProviderError(f"CSV file not found: {self.csv_path}")
        with self.csv_path.open(newline="", encoding="utf-8-sig") as handle:
            yield from csv.DictReader(handle)

    def row_to_record(self, row: Dict[str, Optional[str]]) -> Optional[RawChurchRecord]:
        """Convert one CSV row, or return ``None`` when it is not an importable church."""
        name = _cell(row, "Business name")
        address = _cell(row, "Address")
        city = _cell(row, "Suburb")
        state_abbr = _cell(row, "State").upper()
        category = _cell(row, "Categories")

        if not name or not address or not city or not state_name_for(state_abbr):
            return None
        if is_excluded_category(category):
            return None
        if is_school(_cell(row, "AKA")) or is_school(name):
            return None

        lat, lng = parse_geo_coordinates(_cell(row, "Geo coordinates"))
        if lat is None or lng is None:
            return None
        email = _cell(row, "Emails").split(",")[0].strip() or None
        return RawChurchRecord(
            name=name,
            street=address,
            city=city,
            state=state_name_for(state_abbr),
            state_abbr=state_abbr,
            zip=_cell(row, "Zipcode"),
            lat=lat,
            lng=lng,
            source_id=csv_source_id(name, address, city, state_abbr),
            source=self.name,
            phone=strip_or_none(row.get("Phone")),
            email=email,
            website=strip_or_none(row.get("Website")),
            denomination=csv_denomination(category, name),
            raw=dict(row),
        )

    def iter_records(self, *, state: Optional[str] = None, city: Optional[str] = None) -> Iterator[RawChurchRecord]:
        wanted_state = state_abbr_for(state) if state else ""
        wanted_city = city.strip().lower() if city else ""
        for row in self.iter_rows():
            record = self.row_to_record(row)
            if record is None:
                continue
            if wanted_state and record.state_abbr != wanted_state:
                continue
            if wanted_city and record.city.lower() != wanted_city:
                continue
            yield record

    def search_churches(self, params: ChurchSearchParams) -> ChurchSearchResult:
        offset = int(params.page_token or 0)
        limit = params.limit or DEFAULT_LIMIT
        records = []
        has_more = False
        for index, record in enumerate(self.iter_records(state=params.state, city=params.city)):
            if index < offset:
                continue
            if len(records) >= limit:
                has_more = True
                break
            records.append(record)

        next_page_token = str(offset + len(records)) if has_more else None
        return ChurchSearchResult(records=records, next_page_token=next_page_token)
