"""SerpAPI Google Maps engine as a church acquisition source."""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from serpapi import GoogleSearch

from churchdir.etl.states import state_abbr_for, state_name_for
from churchdir.models import ChurchSearchParams, ChurchSearchResult, RawChurchRecord
from churchdir.vendors.base import ProviderError, safe_float, safe_int, strip_or_none

logger = logging.getLogger(__name__)

PAGE_SIZE = 20
_STATE_ZIP = re.compile(r"^(?P<state>[A-Za-z .]+?)\s*(?P<zip>\d{5}(?:-\d{4})?)?$")


class SerpApiError(ProviderError):
    """Raised when SerpAPI returns an error payload."""


def build_serpapi_params(params: ChurchSearchParams, api_key: str) -> Dict[str, Any]:
    """Construct SerpAPI request parameters for the Google Maps engine."""
    if params.city and params.state:
        query = f"churches in {params.city}, {params.state}"
    elif params.city:
        query = f"churches in {params.city}"
    else:
        query = "churches"

    request: Dict[str, Any] = {
        "engine": "google_maps",
        "q": query,
        "api_key": api_key,
        "type": "search",
    }
    if params.lat is not None and params.lng is not None:
        request["ll"] = f"@{params.lat},{params.lng},14z"
    if params.page_token:
        request["start"] = int(params.page_token)
    return request


def parse_formatted_address(address: Optional[str]) -> Dict[str, str]:
    """Split ``"123 Main St, Springfield, IL 62701, United States"`` into parts."""
    parts = [part.strip() for part in (address or "").split(",") if part.strip()]
    if parts and parts[-1].lower() in {"united states", "usa", "us"}:
        parts = parts[:-1]

    parsed = {"street": "", "city": "", "state": "", "state_abbr": "", "zip": ""}
    if not parts:
        return parsed

    match = _STATE_ZIP.match(parts[-1])
    if len(parts) >= 2 and match and state_abbr_for(match.group("state")):
        parsed["state_abbr"] = state_abbr_for(match.group("state"))
        parsed["state"] = state_name_for(parsed["state_abbr"])
        parsed["zip"] = match.group("zip") or ""
        parts = parts[:-1]

    if len(parts) >= 2:
        parsed["city"] = parts[-1]
        parsed["street"] = ", ".join(parts[:-1])
    else:
        parsed["street"] = parts[0]
    return parsed


def _extract_items(data: Dict[str, Any]) -> Iterable[Any]:
    """SerpAPI sometimes returns local_results as a list or nested dict."""
    local_results = data.get("local_results")
    if isinstance(local_results, list):
        return local_results
    if isinstance(local_results, dict):
        for maybe in (local_results.get("places"), local_results.get("results")):
            if isinstance(maybe, list):
                return maybe
    place_results = data.get("place_results")
    if isinstance(place_results, dict):
        return [place_results]
    return []


class SerpApiMapsProvider:
    name = "serpapi"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key or ""

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch(self, request: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Calling SerpAPI for q=%s start=%s", request.get("q"), request.get("start", 0))
        data = GoogleSearch(request).get_dict()
        if not data:
            raise SerpApiError("SerpAPI returned an empty payload.")
        if "error" in data:
            raise SerpApiError(f"SerpAPI returned an error response: {data.get('error')}", body=str(data.get("error")))
        return data

    def search_churches(self, params: ChurchSearchParams) -> ChurchSearchResult:
        if not self.is_configured():
            raise SerpApiError("SERPAPI_API_KEY not configured")

        request = build_serpapi_params(params, self.api_key)
        data = self.fetch(request)
        items = list(_extract_items(data))
        records = [record for record in map(self.transform_result, items) if record]
        if params.limit:
            records = records[: params.limit]

        next_page_token = None
        if (data.get("serpapi_pagination") or {}).get("next") and len(items) >= PAGE_SIZE:
            next_page_token = str(request.get("start", 0) + PAGE_SIZE)
        return ChurchSearchResult(records=records, next_page_token=next_page_token)

    def transform_result(self, raw: Any) -> Optional[RawChurchRecord]:
        if not isinstance(raw, dict):
            return None
        name = (raw.get("title") or raw.get("name") or "").strip()
        gps = raw.get("gps_coordinates") or {}
        lat = safe_float(gps.get("latitude"))
        lng = safe_float(gps.get("longitude"))
        if not name or lat is None or lng is None:
            return None

        address = parse_formatted_address(raw.get("address"))
        source_id = raw.get("place_id") or raw.get("data_id")
        if not source_id:
            source_id = hashlib.sha1(f"{name}|{raw.get('address')}".encode("utf-8")).hexdigest()[:16]

        categories: List[str] = [raw["type"]] if isinstance(raw.get("type"), str) else []
        return RawChurchRecord(
            name=name,
            street=address["street"],
            city=address["city"],
            state=address["state"],
            state_abbr=address["state_abbr"],
            zip=address["zip"],
            lat=lat,
            lng=lng,
            source_id=str(source_id),
            source=self.name,
            phone=strip_or_none(raw.get("phone")),
            website=strip_or_none(raw.get("website")),
            denomination=categories[0] if categories else None,
            rating=safe_float(raw.get("rating")),
            review_count=safe_int(raw.get("reviews_count") or raw.get("reviews")),
            raw=raw,
        )
