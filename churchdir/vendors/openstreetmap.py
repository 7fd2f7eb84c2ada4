"""OpenStreetMap church lookups through the public Overpass API."""

import logging
from typing import Any, Dict, Optional

import requests

from churchdir.etl.states import state_abbr_for, state_name_for
from churchdir.models import ChurchSearchParams, ChurchSearchResult, RawChurchRecord
from churchdir.vendors.base import MILES_TO_METERS, ProviderError, safe_float

logger = logging.getLogger(__name__)
_SESSION = requests.Session()

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_LIMIT = 100
WORSHIP_SELECTOR = '["amenity"="place_of_worship"]["religion"="christian"]'


class OverpassError(ProviderError):
    """Raised when Overpass rejects a query."""


def build_radius_query(lat: float, lng: float, radius_meters: float, limit: int) -> str:
    around = f"(around:{radius_meters},{lat},{lng})"
    return (
        "[out:json][timeout:30];\n(\n"
        f"  node{WORSHIP_SELECTOR}{around};\n"
        f"  way{WORSHIP_SELECTOR}{around};\n"
        f"  relation{WORSHIP_SELECTOR}{around};\n"
        f");\nout center {limit};"
    )


def build_area_query(city: str, limit: int) -> str:
    escaped = city.replace("\\", "\\\\").replace('"', '\\"')
    return (
        "[out:json][timeout:60];\n"
        f'area["name"="{escaped}"]["admin_level"~"[78]"]->.city;\n(\n'
        f"  node{WORSHIP_SELECTOR}(area.city);\n"
        f"  way{WORSHIP_SELECTOR}(area.city);\n"
        f"  relation{WORSHIP_SELECTOR}(area.city);\n"
        f");\nout center {limit};"
    )


def _street_from_tags(tags: Dict[str, str]) -> str:
    parts = [tags[key] for key in ("addr:housenumber", "addr:street") if tags.get(key)]
    if not parts and tags.get("addr:full"):
        return tags["addr:full"]
    return " ".join(parts)


class OpenStreetMapProvider:
    name = "openstreetmap"

    def __init__(self, user_agent: str, *, session: Optional[requests.Session] = None) -> None:
        self.user_agent = user_agent or ""
        self._session = session

    @property
    def session(self) -> requests.Session:
        return self._session or _SESSION

    def is_configured(self) -> bool:
        return bool(self.user_agent)

    def _run_query(self, query: str) -> Dict[str, Any]:
        response = self.session.post(
            OVERPASS_URL,
            data={"data": query},
            headers={"User-Agent": self.user_agent},
            timeout=90,
        )
        if not 200 <= response.status_code < 300:
            body = response.text or ""
            logger.error("Overpass query failed: status=%s body=%s", response.status_code, body[:200])
            raise OverpassError(
                f"Overpass API error: {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return response.json() or {}

    def search_churches(self, params: ChurchSearchParams) -> ChurchSearchResult:
        if not self.is_configured():
            raise OverpassError("OpenStreetMap user agent not configured")

        limit = params.limit or DEFAULT_LIMIT
        if params.lat is not None and params.lng is not None:
            radius_meters = (params.radius_miles or 25) * MILES_TO_METERS
            query = build_radius_query(params.lat, params.lng, radius_meters, limit)
        elif params.city and params.state:
            query = build_area_query(params.city, limit)
        else:
            raise ValueError("Must provide either lat/lng or city/state for OpenStreetMap search")

        payload = self._run_query(query)
        records = [
            record
            for record in (self.transform_element(element, params) for element in payload.get("elements") or [])
            if record
        ]
        return ChurchSearchResult(records=records, total_estimate=len(records))

    def get_church_details(self, source_id: str) -> Optional[RawChurchRecord]:
        element_type, _, element_id = (source_id or "").partition("/")
        if element_type not in {"node", "way", "relation"} or not element_id.isdigit():
            return None

        try:
            payload = self._run_query(f"[out:json][timeout:10];\n{element_type}({element_id});\nout center;")
        except OverpassError as exc:
            logger.warning("Overpass details lookup failed for %s: %s", source_id, exc)
            return None

        elements = payload.get("elements") or []
        if not elements:
            return None
        return self.transform_element(elements[0], ChurchSearchParams())

    def transform_element(self, element: Dict[str, Any], params: ChurchSearchParams) -> Optional[RawChurchRecord]:
        tags = element.get("tags") or {}
        center = element.get("center") or {}
        lat = safe_float(element.get("lat", center.get("lat")))
        lng = safe_float(element.get("lon", center.get("lon")))
        name = tags.get("name")
        if lat is None or lng is None or not name:
            return None

        state = tags.get("addr:state") or params.state or ""
        # addr:state is usually the postal abbreviation.
        state_abbr = state_abbr_for(state)
        state = state_name_for(state_abbr) or state
        return RawChurchRecord(
            name=name,
            street=_street_from_tags(tags),
            city=tags.get("addr:city") or params.city or "",
            state=state,
            state_abbr=state_abbr,
            zip=tags.get("addr:postcode") or "",
            lat=lat,
            lng=lng,
            source_id=f"{element.get('type')}/{element.get('id')}",
            source=self.name,
            phone=tags.get("phone") or tags.get("contact:phone"),
            email=tags.get("email") or tags.get("contact:email"),
            website=tags.get("website") or tags.get("contact:website"),
            denomination=tags.get("denomination"),
            raw=element,
        )
