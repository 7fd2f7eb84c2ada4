"""Client for the Google Places API (New) text search and place details."""

import logging
from typing import Any, Dict, List, Optional

import requests

from churchdir.etl.states import state_abbr_for, state_name_for
from churchdir.models import ChurchSearchParams, ChurchSearchResult, OperatingHours, RawChurchRecord
from churchdir.vendors.base import MILES_TO_METERS, ProviderError

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://places.googleapis.com/v1"

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MAX_RESULTS_PER_REQUEST = 20
MAX_PHOTOS = 5

PLACE_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "addressComponents",
    "location",
    "nationalPhoneNumber",
    "internationalPhoneNumber",
    "websiteUri",
    "regularOpeningHours",
    "rating",
    "userRatingCount",
    "photos",
)
SEARCH_FIELD_MASK = ",".join([f"places.{field}" for field in PLACE_FIELDS] + ["nextPageToken"])
DETAILS_FIELD_MASK = ",".join(PLACE_FIELDS)


class GooglePlacesError(ProviderError):
    """Raised when the Places API returns a non-successful response."""


def _raise_for_status(response: requests.Response, operation: str) -> None:
    if 200 <= response.status_code < 300:
        return
    body = response.text or ""
    logger.error("%s failed: status=%s body=%s", operation, response.status_code, body[:200])
    raise GooglePlacesError(
        f"Google Places API error: {response.status_code}",
        status_code=response.status_code,
        body=body,
    )


def _format_time(point: Dict[str, Any]) -> str:
    return f"{int(point.get('hour', 0)):02d}:{int(point.get('minute', 0)):02d}"


def parse_opening_hours(periods: Optional[List[Dict[str, Any]]]) -> Optional[List[OperatingHours]]:
    if not periods:
        return None

    hours: List[OperatingHours] = []
    for period in periods:
        opening = period.get("open") or {}
        closing = period.get("close")
        if not closing:
            continue
        day_index = opening.get("day")
        day = DAY_NAMES[day_index] if isinstance(day_index, int) and 0 <= day_index < 7 else "Unknown"
        hours.append(OperatingHours(day=day, open_time=_format_time(opening), close_time=_format_time(closing)))
    return hours


def parse_address_components(components: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    city = state = state_abbr = zip_code = ""

    for component in components or []:
        types = component.get("types") if isinstance(component, dict) else None
        if not isinstance(types, list):
            continue
        if "locality" in types:
            city = component.get("longText") or ""
        elif "administrative_area_level_1" in types:
            state = component.get("longText") or ""
            state_abbr = component.get("shortText") or ""
        elif "postal_code" in types:
            zip_code = component.get("longText") or ""

    if state and not state_abbr:
        state_abbr = state_abbr_for(state)
    if state_abbr and not state:
        state = state_name_for(state_abbr)

    return {"city": city, "state": state, "state_abbr": state_abbr, "zip": zip_code}


class GooglePlacesProvider:
    """Church search through Places text search with page-token pagination."""

    name = "google_places"

    def __init__(self, api_key: str, *, default_radius_miles: float = 25.0, session: Optional[requests.Session] = None) -> None:
        self.api_key = api_key or ""
        self.default_radius_miles = default_radius_miles
        self._session = session

    @property
    def session(self) -> requests.Session:
        return self._session or _SESSION

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _ensure_configured(self) -> None:
        if not self.is_configured():
            raise GooglePlacesError("Google Places API key not configured")

    def build_search_body(self, params: ChurchSearchParams) -> Dict[str, Any]:
        limit = params.limit or MAX_RESULTS_PER_REQUEST
        if params.city and params.state:
            text_query = f"churches in {params.city}, {params.state}"
        elif params.city:
            text_query = f"churches in {params.city}"
        else:
            text_query = "churches"

        body: Dict[str, Any] = {
            "textQuery": text_query,
            "maxResultCount": min(limit, MAX_RESULTS_PER_REQUEST),
            "languageCode": "en",
        }
        if params.lat is not None and params.lng is not None:
            radius_miles = params.radius_miles or self.default_radius_miles
            body["locationBias"] = {
                "circle": {
                    "center": {"latitude": params.lat, "longitude": params.lng},
                    "radius": radius_miles * MILES_TO_METERS,
                }
            }
        if params.page_token:
            body["pageToken"] = params.page_token
        return body

    def search_churches(self, params: ChurchSearchParams) -> ChurchSearchResult:
        self._ensure_configured()
        body = self.build_search_body(params)
        response = self.session.post(
            f"{_BASE_URL}/places:searchText",
            json=body,
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": SEARCH_FIELD_MASK,
            },
            timeout=10,
        )
        _raise_for_status(response, "places:searchText")
        payload = response.json() or {}

        records = [record for record in map(self.transform_place, payload.get("places") or []) if record]
        logger.debug("Places search %r returned %s usable places", body["textQuery"], len(records))
        return ChurchSearchResult(records=records, next_page_token=payload.get("nextPageToken"))

    def get_church_details(self, source_id: str) -> Optional[RawChurchRecord]:
        self._ensure_configured()
        response = self.session.get(
            f"{_BASE_URL}/places/{source_id}",
            headers={"X-Goog-Api-Key": self.api_key, "X-Goog-FieldMask": DETAILS_FIELD_MASK},
            timeout=10,
        )
        if response.status_code == 404:
            return None
        _raise_for_status(response, "places/details")
        return self.transform_place(response.json() or {})

    def transform_place(self, place: Dict[str, Any]) -> Optional[RawChurchRecord]:
        name = (place.get("displayName") or {}).get("text")
        location = place.get("location")
        if not name or not location:
            return None

        address = parse_address_components(place.get("addressComponents"))
        formatted = place.get("formattedAddress") or ""
        street = formatted.split(",")[0].strip()

        photos = place.get("photos") or []
        photo_urls = [
            f"{_BASE_URL}/{photo['name']}/media?key={self.api_key}&maxWidthPx=800"
            for photo in photos[:MAX_PHOTOS]
            if photo.get("name")
        ]

        return RawChurchRecord(
            name=name,
            street=street,
            city=address["city"],
            state=address["state"],
            state_abbr=address["state_abbr"],
            zip=address["zip"],
            lat=location.get("latitude"),
            lng=location.get("longitude"),
            source_id=place.get("id") or "",
            source=self.name,
            phone=place.get("nationalPhoneNumber") or place.get("internationalPhoneNumber"),
            website=place.get("websiteUri"),
            hours=parse_opening_hours((place.get("regularOpeningHours") or {}).get("periods")),
            rating=place.get("rating"),
            review_count=place.get("userRatingCount"),
            photo_urls=photo_urls or None,
            raw=place,
        )
