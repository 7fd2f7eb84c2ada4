import pytest

from churchdir.models import ChurchSearchParams
from churchdir.vendors import google_places


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []
        self.response = DummyResponse()

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append(("POST", url, json, headers, timeout))
        return self.response

    def get(self, url, headers=None, timeout=None):
        self.calls.append(("GET", url, None, headers, timeout))
        return self.response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(google_places, "_SESSION", session)
    return session


def make_place(**overrides):
    place = {
        "id": "ChIJ123",
        "displayName": {"text": "First Baptist Church"},
        "formattedAddress": "100 Main St, Springfield, IL 62701, USA",
        "addressComponents": [
            {"longText": "Springfield", "shortText": "Springfield", "types": ["locality", "political"]},
            {"longText": "Illinois", "shortText": "IL", "types": ["administrative_area_level_1", "political"]},
            {"longText": "62701", "shortText": "62701", "types": ["postal_code"]},
        ],
        "location": {"latitude": 39.8, "longitude": -89.6},
        "nationalPhoneNumber": "(217) 555-0100",
        "websiteUri": "https://fbc.example.org",
        "regularOpeningHours": {
            "periods": [
                {"open": {"day": 0, "hour": 9, "minute": 0}, "close": {"day": 0, "hour": 12, "minute": 30}},
                {"open": {"day": 3, "hour": 18, "minute": 0}},
            ]
        },
        "rating": 4.8,
        "userRatingCount": 120,
        "photos": [{"name": f"places/ChIJ123/photos/p{index}"} for index in range(7)],
    }
    place.update(overrides)
    return place


def test_build_search_body_with_location_bias():
    provider = google_places.GooglePlacesProvider("key", default_radius_miles=10)
    body = provider.build_search_body(
        ChurchSearchParams(city="Springfield", state="IL", lat=39.8, lng=-89.6, limit=50, page_token="next")
    )

    assert body["textQuery"] == "churches in Springfield, IL"
    assert body["maxResultCount"] == 20
    assert body["languageCode"] == "en"
    assert body["locationBias"]["circle"]["radius"] == pytest.approx(16093.4)
    assert body["pageToken"] == "next"


def test_search_churches_posts_field_mask(patch_session):
    patch_session.response = DummyResponse(payload={"places": [make_place(), {"id": "nameless"}], "nextPageToken": "tok"})
    provider = google_places.GooglePlacesProvider("key")

    result = provider.search_churches(ChurchSearchParams(city="Springfield", state="IL"))

    method, url, body, headers, timeout = patch_session.calls[0]
    assert method == "POST"
    assert url.endswith("/places:searchText")
    assert headers["X-Goog-Api-Key"] == "key"
    assert "places.displayName" in headers["X-Goog-FieldMask"]
    assert "nextPageToken" in headers["X-Goog-FieldMask"]
    assert timeout == 10
    assert len(result.records) == 1
    assert result.next_page_token == "tok"


def test_search_churches_raises_on_error_status(patch_session):
    patch_session.response = DummyResponse(status_code=403, text="API key not valid")
    provider = google_places.GooglePlacesProvider("key")

    with pytest.raises(google_places.GooglePlacesError) as excinfo:
        provider.search_churches(ChurchSearchParams(city="Springfield", state="IL"))

    assert excinfo.value.status_code == 403
    assert "API key not valid" in excinfo.value.body


def test_unconfigured_provider_refuses_to_search(patch_session):
    provider = google_places.GooglePlacesProvider("")
    assert provider.is_configured() is False
    with pytest.raises(google_places.GooglePlacesError):
        provider.search_churches(ChurchSearchParams(city="Springfield", state="IL"))
    assert patch_session.calls == []


def test_transform_place_maps_fields():
    record = google_places.GooglePlacesProvider("key").transform_place(make_place())

    assert record.name == "First Baptist Church"
    assert record.street == "100 Main St"
    assert (record.city, record.state, record.state_abbr, record.zip) == ("Springfield", "Illinois", "IL", "62701")
    assert (record.lat, record.lng) == (39.8, -89.6)
    assert record.source == "google_places"
    assert record.source_id == "ChIJ123"
    assert record.phone == "(217) 555-0100"
    assert len(record.photo_urls) == 5
    assert record.photo_urls[0].endswith("/places/ChIJ123/photos/p0/media?key=key&maxWidthPx=800")
    assert [(hours.day, hours.open_time, hours.close_time) for hours in record.hours] == [("Sunday", "09:00", "12:30")]


def test_transform_place_requires_name_and_location():
    provider = google_places.GooglePlacesProvider("key")
    assert provider.transform_place(make_place(displayName={})) is None
    assert provider.transform_place(make_place(location=None)) is None


def test_parse_address_components_fills_state_both_ways():
    only_long = google_places.parse_address_components(
        [{"longText": "Texas", "types": ["administrative_area_level_1"]}]
    )
    only_short = google_places.parse_address_components(
        [{"shortText": "TX", "types": ["administrative_area_level_1"]}]
    )

    assert only_long["state_abbr"] == "TX"
    assert only_short["state"] == "Texas"


def test_get_church_details_handles_not_found(patch_session):
    provider = google_places.GooglePlacesProvider("key")

    patch_session.response = DummyResponse(status_code=404)
    assert provider.get_church_details("missing") is None

    patch_session.response = DummyResponse(payload=make_place())
    record = provider.get_church_details("ChIJ123")
    assert record.source_id == "ChIJ123"
    assert patch_session.calls[-1][1].endswith("/places/ChIJ123")
