from __future__ import annotations

import copy
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

import pytest

from placematch.common.config_loader import ConfigBundle, load_all_configs
from placematch.common.fs import write_json
from placematch.common.http import ApiError
from placematch.common.models import MatchCandidate

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeDirectory:
    """Directory double: every search returns every known place as a candidate."""

    def __init__(self, places: list[dict], *, fail_details: set[str] | None = None, crash_on_details: int | None = None, crash_exc=None):
        self.places = {place["id"]: place for place in places}
        self.fail_details = fail_details or set()
        self.crash_on_details = crash_on_details
        self.crash_exc = crash_exc
        self.search_calls: list[str] = []
        self.search_biases: list = []
        self.details_calls: list[str] = []
        self.request_counts: Counter = Counter()

    def search_text(self, query, *, location_bias=None, region=None, radius_m=None):
        self.search_calls.append(query)
        self.search_biases.append(location_bias)
        self.request_counts["search"] += 1
        return [MatchCandidate.from_directory(place) for place in self.places.values()]

    def get_details(self, external_id):
        self.details_calls.append(external_id)
        self.request_counts["details"] += 1
        if self.crash_on_details is not None and len(self.details_calls) == self.crash_on_details:
            raise self.crash_exc
        if external_id in self.fail_details:
            raise ApiError(500, "backend unavailable")
        return copy.deepcopy(self.places[external_id])

    def photo_url(self, reference):
        return f"https://photos.example.test/{reference}/media"

    def resolve_photo(self, reference):
        self.request_counts["photo"] += 1
        return f"https://cdn.example.test/{reference}.jpg"

    @property
    def call_counts(self):
        return dict(self.request_counts)

    def close(self):
        pass


def directory_place(place_id: str, name: str, lat: float, lng: float, **extra) -> dict:
    payload = {
        "id": place_id,
        "displayName": {"text": name, "languageCode": "en"},
        "location": {"latitude": lat, "longitude": lng},
        "formattedAddress": f"{name}, West Bay Road, Grand Cayman",
        "googleMapsUri": f"https://maps.google.com/?cid={place_id}",
        "businessStatus": "OPERATIONAL",
        "priceLevel": "PRICE_LEVEL_MODERATE",
        "nationalPhoneNumber": "(345) 555-0100",
        "internationalPhoneNumber": "+1 345-555-0100",
        "websiteUri": f"https://{place_id}.example.test",
        "rating": 4.5,
        "userRatingCount": 120,
        "regularOpeningHours": {
            "periods": [
                {"open": {"day": 1, "hour": 11, "minute": 0}, "close": {"day": 1, "hour": 22, "minute": 30}},
            ],
            "weekdayDescriptions": ["Monday: 11:00 AM - 10:30 PM"],
        },
        "photos": [
            {
                "name": f"places/{place_id}/photos/p1",
                "widthPx": 1200,
                "heightPx": 800,
                "authorAttributions": [{"displayName": "A Visitor"}],
            }
        ],
        "editorialSummary": {"text": f"{name} is a waterfront spot."},
    }
    payload.update(extra)
    return payload


def seed_record(record_id: str, name: str, *, lat=None, lng=None, category="restaurant", **extra) -> dict:
    payload = {
        "id": record_id,
        "name": name,
        "category": category,
        "location": {"island": None},
        "contact": {},
        "business": {},
        "ratings": {"overall": 0, "reviewCount": 0},
        "media": {"thumbnail": "https://images.unsplash.com/photo-1", "images": []},
    }
    if lat is not None:
        payload["location"]["coordinates"] = {"lat": lat, "lng": lng}
    payload.update(extra)
    return payload


@pytest.fixture
def bundle() -> ConfigBundle:
    loaded = load_all_configs(CONFIG_DIR)
    return ConfigBundle(enrichment=copy.deepcopy(loaded.enrichment))


@pytest.fixture
def fixed_now():
    return lambda: FIXED_NOW


@pytest.fixture
def write_input():
    def _write(bundle: ConfigBundle, data_dir: Path, records: list[dict]) -> Path:
        path = bundle.path(data_dir, "input")
        write_json(path, records)
        return path

    return _write


@pytest.fixture
def make_place():
    return directory_place


@pytest.fixture
def make_record():
    return seed_record


@pytest.fixture
def fake_directory_cls():
    return FakeDirectory
