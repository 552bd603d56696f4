from placematch.common.models import Coordinates, EnrichmentRecord, MatchCandidate, PlaceRecord


def test_coordinates_from_value_variants():
    assert Coordinates.from_value({"lat": 19.3, "lng": -81.3}) == Coordinates(19.3, -81.3)
    assert Coordinates.from_value({"latitude": "19.3", "longitude": "-81.3"}) == Coordinates(19.3, -81.3)
    assert Coordinates.from_value({"lat": 0, "lng": 0}) is None
    assert Coordinates.from_value({"lat": 95, "lng": 0}) is None
    assert Coordinates.from_value({"lat": None, "lng": 1}) is None
    assert Coordinates.from_value("19.3,-81.3") is None


def test_match_candidate_from_directory():
    candidate = MatchCandidate.from_directory(
        {"id": "p1", "displayName": {"text": "Bar"}, "location": {"latitude": 19.3, "longitude": -81.3}, "rating": 4.1}
    )
    assert candidate.external_id == "p1"
    assert candidate.display_name == "Bar"
    assert candidate.coordinates == Coordinates(19.3, -81.3)
    assert candidate.rating == 4.1


def test_place_record_round_trip_keeps_unknown_fields():
    payload = {
        "id": "r1",
        "name": "Rum Point Club",
        "category": "restaurant",
        "tags": ["beach"],
        "location": {"island": "Grand Cayman", "coordinates": {"lat": 19.37, "lng": -81.27}, "parish": "North Side"},
        "contact": {"phone": "+1 345 555 1234", "email": "hi@example.test"},
        "business": {"priceRange": "$$", "hours": {"display": "Daily 10-5", "isOpen24Hours": False}},
        "ratings": {"overall": 4.2, "reviewCount": 10},
        "media": {"thumbnail": "https://cdn.example.test/t.jpg", "images": ["https://cdn.example.test/t.jpg"]},
    }

    record = PlaceRecord.from_dict(payload)
    out = record.to_dict()

    assert record.coordinates == Coordinates(19.37, -81.27)
    assert record.hours_display == "Daily 10-5"
    assert out["tags"] == ["beach"]
    assert out["location"]["parish"] == "North Side"
    assert out["contact"]["email"] == "hi@example.test"
    assert "isActive" not in out
    assert "enrichment" not in out
    assert PlaceRecord.from_dict(out) == record


def test_flat_location_variant_and_legacy_ids():
    record = PlaceRecord.from_dict(
        {
            "id": "r2",
            "name": "Dive Shop",
            "location": {"latitude": 19.29, "longitude": -81.38, "googlePlaceId": "legacy-1"},
            "business": {"phone": "555", "website": "https://dive.example.test", "hours": "9-5"},
            "ratings": {"googleRating": 4.7},
            "isActive": False,
        }
    )

    assert record.coordinates == Coordinates(19.29, -81.38)
    assert record.external_id == "legacy-1"
    assert record.phone == "555"
    assert record.hours_display == "9-5"
    assert record.directory_rating == 4.7
    assert record.is_active is False

    record.coordinates = Coordinates(19.3, -81.4)
    out = record.to_dict()
    assert out["location"]["latitude"] == 19.3
    assert out["location"]["directoryId"] == "legacy-1"
    assert out["business"]["hours"] == "9-5"
    assert out["isActive"] is False


def test_has_locator():
    assert not PlaceRecord(id="a", name="A").has_locator
    assert PlaceRecord(id="a", name="A", area="West Bay").has_locator
    assert PlaceRecord(id="a", name="A", external_id="p").has_locator


def test_enrichment_record_reads_legacy_keys():
    record = EnrichmentRecord.from_dict(
        {"googlePlaceId": "p1", "googleMapsUrl": "https://maps.example.test/p1", "matchConfidence": 88, "enrichedAt": "2026-01-01T00:00:00Z"}
    )

    assert record.external_id == "p1"
    assert record.maps_url == "https://maps.example.test/p1"
    assert record.match_confidence == 88
    assert EnrichmentRecord.from_dict(record.to_dict()) == record
