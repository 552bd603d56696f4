from placematch.common.models import Coordinates, PlaceRecord
from placematch.pipeline.builder import (
    EnrichmentRecordBuilder,
    convert_opening_hours,
    is_placeholder_image,
    quality_score,
    quality_summary,
)

STAMP = "2026-03-01T12:00:00.000+00:00"


def make_builder(**kwargs) -> EnrichmentRecordBuilder:
    return EnrichmentRecordBuilder(
        photo_url=lambda ref: f"https://photos.example.test/{ref}/media",
        now=lambda: STAMP,
        **kwargs,
    )


def test_build_converts_directory_payload(make_place, make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Blue Iguana Beach Bar", lat=19.334, lng=-81.381))
    details = make_place("place-1", "Blue Iguana Beach Bar", 19.3342, -81.3812, googleMapsUri=None)

    enrichment = make_builder().build(record, details, 92)

    assert enrichment.external_id == "place-1"
    assert enrichment.maps_url == "https://www.google.com/maps/place/?q=place_id:place-1"
    assert enrichment.match_confidence == 92
    assert enrichment.coordinates == Coordinates(19.3342, -81.3812)
    assert enrichment.business_status == "operational"
    assert enrichment.price_level == 2
    assert enrichment.enriched_at == STAMP
    assert enrichment.api_version == "v1"
    assert enrichment.opening_hours.periods[0]["open"] == {"day": 1, "time": "11:00"}
    assert enrichment.opening_hours.periods[0]["close"] == {"day": 1, "time": "22:30"}
    assert enrichment.photos[0].url == "https://photos.example.test/places/place-1/photos/p1/media"
    assert enrichment.photos[0].attribution == "A Visitor"
    assert "key=" not in enrichment.photos[0].url


def test_build_caps_photos_and_reviews(make_place, make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Bar"))
    details = make_place(
        "p",
        "Bar",
        19.3,
        -81.3,
        photos=[{"name": f"places/p/photos/{i}"} for i in range(12)],
        reviews=[{"rating": 5, "text": {"text": "great"}} for _ in range(8)],
    )

    enrichment = make_builder(max_photos=3, max_reviews=2).build(record, details, 80)

    assert len(enrichment.photos) == 3
    assert len(enrichment.reviews) == 2
    assert enrichment.reviews[0]["author"] == "Anonymous"


def test_build_prefers_resolved_photo_uris(make_place, make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Bar"))
    details = make_place("p", "Bar", 19.3, -81.3)

    enrichment = make_builder().build(
        record,
        details,
        80,
        resolved_photos={"places/p/photos/p1": "https://cdn.example.test/p1.jpg"},
    )

    assert enrichment.photos[0].url == "https://cdn.example.test/p1.jpg"


def test_unknown_business_status_and_price_level():
    record = PlaceRecord(id="r", name="x")
    enrichment = make_builder().build(record, {"id": "p", "businessStatus": "WHATEVER"}, 70)

    assert enrichment.business_status == "unknown"
    assert enrichment.price_level is None
    assert enrichment.opening_hours is None


def test_open_24_hours_detection():
    hours = convert_opening_hours({"periods": [{"open": {"day": 0, "hour": 0, "minute": 0}}]})
    assert hours.is_open_24_hours is True
    assert hours.periods[0]["close"] is None

    regular = convert_opening_hours({"periods": [{"open": {"day": 0, "hour": 9}, "close": {"day": 0, "hour": 17}}]})
    assert regular.is_open_24_hours is False


def test_merge_fills_gaps_without_overwriting(make_place, make_record):
    payload = make_record("r1", "Blue Iguana Beach Bar", lat=19.334, lng=-81.381)
    payload["contact"] = {"phone": "+1 345 999 0000"}
    record = PlaceRecord.from_dict(payload)
    builder = make_builder()
    enrichment = builder.build(record, make_place("place-1", "Blue Iguana Beach Bar", 19.3342, -81.3812), 92)

    result = builder.merge(record, enrichment)
    merged = result.record

    assert merged.phone == "+1 345 999 0000"
    assert merged.website == "https://place-1.example.test"
    assert merged.external_id == "place-1"
    assert merged.price_range == "$$"
    assert merged.hours_display == "Monday: 11:00 AM - 10:30 PM"
    assert merged.rating == 4.5
    assert merged.review_count == 120
    assert merged.description == "Blue Iguana Beach Bar is a waterfront spot."
    assert merged.images == ["https://photos.example.test/places/place-1/photos/p1/media"]
    assert merged.thumbnail == merged.images[0]
    assert merged.enrichment == enrichment
    assert merged.updated_at == STAMP
    assert "phone" not in result.changes
    assert "website" in result.changes
    assert record.website is None


def test_coordinates_refresh_only_at_high_confidence(make_place, make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Bar", lat=19.334, lng=-81.381))
    builder = make_builder()
    details = make_place("p", "Bar", 19.3362, -81.3832)

    low = builder.merge(record, builder.build(record, details, 70))
    high = builder.merge(record, builder.build(record, details, 85))

    assert low.record.coordinates == Coordinates(19.334, -81.381)
    assert high.record.coordinates == Coordinates(19.3362, -81.3832)
    assert "coordinates" in high.changes


def test_missing_coordinates_are_filled_at_any_accepted_confidence(make_place, make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Bar", location={"area": "West Bay"}))
    builder = make_builder()

    result = builder.merge(record, builder.build(record, make_place("p", "Bar", 19.36, -81.39), 65))

    assert result.record.coordinates == Coordinates(19.36, -81.39)


def test_merge_keeps_curated_images_and_dedupes(make_place, make_record):
    payload = make_record("r1", "Bar")
    payload["media"] = {
        "thumbnail": "https://curated.example.test/a.jpg",
        "images": ["https://curated.example.test/a.jpg", "https://photos.example.test/places/p/photos/p1/media"],
    }
    record = PlaceRecord.from_dict(payload)
    builder = make_builder()
    details = make_place("p", "Bar", 19.3, -81.3, photos=[{"name": "places/p/photos/p1"}, {"name": "places/p/photos/p2"}])

    merged = builder.merge(record, builder.build(record, details, 90)).record

    assert merged.images == [
        "https://curated.example.test/a.jpg",
        "https://photos.example.test/places/p/photos/p1/media",
        "https://photos.example.test/places/p/photos/p2/media",
    ]
    assert merged.thumbnail == "https://curated.example.test/a.jpg"


def test_merge_is_idempotent(make_place, make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Blue Iguana Beach Bar", lat=19.334, lng=-81.381))
    builder = make_builder()
    enrichment = builder.build(record, make_place("place-1", "Blue Iguana Beach Bar", 19.3342, -81.3812), 92)

    once = builder.merge(record, enrichment)
    twice = builder.merge(once.record, enrichment)

    assert twice.record == once.record
    assert twice.record.to_dict() == once.record.to_dict()
    assert twice.changes == ()


def test_updated_at_untouched_when_nothing_changes(make_record):
    record = PlaceRecord.from_dict(make_record("r1", "Bar", updatedAt="2025-01-01T00:00:00Z"))
    builder = make_builder()
    enrichment = builder.build(record, {"id": ""}, 70)

    result = builder.merge(record, enrichment, attach=False)

    assert result.changes == ()
    assert result.record.updated_at == "2025-01-01T00:00:00Z"


def test_quality_score_weights():
    empty = PlaceRecord(id="e", name="Empty")
    assert quality_score(empty) == 0

    full = PlaceRecord(
        id="f",
        name="Full",
        coordinates=Coordinates(19.3, -81.3),
        external_id="p",
        description="x" * 201,
        phone="1",
        website="w",
        hours_display="Mon",
        rating=4.0,
        review_count=3,
        images=["a", "b"],
    )
    assert quality_score(full) == 10 + 10 + 10 + 15 + 10 + 10 + 5 + 10 + 5

    full.images = [str(i) for i in range(9)]
    assert quality_score(full) == 100

    flags = quality_summary(PlaceRecord(id="d", name="D", description="x" * 60))
    assert flags == {
        "score": 5,
        "hasPhoto": False,
        "hasPhone": False,
        "hasWebsite": False,
        "hasDescription": True,
        "hasHours": False,
    }


def test_placeholder_images():
    assert is_placeholder_image(None)
    assert is_placeholder_image("https://images.unsplash.com/photo-1")
    assert not is_placeholder_image("https://cdn.example.test/p1.jpg")
    assert is_placeholder_image("https://via.placeholder.com/128x80?text=Invalid+URL")
    assert is_placeholder_image("https://placehold.co/600x400")
    assert is_placeholder_image("https://cdn.example.test/img/no-image.png")
    assert is_placeholder_image("https://cdn.example.test/img/default.jpg?v=2")
    assert not is_placeholder_image("https://cdn.example.test/venues/default-hero.jpg")
    assert not is_placeholder_image("https://cdn.example.test/placeholder-street-cafe/front.jpg")


def test_curated_thumbnail_with_default_in_name_is_kept(make_place, make_record):
    payload = make_record("r1", "Bar")
    payload["media"] = {"thumbnail": "https://cdn.example.test/venues/default-hero.jpg", "images": []}
    record = PlaceRecord.from_dict(payload)
    builder = make_builder()
    details = make_place("p", "Bar", 19.3, -81.3)

    merged = builder.merge(record, builder.build(record, details, 90)).record

    assert merged.thumbnail == "https://cdn.example.test/venues/default-hero.jpg"
    assert "https://photos.example.test/places/p/photos/p1/media" in merged.images
