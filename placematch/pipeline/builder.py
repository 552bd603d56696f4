"""Directory payload → EnrichmentRecord conversion and the record merge policy."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any, Callable

from placematch.common.constants import API_VERSION
from placematch.common.models import Coordinates, EnrichmentRecord, OpeningHours, PhotoRef, PlaceRecord
from placematch.common.time_utils import utc_timestamp_iso

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}
PRICE_RANGE_SYMBOLS = {0: "Free", 1: "$", 2: "$$", 3: "$$$", 4: "$$$$"}
BUSINESS_STATUSES = {
    "OPERATIONAL": "operational",
    "CLOSED_TEMPORARILY": "closed_temporarily",
    "CLOSED_PERMANENTLY": "closed_permanently",
}
PLACEHOLDER_HOSTS = re.compile(
    r"^https?://(?:[a-z0-9-]+\.)*(?:unsplash\.com|placehold\.co|placehold\.it|placeholder\.com|dummyimage\.com)(?:[/:?#]|$)",
    re.IGNORECASE,
)
PLACEHOLDER_FILES = re.compile(
    r"/(?:placeholder|no[-_]image|default)\.(?:jpe?g|png|gif|webp|svg)(?:[?#]|$)",
    re.IGNORECASE,
)
COORDINATE_EPSILON = 1e-4


def is_placeholder_image(url: str | None) -> bool:
    if not url:
        return True
    return bool(PLACEHOLDER_HOSTS.search(url) or PLACEHOLDER_FILES.search(url))


def quality_score(record: PlaceRecord) -> int:
    score = 0
    if record.images:
        score += min(25, len(record.images) * 5)
    if record.phone:
        score += 10
    if record.website:
        score += 10
    description = record.description or ""
    if len(description) > 200:
        score += 15
    elif len(description) > 100:
        score += 10
    elif len(description) > 50:
        score += 5
    if record.hours_display:
        score += 10
    if record.coordinates:
        score += 10
    if record.external_id:
        score += 5
    if record.rating:
        score += 10
    if record.review_count > 0:
        score += 5
    return min(100, score)


def quality_summary(record: PlaceRecord) -> dict[str, Any]:
    return {
        "score": quality_score(record),
        "hasPhoto": bool(record.images),
        "hasPhone": bool(record.phone),
        "hasWebsite": bool(record.website),
        "hasDescription": len(record.description or "") > 50,
        "hasHours": bool(record.hours_display),
    }


def _hhmm(point: dict) -> str:
    return f"{int(point.get('hour', 0)):02d}:{int(point.get('minute', 0)):02d}"


def convert_opening_hours(hours: dict | None) -> OpeningHours | None:
    if not hours:
        return None
    periods = hours.get("periods") or []
    is_24h = len(periods) == 1 and (periods[0].get("open") or {}).get("hour") == 0 and not periods[0].get("close")
    converted = []
    for period in periods:
        open_point = period.get("open") or {}
        close_point = period.get("close")
        converted.append(
            {
                "open": {"day": open_point.get("day"), "time": _hhmm(open_point)},
                "close": {"day": close_point.get("day"), "time": _hhmm(close_point)} if close_point else None,
            }
        )
    return OpeningHours(
        is_open_24_hours=bool(is_24h),
        weekday_text=tuple(hours.get("weekdayDescriptions") or ()),
        periods=tuple(converted),
    )


def convert_amenities(details: dict) -> dict[str, bool | None]:
    payment = details.get("paymentOptions") or {}
    parking = details.get("parkingOptions") or {}
    access = details.get("accessibilityOptions") or {}
    serves_alcohol = details.get("servesBeer") or details.get("servesWine")
    free_parking = parking.get("freeParkingLot") or parking.get("freeStreetParking")
    return {
        "reservable": details.get("reservable"),
        "delivery": details.get("delivery"),
        "dineIn": details.get("dineIn"),
        "takeout": details.get("takeout"),
        "outdoorSeating": details.get("outdoorSeating"),
        "servesAlcohol": serves_alcohol if serves_alcohol is not None else None,
        "goodForGroups": details.get("goodForGroups"),
        "goodForChildren": details.get("goodForChildren"),
        "wheelchairAccessible": access.get("wheelchairAccessibleEntrance"),
        "acceptsCreditCards": payment.get("acceptsCreditCards"),
        "freeParking": free_parking if free_parking is not None else None,
    }


@dataclass(frozen=True)
class MergeResult:
    record: PlaceRecord
    changes: tuple[str, ...]


class EnrichmentRecordBuilder:
    def __init__(
        self,
        *,
        max_photos: int = 10,
        max_reviews: int = 5,
        coordinate_refresh_confidence: int = 80,
        api_version: str = API_VERSION,
        photo_url: Callable[[str], str] | None = None,
        now: Callable[[], str] = utc_timestamp_iso,
    ) -> None:
        self.max_photos = max_photos
        self.max_reviews = max_reviews
        self.coordinate_refresh_confidence = coordinate_refresh_confidence
        self.api_version = api_version
        self.photo_url = photo_url or (lambda reference: reference)
        self.now = now

    @classmethod
    def from_config(
        cls,
        enrichment_cfg: dict,
        *,
        photo_url: Callable[[str], str] | None = None,
        now: Callable[[], str] = utc_timestamp_iso,
    ) -> "EnrichmentRecordBuilder":
        directory = enrichment_cfg["directory"]
        return cls(
            max_photos=int(directory["max_photos"]),
            max_reviews=int(directory["max_reviews"]),
            coordinate_refresh_confidence=int(enrichment_cfg["matching"]["coordinate_refresh_confidence"]),
            photo_url=photo_url,
            now=now,
        )

    def photo_references(self, details: dict) -> list[str]:
        return [p["name"] for p in (details.get("photos") or [])[: self.max_photos] if p.get("name")]

    def build(
        self,
        existing: PlaceRecord,
        details: dict,
        confidence: int,
        *,
        resolved_photos: dict[str, str] | None = None,
    ) -> EnrichmentRecord:
        resolved = resolved_photos or {}
        external_id = str(details.get("id") or existing.external_id or "")

        photos = []
        for photo in (details.get("photos") or [])[: self.max_photos]:
            reference = photo.get("name")
            if not reference:
                continue
            attributions = photo.get("authorAttributions") or [{}]
            photos.append(
                PhotoRef(
                    reference=reference,
                    url=resolved.get(reference) or self.photo_url(reference),
                    width=photo.get("widthPx"),
                    height=photo.get("heightPx"),
                    attribution=attributions[0].get("displayName"),
                )
            )

        reviews = tuple(
            {
                "rating": review.get("rating"),
                "text": (review.get("text") or {}).get("text", ""),
                "author": (review.get("authorAttribution") or {}).get("displayName") or "Anonymous",
                "time": review.get("publishTime"),
            }
            for review in (details.get("reviews") or [])[: self.max_reviews]
        )

        rating = details.get("rating")
        return EnrichmentRecord(
            external_id=external_id,
            maps_url=details.get("googleMapsUri") or f"https://www.google.com/maps/place/?q=place_id:{external_id}",
            match_confidence=int(confidence),
            coordinates=Coordinates.from_value(details.get("location")) or existing.coordinates,
            formatted_address=details.get("formattedAddress") or existing.address or "",
            enriched_at=self.now(),
            api_version=self.api_version,
            business_status=BUSINESS_STATUSES.get(details.get("businessStatus") or "", "unknown"),
            short_address=details.get("shortFormattedAddress"),
            plus_code=(details.get("plusCode") or {}).get("globalCode"),
            price_level=PRICE_LEVELS.get(details.get("priceLevel") or ""),
            phone=details.get("nationalPhoneNumber"),
            phone_international=details.get("internationalPhoneNumber"),
            website=details.get("websiteUri"),
            rating=float(rating) if rating is not None else None,
            review_count=details.get("userRatingCount"),
            reviews=reviews,
            opening_hours=convert_opening_hours(details.get("regularOpeningHours")),
            photos=tuple(photos),
            types=tuple(details.get("types") or ()),
            primary_type=details.get("primaryType"),
            editorial_summary=(details.get("editorialSummary") or {}).get("text"),
            amenities=convert_amenities(details),
        )

    def merge(self, target: PlaceRecord, enrichment: EnrichmentRecord, *, attach: bool = True) -> MergeResult:
        """Fill gaps in ``target`` from ``enrichment``; never overwrite curated values.

        Coordinates and business status are the exception: they are refreshed
        when the match confidence reaches ``coordinate_refresh_confidence``.
        """
        record = copy.deepcopy(target)
        changes: list[str] = []
        authoritative = enrichment.match_confidence >= self.coordinate_refresh_confidence

        if enrichment.external_id and not record.external_id:
            record.external_id = enrichment.external_id
            changes.append("external_id")

        if enrichment.coordinates is not None and enrichment.coordinates != record.coordinates:
            if record.coordinates is None or authoritative:
                moved = record.coordinates is None or (
                    abs(record.coordinates.lat - enrichment.coordinates.lat) > COORDINATE_EPSILON
                    or abs(record.coordinates.lng - enrichment.coordinates.lng) > COORDINATE_EPSILON
                )
                record.coordinates = enrichment.coordinates
                changes.append("coordinates" if moved else "coordinates_precision")

        if enrichment.business_status != "unknown" and enrichment.business_status != record.business_status:
            if not record.business_status or authoritative:
                record.business_status = enrichment.business_status
                changes.append("business_status")

        phone = enrichment.phone_international or enrichment.phone
        if phone and not record.phone:
            record.phone = phone
            changes.append("phone")

        if enrichment.website and not record.website:
            record.website = enrichment.website
            changes.append("website")

        hours = enrichment.opening_hours
        if hours and hours.weekday_text and not record.hours_display:
            record.hours_display = ", ".join(hours.weekday_text)
            record.is_open_24_hours = hours.is_open_24_hours
            changes.append("hours")

        if enrichment.rating is not None:
            if not record.rating:
                record.rating = enrichment.rating
                changes.append("rating")
            if record.directory_rating is None:
                record.directory_rating = enrichment.rating
                changes.append("directory_rating")
        if enrichment.review_count and record.review_count <= 0:
            record.review_count = int(enrichment.review_count)
            changes.append("review_count")

        if enrichment.formatted_address and not record.address:
            record.address = enrichment.formatted_address
            changes.append("address")

        if enrichment.price_level is not None and not record.price_range:
            record.price_range = PRICE_RANGE_SYMBOLS.get(enrichment.price_level)
            if record.price_range:
                changes.append("price_range")

        if enrichment.editorial_summary and not record.description:
            record.description = enrichment.editorial_summary
            changes.append("description")

        new_urls = []
        for photo in enrichment.photos:
            if photo.url and photo.url not in record.images and photo.url not in new_urls:
                new_urls.append(photo.url)
        if new_urls:
            record.images.extend(new_urls)
            changes.append("photos")
        if is_placeholder_image(record.thumbnail):
            thumbnail = next((url for url in record.images if not is_placeholder_image(url)), None)
            if thumbnail and thumbnail != record.thumbnail:
                record.thumbnail = thumbnail
                changes.append("thumbnail")

        if attach and record.enrichment != enrichment:
            record.enrichment = enrichment
            changes.append("enrichment")

        record.quality = quality_summary(record)
        if changes:
            record.updated_at = enrichment.enriched_at
        return MergeResult(record=record, changes=tuple(changes))
