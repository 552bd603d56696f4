"""Data models used across the pipeline."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any


def _as_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def _as_int(value: object, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _put(mapping: dict, key: str, value: Any) -> None:
    # Leave the payload shape alone for fields that were never present.
    if value is None and key not in mapping:
        return
    mapping[key] = value


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    @classmethod
    def from_value(cls, value: Any) -> "Coordinates | None":
        if not isinstance(value, dict):
            return None
        lat = _as_float(value.get("lat", value.get("latitude")))
        lng = _as_float(value.get("lng", value.get("longitude")))
        if lat is None or lng is None:
            return None
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            return None
        if lat == 0.0 and lng == 0.0:
            return None
        return cls(lat=lat, lng=lng)

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class MatchCandidate:
    external_id: str
    display_name: str
    coordinates: Coordinates | None = None
    formatted_address: str | None = None
    rating: float | None = None

    @classmethod
    def from_directory(cls, payload: dict) -> "MatchCandidate":
        display = payload.get("displayName") or {}
        name = display.get("text", "") if isinstance(display, dict) else str(display)
        return cls(
            external_id=str(payload.get("id", "")),
            display_name=name,
            coordinates=Coordinates.from_value(payload.get("location")),
            formatted_address=payload.get("formattedAddress"),
            rating=_as_float(payload.get("rating")),
        )


@dataclass(frozen=True)
class ScoredMatch:
    candidate: MatchCandidate
    name_similarity: int
    location_proximity: float
    confidence: int


@dataclass(frozen=True)
class PhotoRef:
    reference: str
    url: str
    width: int | None = None
    height: int | None = None
    attribution: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "url": self.url,
            "width": self.width,
            "height": self.height,
            "attribution": self.attribution,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "PhotoRef":
        return cls(
            reference=payload.get("reference", ""),
            url=payload.get("url", ""),
            width=payload.get("width"),
            height=payload.get("height"),
            attribution=payload.get("attribution"),
        )


@dataclass(frozen=True)
class OpeningHours:
    is_open_24_hours: bool = False
    weekday_text: tuple[str, ...] = ()
    periods: tuple[dict, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "isOpen24Hours": self.is_open_24_hours,
            "weekdayText": list(self.weekday_text),
            "periods": [dict(p) for p in self.periods],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "OpeningHours":
        return cls(
            is_open_24_hours=bool(payload.get("isOpen24Hours", False)),
            weekday_text=tuple(payload.get("weekdayText") or ()),
            periods=tuple(payload.get("periods") or ()),
        )


@dataclass(frozen=True)
class EnrichmentRecord:
    external_id: str
    maps_url: str
    match_confidence: int
    coordinates: Coordinates | None
    formatted_address: str
    enriched_at: str
    api_version: str
    business_status: str = "unknown"
    short_address: str | None = None
    plus_code: str | None = None
    price_level: int | None = None
    phone: str | None = None
    phone_international: str | None = None
    website: str | None = None
    rating: float | None = None
    review_count: int | None = None
    reviews: tuple[dict, ...] = ()
    opening_hours: OpeningHours | None = None
    photos: tuple[PhotoRef, ...] = ()
    types: tuple[str, ...] = ()
    primary_type: str | None = None
    editorial_summary: str | None = None
    amenities: dict[str, bool | None] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "externalId": self.external_id,
            "mapsUrl": self.maps_url,
            "matchConfidence": self.match_confidence,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "formattedAddress": self.formatted_address,
            "shortAddress": self.short_address,
            "plusCode": self.plus_code,
            "businessStatus": self.business_status,
            "priceLevel": self.price_level,
            "phone": self.phone,
            "phoneInternational": self.phone_international,
            "website": self.website,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "reviews": [dict(r) for r in self.reviews],
            "openingHours": self.opening_hours.to_dict() if self.opening_hours else None,
            "photos": [p.to_dict() for p in self.photos],
            "types": list(self.types),
            "primaryType": self.primary_type,
            "editorialSummary": self.editorial_summary,
            "amenities": dict(self.amenities),
            "enrichedAt": self.enriched_at,
            "apiVersion": self.api_version,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "EnrichmentRecord":
        hours = payload.get("openingHours")
        return cls(
            external_id=str(payload.get("externalId") or payload.get("googlePlaceId") or ""),
            maps_url=payload.get("mapsUrl") or payload.get("googleMapsUrl") or "",
            match_confidence=_as_int(payload.get("matchConfidence")),
            coordinates=Coordinates.from_value(payload.get("coordinates")),
            formatted_address=payload.get("formattedAddress") or "",
            enriched_at=payload.get("enrichedAt") or "",
            api_version=payload.get("apiVersion") or "",
            business_status=payload.get("businessStatus") or "unknown",
            short_address=payload.get("shortAddress"),
            plus_code=payload.get("plusCode"),
            price_level=payload.get("priceLevel"),
            phone=payload.get("phone"),
            phone_international=payload.get("phoneInternational"),
            website=payload.get("website"),
            rating=_as_float(payload.get("rating")),
            review_count=payload.get("reviewCount"),
            reviews=tuple(payload.get("reviews") or ()),
            opening_hours=OpeningHours.from_dict(hours) if isinstance(hours, dict) else None,
            photos=tuple(PhotoRef.from_dict(p) for p in payload.get("photos") or ()),
            types=tuple(payload.get("types") or ()),
            primary_type=payload.get("primaryType"),
            editorial_summary=payload.get("editorialSummary"),
            amenities=dict(payload.get("amenities") or {}),
        )


@dataclass
class PlaceRecord:
    """A knowledge-base place.

    Only the fields the pipeline reads or merges are typed. ``raw`` keeps the
    payload the record was loaded from, and ``to_dict`` writes the typed
    fields back into their nested positions so unrelated fields survive.
    """

    id: str
    name: str
    category: str = ""
    coordinates: Coordinates | None = None
    island: str | None = None
    area: str | None = None
    address: str | None = None
    external_id: str | None = None
    description: str | None = None
    phone: str | None = None
    website: str | None = None
    price_range: str | None = None
    hours_display: str | None = None
    is_open_24_hours: bool = False
    business_status: str | None = None
    rating: float | None = None
    review_count: int = 0
    directory_rating: float | None = None
    thumbnail: str | None = None
    images: list[str] = field(default_factory=list)
    is_active: bool = True
    quality: dict[str, Any] = field(default_factory=dict)
    enrichment: EnrichmentRecord | None = None
    updated_at: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def has_locator(self) -> bool:
        return bool(self.external_id or self.address or self.area or self.island)

    @classmethod
    def from_dict(cls, payload: dict) -> "PlaceRecord":
        location = payload.get("location") or {}
        contact = payload.get("contact") or {}
        business = payload.get("business") or {}
        ratings = payload.get("ratings") or {}
        media = payload.get("media") or {}
        hours = business.get("hours")
        if isinstance(hours, dict):
            hours_display = hours.get("display")
            open_24 = bool(hours.get("isOpen24Hours", False))
        else:
            hours_display = hours or None
            open_24 = False
        enrichment = payload.get("enrichment")

        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            category=str(payload.get("category") or ""),
            coordinates=Coordinates.from_value(location.get("coordinates")) or Coordinates.from_value(location),
            island=location.get("island"),
            area=location.get("area"),
            address=location.get("address"),
            external_id=location.get("directoryId") or location.get("googlePlaceId"),
            description=payload.get("description"),
            phone=contact.get("phone") or business.get("phone"),
            website=contact.get("website") or business.get("website"),
            price_range=business.get("priceRange"),
            hours_display=hours_display,
            is_open_24_hours=open_24,
            business_status=business.get("status"),
            rating=_as_float(ratings.get("overall")),
            review_count=_as_int(ratings.get("reviewCount")),
            directory_rating=_as_float(ratings.get("directoryRating", ratings.get("googleRating"))),
            thumbnail=media.get("thumbnail"),
            images=[str(url) for url in media.get("images") or []],
            is_active=payload.get("isActive", True) is not False,
            quality=dict(payload.get("quality") or {}),
            enrichment=EnrichmentRecord.from_dict(enrichment) if isinstance(enrichment, dict) else None,
            updated_at=payload.get("updatedAt"),
            raw=copy.deepcopy(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        out = copy.deepcopy(self.raw)
        out["id"] = self.id
        out["name"] = self.name
        out["category"] = self.category
        _put(out, "description", self.description)

        location = dict(out.get("location") or {})
        _put(location, "island", self.island)
        _put(location, "area", self.area)
        _put(location, "address", self.address)
        _put(location, "coordinates", self.coordinates.to_dict() if self.coordinates else None)
        if self.coordinates and "latitude" in location:
            location["latitude"] = self.coordinates.lat
            location["longitude"] = self.coordinates.lng
        _put(location, "directoryId", self.external_id)
        out["location"] = location

        contact = dict(out.get("contact") or {})
        _put(contact, "phone", self.phone)
        _put(contact, "website", self.website)
        out["contact"] = contact

        business = dict(out.get("business") or {})
        _put(business, "priceRange", self.price_range)
        _put(business, "status", self.business_status)
        hours = business.get("hours")
        if isinstance(hours, dict) or hours is None:
            hours = dict(hours or {})
            hours["display"] = self.hours_display
            hours["isOpen24Hours"] = self.is_open_24_hours
            business["hours"] = hours
        else:
            business["hours"] = self.hours_display
        out["business"] = business

        ratings = dict(out.get("ratings") or {})
        ratings["overall"] = self.rating
        ratings["reviewCount"] = self.review_count
        _put(ratings, "directoryRating", self.directory_rating)
        out["ratings"] = ratings

        media = dict(out.get("media") or {})
        media["thumbnail"] = self.thumbnail
        media["images"] = list(self.images)
        out["media"] = media

        if "isActive" in out or not self.is_active:
            out["isActive"] = self.is_active
        out["quality"] = dict(self.quality)
        _put(out, "enrichment", self.enrichment.to_dict() if self.enrichment else None)
        _put(out, "updatedAt", self.updated_at)
        return out
