"""Acquisition sessions: one per worker, each with its own HTTP session."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from placematch.acquisition.strategies import QueryStrategy
from placematch.common.models import PlaceRecord
from placematch.common.time_utils import utc_timestamp_iso
from placematch.directory.client import DirectoryClient
from placematch.matching.scorer import MatchScorer


@dataclass(frozen=True)
class AcquiredData:
    record_id: str
    name: str
    strategy: str
    acquired_at: str
    external_id: str | None = None
    confidence: int = 0
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    review_count: int | None = None
    address: str | None = None
    photos: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_usable(self) -> bool:
        return bool(self.phone or self.website or self.photos)

    def populated_fields(self) -> int:
        values = (self.phone, self.website, self.rating, self.review_count, self.address)
        return sum(1 for value in values if value not in (None, ""))

    def rank(self) -> tuple[int, int]:
        return len(self.photos), self.populated_fields()

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordId": self.record_id,
            "name": self.name,
            "strategy": self.strategy,
            "acquiredAt": self.acquired_at,
            "externalId": self.external_id,
            "confidence": self.confidence,
            "phone": self.phone,
            "website": self.website,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "address": self.address,
            "photos": list(self.photos),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "AcquiredData":
        return cls(
            record_id=str(payload["recordId"]),
            name=str(payload.get("name") or ""),
            strategy=str(payload.get("strategy") or ""),
            acquired_at=str(payload.get("acquiredAt") or ""),
            external_id=payload.get("externalId"),
            confidence=int(payload.get("confidence") or 0),
            phone=payload.get("phone"),
            website=payload.get("website"),
            rating=payload.get("rating"),
            review_count=payload.get("reviewCount"),
            address=payload.get("address"),
            photos=tuple(payload.get("photos") or ()),
        )


class AcquisitionSession(Protocol):
    def lookup(self, record: PlaceRecord, strategy: QueryStrategy) -> AcquiredData | None: ...

    def close(self) -> None: ...


class DirectorySession:
    """Looks records up through a private ``DirectoryClient``.

    Sessions are never shared between workers, so the underlying
    ``requests.Session`` and rate limiter belong to one thread.
    """

    def __init__(
        self,
        directory: DirectoryClient,
        scorer: MatchScorer,
        *,
        max_photos: int = 10,
        now: Callable[[], str] = utc_timestamp_iso,
    ) -> None:
        self.directory = directory
        self.scorer = scorer
        self.max_photos = max_photos
        self.now = now

    @classmethod
    def from_config(
        cls,
        enrichment_cfg: dict,
        api_key: str,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "DirectorySession":
        return cls(
            DirectoryClient.from_config(enrichment_cfg, api_key, sleep=sleep),
            MatchScorer.from_config(enrichment_cfg["matching"]),
            max_photos=int(enrichment_cfg["directory"]["max_photos"]),
        )

    def close(self) -> None:
        self.directory.close()

    def lookup(self, record: PlaceRecord, strategy: QueryStrategy) -> AcquiredData | None:
        candidates = self.directory.search_text(strategy.query, location_bias=strategy.location_bias)
        match = self.scorer.find_best_match(record.name, candidates, record.coordinates)
        if match is None:
            return None
        details = self.directory.get_details(match.candidate.external_id)
        photos = tuple(
            self.directory.photo_url(photo["name"])
            for photo in (details.get("photos") or [])[: self.max_photos]
            if photo.get("name")
        )
        rating = details.get("rating")
        return AcquiredData(
            record_id=record.id,
            name=record.name,
            strategy=strategy.name,
            acquired_at=self.now(),
            external_id=match.candidate.external_id,
            confidence=match.confidence,
            phone=details.get("internationalPhoneNumber") or details.get("nationalPhoneNumber"),
            website=details.get("websiteUri"),
            rating=float(rating) if rating is not None else None,
            review_count=details.get("userRatingCount"),
            address=details.get("formattedAddress"),
            photos=photos,
        )
