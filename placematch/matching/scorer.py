"""Fuzzy name + distance scoring of directory candidates."""

from __future__ import annotations

import math
import re
from typing import Iterable

from rapidfuzz.distance import Levenshtein

from placematch.common.models import Coordinates, MatchCandidate, ScoredMatch

EARTH_RADIUS_M = 6_371_000.0
NEUTRAL_PROXIMITY = 50.0
DEFAULT_MIN_CONFIDENCE = 60

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    lowered = _NON_ALNUM.sub("", (name or "").lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def name_similarity(a: str, b: str) -> int:
    """Levenshtein similarity of two normalized names, 0-100."""
    left = normalize_name(a)
    right = normalize_name(b)
    longest = max(len(left), len(right))
    if longest == 0:
        return 100
    distance = Levenshtein.distance(left, right)
    return round(100 * (1 - distance / longest))


def haversine_m(a: Coordinates, b: Coordinates) -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def location_proximity(known: Coordinates | None, candidate: Coordinates | None) -> float:
    if known is None or candidate is None:
        return NEUTRAL_PROXIMITY
    return max(0.0, 100.0 - haversine_m(known, candidate) / 10.0)


class MatchScorer:
    def __init__(
        self,
        *,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        name_weight: float = 0.7,
        location_weight: float = 0.3,
    ) -> None:
        self.min_confidence = min_confidence
        self.name_weight = name_weight
        self.location_weight = location_weight

    @classmethod
    def from_config(cls, matching_cfg: dict) -> "MatchScorer":
        return cls(
            min_confidence=int(matching_cfg["min_confidence"]),
            name_weight=float(matching_cfg["name_weight"]),
            location_weight=float(matching_cfg["location_weight"]),
        )

    def score(
        self,
        query_name: str,
        candidate: MatchCandidate,
        known_location: Coordinates | None = None,
    ) -> tuple[float, ScoredMatch]:
        similarity = name_similarity(query_name, candidate.display_name)
        proximity = location_proximity(known_location, candidate.coordinates)
        total = self.name_weight * similarity + self.location_weight * proximity
        scored = ScoredMatch(
            candidate=candidate,
            name_similarity=similarity,
            location_proximity=proximity,
            confidence=round(total),
        )
        return total, scored

    def find_best_match(
        self,
        query_name: str,
        candidates: Iterable[MatchCandidate],
        known_location: Coordinates | None = None,
    ) -> ScoredMatch | None:
        """Best candidate at or above ``min_confidence``, else None.

        Earlier candidates win ties, so directory ranking breaks them.
        """
        best: ScoredMatch | None = None
        best_total = -1.0
        for candidate in candidates:
            total, scored = self.score(query_name, candidate, known_location)
            if total > best_total:
                best_total = total
                best = scored
        if best is None or best.confidence < self.min_confidence:
            return None
        return best
