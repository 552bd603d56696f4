"""Run statistics: outcome counters, field improvements, API usage and cost."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping

from placematch.common.constants import CALL_KINDS, OUTCOMES

# Field names reported in ``MergeResult.changes`` mapped to improvement counters.
IMPROVEMENT_FIELDS = {
    "coordinates": "coordinatesUpdated",
    "phone": "phonesAdded",
    "website": "websitesAdded",
    "hours": "hoursAdded",
    "photos": "photosAdded",
    "rating": "ratingsAdded",
    "description": "descriptionsAdded",
    "address": "addressesAdded",
    "business_status": "statusUpdated",
    "external_id": "externalIdsLinked",
}


def estimate_cost(calls: Mapping[str, int], costs_per_1000: Mapping[str, float]) -> dict[str, float]:
    breakdown = {kind: round(calls.get(kind, 0) * float(costs_per_1000.get(kind, 0)) / 1000, 4) for kind in CALL_KINDS}
    breakdown["total"] = round(sum(breakdown.values()), 4)
    return breakdown


def eta_seconds(done: int, remaining: int, elapsed_seconds: float) -> float | None:
    if done <= 0:
        return None
    return elapsed_seconds / done * remaining


@dataclass
class RunStats:
    run_id: str
    started_at: str
    outcomes: Counter = field(default_factory=Counter)
    improvements: Counter = field(default_factory=Counter)
    categories: dict[str, Counter] = field(default_factory=dict)
    api_calls: Counter = field(default_factory=Counter)
    cache_hits: int = 0
    records_total: int = 0
    elapsed_seconds: float = 0.0
    finished_at: str | None = None

    def record(self, category: str, outcome: str, changes: tuple[str, ...] = ()) -> None:
        self.outcomes[outcome] += 1
        self.categories.setdefault(category or "uncategorized", Counter())[outcome] += 1
        for change in changes:
            counter = IMPROVEMENT_FIELDS.get(change)
            if counter:
                self.improvements[counter] += 1

    def add_calls(self, calls: Mapping[str, int]) -> None:
        self.api_calls.update({kind: count for kind, count in calls.items() if count})

    def absorb(self, previous: dict) -> None:
        """Carry counters over from the stats file of an interrupted run."""
        self.improvements.update(previous.get("improvements") or {})
        self.api_calls.update(previous.get("apiCalls") or {})
        self.cache_hits += int(previous.get("cacheHits", 0))
        self.elapsed_seconds += float(previous.get("elapsedSeconds", 0.0))

    def recount_categories(self, outcomes: Mapping[str, str], categories: Mapping[str, str]) -> None:
        """Rebuild the category breakdown from the final outcome of each record."""
        rebuilt: dict[str, Counter] = {}
        for record_id, outcome in outcomes.items():
            category = categories.get(record_id) or "uncategorized"
            rebuilt.setdefault(category, Counter())[outcome] += 1
        self.categories = rebuilt

    def to_dict(self, costs_per_1000: Mapping[str, float], outcome_counts: Mapping[str, int] | None = None) -> dict[str, Any]:
        outcomes = dict(outcome_counts) if outcome_counts is not None else {o: self.outcomes.get(o, 0) for o in OUTCOMES}
        done = sum(outcomes.values())
        return {
            "runId": self.run_id,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "recordsTotal": self.records_total,
            "outcomes": outcomes,
            "improvements": dict(sorted(self.improvements.items())),
            "categories": {key: dict(value) for key, value in sorted(self.categories.items())},
            "apiCalls": {kind: self.api_calls.get(kind, 0) for kind in CALL_KINDS},
            "cacheHits": self.cache_hits,
            "estimatedCost": estimate_cost(self.api_calls, costs_per_1000),
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "averageSecondsPerRecord": round(self.elapsed_seconds / done, 3) if done else None,
        }
