"""Dry-run analysis, run summaries and the statistics file."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Any, Iterable, Mapping

from placematch.common.fs import write_json
from placematch.common.models import PlaceRecord
from placematch.pipeline.stats import estimate_cost


def analyze_records(
    records: Iterable[PlaceRecord],
    *,
    max_photos: int,
    costs_per_1000: Mapping[str, float],
    already_enriched: set[str] | None = None,
) -> dict[str, Any]:
    """Describe current data quality and what a real run would cost.

    Photo calls are estimated at the worst case of ``max_photos`` per record.
    """
    already_enriched = already_enriched or set()
    missing = Counter()
    categories = Counter()
    total = 0
    linked = 0
    to_process = 0
    skippable = 0
    for record in records:
        total += 1
        categories[record.category or "uncategorized"] += 1
        if record.coordinates is None:
            missing["coordinates"] += 1
        if not record.phone:
            missing["phone"] += 1
        if not record.website:
            missing["website"] += 1
        if not record.hours_display:
            missing["hours"] += 1
        if not record.images:
            missing["photos"] += 1
        if not record.rating:
            missing["rating"] += 1
        if record.external_id:
            linked += 1
        if record.id in already_enriched:
            continue
        if record.coordinates is None and not record.has_locator:
            skippable += 1
            continue
        to_process += 1

    calls = {"search": to_process, "details": to_process, "photo": to_process * max_photos}
    return {
        "totalRecords": total,
        "alreadyLinked": linked,
        "alreadyEnriched": len(already_enriched),
        "wouldSkip": skippable,
        "toProcess": to_process,
        "missing": {key: missing.get(key, 0) for key in ("coordinates", "phone", "website", "hours", "photos", "rating")},
        "categories": dict(categories.most_common()),
        "estimatedCalls": calls,
        "estimatedCost": estimate_cost(calls, costs_per_1000),
    }


def analysis_lines(analysis: Mapping[str, Any]) -> list[str]:
    lines = [
        f"records: {analysis['totalRecords']} (to process {analysis['toProcess']}, "
        f"already enriched {analysis['alreadyEnriched']}, would skip {analysis['wouldSkip']})",
        f"already linked to the directory: {analysis['alreadyLinked']}",
    ]
    for key, count in analysis["missing"].items():
        lines.append(f"missing {key}: {count}")
    for category, count in analysis["categories"].items():
        lines.append(f"category {category}: {count}")
    calls = analysis["estimatedCalls"]
    lines.append(f"estimated calls: search={calls['search']} details={calls['details']} photo<={calls['photo']}")
    lines.append(f"estimated cost: ${analysis['estimatedCost']['total']:.2f}")
    return lines


def summary_lines(stats: Mapping[str, Any], phase: str) -> list[str]:
    outcomes = stats["outcomes"]
    lines = [
        f"run {stats['runId']} {phase}",
        "outcomes: " + ", ".join(f"{key}={value}" for key, value in outcomes.items()),
    ]
    if stats["improvements"]:
        lines.append("improvements: " + ", ".join(f"{key}={value}" for key, value in stats["improvements"].items()))
    calls = stats["apiCalls"]
    lines.append("api calls: " + ", ".join(f"{key}={value}" for key, value in calls.items()))
    lines.append(f"estimated cost: ${stats['estimatedCost']['total']:.2f}")
    return lines


def write_stats(path: Path, payload: Mapping[str, Any]) -> Path:
    write_json(path, dict(payload))
    return path
