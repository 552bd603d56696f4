"""Merge acquisition results into the knowledge base."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, Mapping

from placematch.acquisition.pool import load_acquired
from placematch.acquisition.session import AcquiredData
from placematch.common.config_loader import ConfigBundle
from placematch.common.constants import API_VERSION
from placematch.common.errors import SetupError
from placematch.common.fs import write_json
from placematch.common.logging import log_event
from placematch.common.models import EnrichmentRecord, PhotoRef, PlaceRecord
from placematch.pipeline.builder import EnrichmentRecordBuilder
from placematch.pipeline.orchestrator import load_records

logger = logging.getLogger(__name__)


def to_enrichment(data: AcquiredData) -> EnrichmentRecord:
    # No coordinates or status: acquisition only ever fills gaps.
    return EnrichmentRecord(
        external_id=data.external_id or "",
        maps_url="",
        match_confidence=data.confidence,
        coordinates=None,
        formatted_address=data.address or "",
        enriched_at=data.acquired_at,
        api_version=API_VERSION,
        phone_international=data.phone,
        website=data.website,
        rating=data.rating,
        review_count=data.review_count,
        photos=tuple(PhotoRef(reference="", url=url) for url in data.photos),
    )


def apply_acquired(
    records: Iterable[PlaceRecord],
    acquired: Mapping[str, AcquiredData],
    builder: EnrichmentRecordBuilder,
) -> tuple[list[PlaceRecord], Counter]:
    merged = []
    changes: Counter = Counter()
    for record in records:
        data = acquired.get(record.id)
        if data is None:
            merged.append(record)
            continue
        result = builder.merge(record, to_enrichment(data), attach=False)
        changes.update(result.changes)
        if result.changes:
            changes["records_updated"] += 1
        merged.append(result.record)
    return merged, changes


def run_apply(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    *,
    input_path: Path | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    source = input_path or bundle.path(data_dir, "input")
    results_path = bundle.path(data_dir, "acquisition_results")
    if not results_path.exists():
        raise SetupError(f"No acquisition results at {results_path}; run acquire first")

    records = load_records(source)
    acquired = load_acquired(results_path)
    merged, changes = apply_acquired(records, acquired, EnrichmentRecordBuilder.from_config(bundle.enrichment))
    output_path = bundle.path(data_dir, "applied_output")
    if not dry_run:
        write_json(output_path, [record.to_dict() for record in merged])

    summary = {
        "runId": run_id,
        "records": len(records),
        "acquired": len(acquired),
        "changes": dict(sorted(changes.items())),
        "outputPath": None if dry_run else str(output_path),
    }
    log_event(
        logger,
        f"{'would apply' if dry_run else 'applied'} {len(acquired)} acquisition results, "
        f"{changes['records_updated']} records updated",
        run_id=run_id,
        stage="apply",
        event="APPLY_DONE",
        records_in=len(records),
        records_out=changes["records_updated"],
    )
    return summary
