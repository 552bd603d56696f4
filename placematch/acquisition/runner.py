"""Acquisition orchestration: select records, build sessions, run the pool."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable

from placematch.acquisition.pool import PoolReport, WorkerPool, load_acquired
from placematch.acquisition.session import AcquisitionSession, DirectorySession
from placematch.acquisition.strategies import needs_enrichment
from placematch.common.config_loader import ConfigBundle
from placematch.common.errors import ConfigError
from placematch.common.schema import MAX_WORKERS
from placematch.pipeline.orchestrator import load_records, select_records
from placematch.pipeline.reports import analyze_records


def run_acquisition(
    bundle: ConfigBundle,
    data_dir: Path,
    api_key: str,
    *,
    workers: int | None = None,
    limit: int | None = None,
    category: str | None = None,
    input_path: Path | None = None,
    session_factory: Callable[[int], AcquisitionSession] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PoolReport:
    cfg = bundle.enrichment
    acquisition = cfg["acquisition"]
    if workers is not None and not 1 <= workers <= MAX_WORKERS:
        raise ConfigError(f"--workers must be between 1 and {MAX_WORKERS}, got {workers}")
    records = load_records(input_path or bundle.path(data_dir, "input"))
    candidates = [record for record in records if needs_enrichment(record)]
    selected = select_records(candidates, category=category, limit=limit)

    if session_factory is None:
        def session_factory(_worker_id: int) -> AcquisitionSession:
            return DirectorySession.from_config(cfg, api_key, sleep=sleep)

    low, high = acquisition["delay_seconds"]
    pool = WorkerPool(
        session_factory,
        bundle.path(data_dir, "acquisition_results"),
        workers=workers or int(acquisition["workers"]),
        save_interval=int(acquisition["save_interval"]),
        delay_seconds=(float(low), float(high)),
        default_region=acquisition["default_region"],
        sleep=sleep,
    )
    return pool.run(selected)


def analyze_acquisition(
    bundle: ConfigBundle,
    data_dir: Path,
    *,
    limit: int | None = None,
    category: str | None = None,
    input_path: Path | None = None,
) -> dict[str, Any]:
    """What an acquire run would pick up, without opening any session."""
    cfg = bundle.enrichment
    records = load_records(input_path or bundle.path(data_dir, "input"))
    done = load_acquired(bundle.path(data_dir, "acquisition_results"))
    candidates = [record for record in records if needs_enrichment(record) and record.id not in done]
    analysis = analyze_records(
        select_records(candidates, category=category, limit=limit),
        max_photos=int(cfg["directory"]["max_photos"]),
        costs_per_1000=cfg["costs_per_1000"],
    )
    analysis["alreadyAcquired"] = len(done)
    return analysis
