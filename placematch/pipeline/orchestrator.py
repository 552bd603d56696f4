"""Resumable enrichment run: select, match, merge, checkpoint."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from placematch.common.cache import TtlCache
from placematch.common.config_loader import ConfigBundle
from placematch.common.constants import (
    OUTCOME_ALREADY_ENRICHED,
    OUTCOME_ENRICHED,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
)
from placematch.common.errors import NoMatchError, SetupError, StageError
from placematch.common.fs import backup_file, read_json, write_json
from placematch.common.http import HttpRequestError
from placematch.common.logging import log_event
from placematch.common.models import Coordinates, MatchCandidate, PlaceRecord, ScoredMatch
from placematch.common.time_utils import backup_stamp, is_fresh, utc_now
from placematch.directory.client import DirectoryClient, RegionBounds
from placematch.matching.scorer import MatchScorer, normalize_name
from placematch.pipeline.builder import EnrichmentRecordBuilder
from placematch.pipeline.progress import ProgressState, ProgressStore
from placematch.pipeline.reports import analysis_lines, analyze_records, summary_lines, write_stats
from placematch.pipeline.stats import RunStats, eta_seconds

STAGE = "enrich"


@dataclass(frozen=True)
class RunOptions:
    limit: int | None = None
    category: str | None = None
    resume: bool = False
    dry_run: bool = False
    retry_failed: bool = False


@dataclass
class RunReport:
    run_id: str
    phase: str
    outcomes: dict[str, int]
    stats: dict[str, Any] | None = None
    analysis: dict[str, Any] | None = None
    output_path: Path | None = None


def load_records(path: Path) -> list[PlaceRecord]:
    if not path.exists():
        raise SetupError(f"Input file not found: {path}")
    try:
        payload = read_json(path)
    except ValueError as exc:
        raise SetupError(f"Input file is not valid JSON: {path}") from exc
    if not isinstance(payload, list):
        raise SetupError(f"Input file must contain a JSON array of records: {path}")
    return [PlaceRecord.from_dict(item) for item in payload if isinstance(item, dict) and item.get("id")]


def select_records(records: list[PlaceRecord], *, category: str | None = None, limit: int | None = None) -> list[PlaceRecord]:
    selected = records
    if category:
        wanted = category.lower()
        selected = [record for record in selected if record.category.lower() == wanted]
    if limit is not None:
        selected = selected[: max(0, limit)]
    return selected


class EnrichmentOrchestrator:
    def __init__(
        self,
        bundle: ConfigBundle,
        data_dir: Path,
        run_id: str,
        *,
        directory: DirectoryClient | None = None,
        input_path: Path | None = None,
        logger: logging.Logger | None = None,
        now: Callable[[], datetime] = utc_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = bundle.enrichment
        self.cfg = cfg
        self.bundle = bundle
        self.data_dir = data_dir
        self.run_id = run_id
        self.directory = directory
        self.logger = logger or logging.getLogger(__name__)
        self.now = now
        self.clock = clock

        self.input_path = input_path or bundle.path(data_dir, "input")
        self.output_path = bundle.path(data_dir, "output")
        self.stats_path = bundle.path(data_dir, "stats")
        self.backup_dir = bundle.path(data_dir, "backup_dir")
        self.store = ProgressStore(bundle.path(data_dir, "progress"))

        self.save_interval = int(cfg["pipeline"]["save_interval"])
        self.freshness_days = int(cfg["pipeline"]["freshness_days"])
        self.linked_confidence = int(cfg["matching"]["linked_confidence"])
        self.resolve_photos = bool(cfg["directory"]["resolve_photos"])
        self.region_label = cfg["directory"]["region_label"]
        self.region = RegionBounds.from_config(cfg["directory"]["region_bbox"])
        self.scorer = MatchScorer.from_config(cfg["matching"])
        self.builder = EnrichmentRecordBuilder.from_config(
            cfg,
            photo_url=directory.photo_url if directory is not None else None,
            now=self._stamp,
        )
        self.cache = TtlCache(float(cfg["pipeline"]["cache_ttl_seconds"]))
        self._calls_recorded: Counter = Counter()
        self._hits_recorded = 0

    def _stamp(self) -> str:
        return self.now().isoformat(timespec="milliseconds")

    def _log(self, message: str, *, level: int = logging.INFO, **fields: Any) -> None:
        log_event(self.logger, message, level=level, run_id=self.run_id, stage=STAGE, **fields)

    def is_already_enriched(self, record: PlaceRecord) -> bool:
        if record.enrichment is None:
            return False
        return is_fresh(record.enrichment.enriched_at, max_age_days=self.freshness_days, now=self.now())

    def run(self, options: RunOptions) -> RunReport:
        records = load_records(self.input_path)
        selected = select_records(records, category=options.category, limit=options.limit)
        if options.dry_run:
            return self._dry_run(selected)
        if self.directory is None:
            raise SetupError("A directory client is required for a non-dry run")

        state, outputs, stats = self._prepare(options, selected)
        pending = [(index, record) for index, record in enumerate(selected) if not state.is_processed(record.id)]
        if self.input_path.exists():
            backup = backup_file(self.input_path, self.backup_dir, backup_stamp(self.now()))
            self._log(f"input backed up to {backup}", event="INPUT_BACKUP")

        state.set_phase("processing")
        started = self.clock()
        elapsed_before = stats.elapsed_seconds
        self._log(
            f"processing {len(pending)} of {len(selected)} selected records",
            event="RUN_START",
            records_in=len(pending),
        )
        try:
            for done, (index, record) in enumerate(pending, start=1):
                self._process(index, record, state, outputs, stats)
                if done % self.save_interval == 0:
                    stats.elapsed_seconds = elapsed_before + (self.clock() - started)
                    self._checkpoint(records, outputs, state, stats)
                    eta = eta_seconds(done, len(pending) - done, self.clock() - started)
                    self._log(
                        f"checkpoint at {done}/{len(pending)}, eta {eta:.0f}s" if eta is not None else "checkpoint",
                        event="CHECKPOINT",
                        records_in=len(pending),
                        records_out=done,
                    )
        except KeyboardInterrupt:
            state.set_phase("paused")
            stats.elapsed_seconds = elapsed_before + (self.clock() - started)
            payload = self._checkpoint(records, outputs, state, stats)
            self._summary(payload, "paused")
            return RunReport(self.run_id, "paused", state.outcome_counts(), stats=payload, output_path=self.output_path)

        state.set_phase("completed")
        stats.elapsed_seconds = elapsed_before + (self.clock() - started)
        stats.finished_at = self._stamp()
        payload = self._checkpoint(records, outputs, state, stats)
        self._summary(payload, "completed")
        return RunReport(self.run_id, "completed", state.outcome_counts(), stats=payload, output_path=self.output_path)

    def _dry_run(self, selected: list[PlaceRecord]) -> RunReport:
        analysis = analyze_records(
            selected,
            max_photos=int(self.cfg["directory"]["max_photos"]),
            costs_per_1000=self.cfg["costs_per_1000"],
            already_enriched={record.id for record in selected if self.is_already_enriched(record)},
        )
        for line in analysis_lines(analysis):
            self._log(line, event="DRY_RUN")
        return RunReport(self.run_id, "completed", {}, analysis=analysis)

    def _prepare(
        self, options: RunOptions, selected: list[PlaceRecord]
    ) -> tuple[ProgressState, dict[str, PlaceRecord], RunStats]:
        stats = RunStats(run_id=self.run_id, started_at=self._stamp(), records_total=len(selected))
        state = None
        if options.resume or options.retry_failed:
            state = self.store.load()
            if state is None:
                self._log("no progress file found, starting fresh", level=logging.WARNING, event="RESUME_MISSING")
        if state is None:
            state = ProgressState.new(len(selected), now=self._stamp())
            return state, {}, stats

        state.total_records = len(selected)
        if options.retry_failed:
            requeued = state.requeue_failed()
            self._log(f"requeued {len(requeued)} failed records", event="RETRY_FAILED", records_in=len(requeued))
        outputs = self._load_outputs(state)
        if self.stats_path.exists():
            stats.absorb(read_json(self.stats_path))
        self._log(
            f"resuming with {len(state.processed_ids)} records already processed",
            event="RESUME",
            records_in=len(state.processed_ids),
        )
        return state, outputs, stats

    def _load_outputs(self, state: ProgressState) -> dict[str, PlaceRecord]:
        if not self.output_path.exists():
            return {}
        try:
            payload = read_json(self.output_path)
        except ValueError as exc:
            raise SetupError(f"Corrupt output file {self.output_path}") from exc
        return {
            str(item["id"]): PlaceRecord.from_dict(item)
            for item in payload
            if isinstance(item, dict) and item.get("id") and state.is_processed(str(item["id"]))
        }

    def _process(
        self,
        index: int,
        record: PlaceRecord,
        state: ProgressState,
        outputs: dict[str, PlaceRecord],
        stats: RunStats,
    ) -> None:
        started = self.clock()
        current = outputs.get(record.id, record)
        changes: tuple[str, ...] = ()
        error: Exception | None = None
        try:
            outcome, changes = self._enrich(current, outputs)
        except StageError as exc:
            outcome, error = OUTCOME_FAILED, exc
        except Exception as exc:
            outcome, error = OUTCOME_FAILED, exc
            self.logger.exception(
                "unexpected error enriching %s",
                record.id,
                extra={"run_id": self.run_id, "stage": STAGE, "record_id": record.id, "event": "RECORD_ERROR"},
            )

        state.record_outcome(record.id, outcome, index=index, error=error, now=self._stamp())
        stats.record(record.category, outcome, changes)
        self._log(
            f"{record.name}: {outcome}" + (f" ({error})" if error else ""),
            level=logging.WARNING if error else logging.INFO,
            event="RECORD_DONE",
            record_id=record.id,
            category=record.category,
            status=outcome,
            error_code=getattr(error, "error_code", "UNEXPECTED_ERROR") if error else None,
            duration_ms=int((self.clock() - started) * 1000),
        )

    def _enrich(self, record: PlaceRecord, outputs: dict[str, PlaceRecord]) -> tuple[str, tuple[str, ...]]:
        if self.is_already_enriched(record):
            return OUTCOME_ALREADY_ENRICHED, ()
        if record.coordinates is None and not record.has_locator:
            return OUTCOME_SKIPPED, ()

        if record.external_id:
            external_id, confidence = record.external_id, self.linked_confidence
        else:
            match = self._best_match(record)
            if match is None:
                raise NoMatchError(f"No directory match at or above {self.scorer.min_confidence} for {record.name!r}")
            external_id, confidence = match.candidate.external_id, match.confidence

        details = self.directory.get_details(external_id)
        enrichment = self.builder.build(record, details, confidence, resolved_photos=self._resolve_photos(details))
        result = self.builder.merge(record, enrichment)
        outputs[record.id] = result.record
        return OUTCOME_ENRICHED, result.changes

    def _search_query(self, record: PlaceRecord) -> str:
        parts = [record.name, record.address, record.area or record.island, self.region_label]
        return " ".join(part for part in parts if part)

    def _known_location(self, record: PlaceRecord) -> Coordinates | None:
        """Seed coordinates, unless they fall outside the configured region."""
        if record.coordinates is None or self.region.contains(record.coordinates):
            return record.coordinates
        self._log(
            f"coordinates of {record.id} are outside the region, searching without them",
            level=logging.WARNING,
            event="COORDINATES_OUT_OF_REGION",
            record_id=record.id,
        )
        return None

    def _best_match(self, record: PlaceRecord) -> ScoredMatch | None:
        query = self._search_query(record)
        bias = self._known_location(record)
        key = (normalize_name(query), round(bias.lat, 4) if bias else None, round(bias.lng, 4) if bias else None)
        candidates: list[MatchCandidate] | None = self.cache.get(key)
        if candidates is None:
            candidates = self.directory.search_text(query, location_bias=bias)
            self.cache.set(key, candidates)
        return self.scorer.find_best_match(record.name, candidates, bias)

    def _resolve_photos(self, details: dict) -> dict[str, str]:
        if not self.resolve_photos:
            return {}
        resolved = {}
        for reference in self.builder.photo_references(details):
            try:
                uri = self.directory.resolve_photo(reference)
            except HttpRequestError as exc:
                self._log(f"photo {reference} not resolved: {exc}", level=logging.WARNING, event="PHOTO_UNRESOLVED")
                continue
            if uri:
                resolved[reference] = uri
        return resolved

    def _checkpoint(
        self,
        records: list[PlaceRecord],
        outputs: dict[str, PlaceRecord],
        state: ProgressState,
        stats: RunStats,
    ) -> dict[str, Any]:
        current = Counter(self.directory.call_counts)
        stats.add_calls(current - self._calls_recorded)
        self._calls_recorded = current
        stats.cache_hits += self.cache.hits - self._hits_recorded
        self._hits_recorded = self.cache.hits
        stats.recount_categories(state.outcomes, {record.id: record.category for record in records})

        # Output before progress: a crash in between re-processes, never loses.
        write_json(self.output_path, [outputs.get(record.id, record).to_dict() for record in records])
        self.store.save(state, now=self._stamp())
        payload = stats.to_dict(self.cfg["costs_per_1000"], state.outcome_counts())
        write_stats(self.stats_path, payload)
        return payload

    def _summary(self, payload: dict[str, Any], phase: str) -> None:
        for line in summary_lines(payload, phase):
            self._log(line, event="RUN_SUMMARY", status=phase)
