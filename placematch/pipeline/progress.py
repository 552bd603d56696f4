"""Durable run progress for crash-safe resume."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from placematch.common.constants import (
    OUTCOME_ALREADY_ENRICHED,
    OUTCOME_ENRICHED,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    OUTCOMES,
    PHASES,
    PROGRESS_VERSION,
)
from placematch.common.errors import SetupError
from placematch.common.fs import read_json, write_json
from placematch.common.time_utils import utc_timestamp_iso

ERROR_LOG_LIMIT = 1000


@dataclass
class ProgressState:
    processed_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)
    failed: dict[str, dict[str, Any]] = field(default_factory=dict)
    outcomes: dict[str, str] = field(default_factory=dict)
    error_log: list[dict[str, Any]] = field(default_factory=list)
    last_processed_index: int = -1
    current_phase: str = "initializing"
    started_at: str = ""
    last_updated_at: str = ""
    total_records: int = 0
    version: str = PROGRESS_VERSION

    @classmethod
    def new(cls, total_records: int = 0, *, now: str | None = None) -> "ProgressState":
        stamp = now or utc_timestamp_iso()
        return cls(started_at=stamp, last_updated_at=stamp, total_records=total_records)

    def is_processed(self, record_id: str) -> bool:
        return record_id in self.outcomes

    def set_phase(self, phase: str) -> None:
        if phase not in PHASES:
            raise ValueError(f"unknown phase {phase!r}")
        self.current_phase = phase

    def record_outcome(
        self,
        record_id: str,
        outcome: str,
        *,
        index: int | None = None,
        error: BaseException | None = None,
        now: str | None = None,
    ) -> None:
        """Mark ``record_id`` terminal. Each id appears in ``processed_ids`` once."""
        if outcome not in OUTCOMES:
            raise ValueError(f"unknown outcome {outcome!r}")
        stamp = now or utc_timestamp_iso()
        if record_id not in self.outcomes:
            self.processed_ids.append(record_id)
        self.outcomes[record_id] = outcome

        if outcome == OUTCOME_SKIPPED:
            if record_id not in self.skipped_ids:
                self.skipped_ids.append(record_id)
        elif record_id in self.skipped_ids:
            self.skipped_ids.remove(record_id)

        if outcome == OUTCOME_FAILED:
            previous = self.failed.get(record_id, {})
            entry = {
                "error": str(error) if error is not None else "unknown error",
                "error_code": getattr(error, "error_code", "UNEXPECTED_ERROR"),
                "timestamp": stamp,
                "retry_count": int(previous.get("retry_count", 0)),
            }
            self.failed[record_id] = entry
            self.error_log.append({"record_id": record_id, "phase": self.current_phase, **entry})
            del self.error_log[:-ERROR_LOG_LIMIT]
        elif outcome in (OUTCOME_ENRICHED, OUTCOME_ALREADY_ENRICHED):
            self.failed.pop(record_id, None)

        if index is not None:
            self.last_processed_index = max(self.last_processed_index, index)
        self.last_updated_at = stamp

    def requeue_failed(self) -> list[str]:
        """Make failed ids pending again; their retry count goes up by one."""
        requeued = []
        for record_id, entry in self.failed.items():
            if self.outcomes.get(record_id) != OUTCOME_FAILED:
                continue
            entry["retry_count"] = int(entry.get("retry_count", 0)) + 1
            del self.outcomes[record_id]
            self.processed_ids.remove(record_id)
            requeued.append(record_id)
        return requeued

    def outcome_counts(self) -> dict[str, int]:
        counts = {outcome: 0 for outcome in OUTCOMES}
        for outcome in self.outcomes.values():
            counts[outcome] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "startedAt": self.started_at,
            "lastUpdatedAt": self.last_updated_at,
            "currentPhase": self.current_phase,
            "totalRecords": self.total_records,
            "lastProcessedIndex": self.last_processed_index,
            "processedIds": list(self.processed_ids),
            "skippedIds": list(self.skipped_ids),
            "failed": {key: dict(value) for key, value in self.failed.items()},
            "outcomes": dict(self.outcomes),
            "errorLog": [dict(entry) for entry in self.error_log],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ProgressState":
        if not isinstance(payload, dict):
            raise SetupError("progress file must contain a JSON object")
        processed = [str(value) for value in payload.get("processedIds") or []]
        outcomes = {str(k): str(v) for k, v in (payload.get("outcomes") or {}).items()}
        failed = {str(k): dict(v) for k, v in (payload.get("failed") or {}).items()}
        skipped = [str(value) for value in payload.get("skippedIds") or []]
        # Files written before outcomes were tracked only list ids.
        for record_id in processed:
            if record_id not in outcomes:
                if record_id in failed:
                    outcomes[record_id] = OUTCOME_FAILED
                elif record_id in skipped:
                    outcomes[record_id] = OUTCOME_SKIPPED
                else:
                    outcomes[record_id] = OUTCOME_ENRICHED
        return cls(
            processed_ids=processed,
            skipped_ids=skipped,
            failed=failed,
            outcomes=outcomes,
            error_log=list(payload.get("errorLog") or []),
            last_processed_index=int(payload.get("lastProcessedIndex", -1)),
            current_phase=str(payload.get("currentPhase") or "initializing"),
            started_at=str(payload.get("startedAt") or ""),
            last_updated_at=str(payload.get("lastUpdatedAt") or ""),
            total_records=int(payload.get("totalRecords", 0)),
            version=str(payload.get("version") or PROGRESS_VERSION),
        )


class ProgressStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> ProgressState | None:
        if not self.path.exists():
            return None
        try:
            payload = read_json(self.path)
        except ValueError as exc:
            raise SetupError(f"Corrupt progress file {self.path}: {exc}") from exc
        return ProgressState.from_dict(payload)

    def save(self, state: ProgressState, *, now: str | None = None) -> None:
        state.last_updated_at = now or utc_timestamp_iso()
        write_json(self.path, state.to_dict())
