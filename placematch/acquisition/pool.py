"""Bounded-concurrency acquisition over a shared work queue."""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import Counter, deque
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from placematch.acquisition.session import AcquiredData, AcquisitionSession
from placematch.acquisition.strategies import build_strategies
from placematch.common.errors import SetupError, StageError
from placematch.common.fs import read_json, write_json
from placematch.common.models import PlaceRecord
from placematch.common.schema import MAX_WORKERS

logger = logging.getLogger(__name__)


def load_acquired(path: Path) -> dict[str, AcquiredData]:
    if not path.exists():
        return {}
    return {item.record_id: item for item in (AcquiredData.from_dict(raw) for raw in read_json(path))}


@dataclass
class PoolReport:
    claimed: int
    acquired: int
    not_found: int
    failed: int
    workers_failed: int
    interrupted: bool
    results_path: Path


class WorkerPool:
    def __init__(
        self,
        session_factory: Callable[[int], AcquisitionSession],
        results_path: Path,
        *,
        workers: int = 5,
        save_interval: int = 20,
        delay_seconds: tuple[float, float] = (0.8, 1.2),
        default_region: str = "",
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if not 1 <= workers <= MAX_WORKERS:
            raise ValueError(f"workers must be between 1 and {MAX_WORKERS}, got {workers}")
        self.session_factory = session_factory
        self.results_path = results_path
        self.workers = workers
        self.save_interval = save_interval
        self.delay_seconds = delay_seconds
        self.default_region = default_region
        self.sleep = sleep
        self.rng = rng or random.Random()

        self.queue: deque[PlaceRecord] = deque()
        self.queue_lock = threading.Lock()
        self.results: dict[str, AcquiredData] = {}
        self.results_lock = threading.Lock()
        self.counts: Counter = Counter()
        self.shutdown_event = threading.Event()
        self._since_snapshot = 0

    def shutdown(self) -> None:
        """Stop taking new records; records already claimed still finish."""
        self.shutdown_event.set()

    def _claim(self) -> PlaceRecord | None:
        with self.queue_lock:
            if not self.queue:
                return None
            self.counts["claimed"] += 1
            return self.queue.popleft()

    def _delay(self) -> None:
        low, high = self.delay_seconds
        with self.queue_lock:
            delay = self.rng.uniform(low, high)
        self.sleep(delay)

    def acquire(self, session: AcquisitionSession, record: PlaceRecord) -> AcquiredData | None:
        """First usable result across the strategies, in priority order.

        Runs to completion once a record is claimed, even after shutdown().
        """
        for strategy in build_strategies(record, default_region=self.default_region):
            result = session.lookup(record, strategy)
            if result is not None and result.is_usable:
                return result
        return None

    def store(self, result: AcquiredData) -> None:
        with self.results_lock:
            current = self.results.get(result.record_id)
            if current is None or result.rank() > current.rank():
                self.results[result.record_id] = result
            self._since_snapshot += 1
            if self._since_snapshot >= self.save_interval:
                self._write_snapshot()

    def snapshot(self) -> None:
        with self.results_lock:
            self._write_snapshot()

    def _write_snapshot(self) -> None:
        ordered = [self.results[key].to_dict() for key in sorted(self.results)]
        write_json(self.results_path, ordered)
        self._since_snapshot = 0

    def _worker(self, worker_id: int) -> None:
        try:
            session = self.session_factory(worker_id)
        except Exception:
            self._count("workers_failed")
            logger.exception(
                "worker %d could not open a session",
                worker_id,
                extra={"stage": "acquire", "event": "WORKER_FAIL", "status": "error"},
            )
            return
        try:
            while not self.shutdown_event.is_set():
                record = self._claim()
                if record is None:
                    return
                try:
                    result = self.acquire(session, record)
                except StageError as exc:
                    self._count("failed")
                    logger.warning(
                        "acquisition failed for %s: %s",
                        record.id,
                        exc,
                        extra={"stage": "acquire", "record_id": record.id, "error_code": exc.error_code},
                    )
                except Exception:
                    self._count("failed")
                    logger.exception(
                        "unexpected acquisition error for %s",
                        record.id,
                        extra={"stage": "acquire", "record_id": record.id},
                    )
                else:
                    if result is None:
                        self._count("not_found")
                    else:
                        self._count("acquired")
                        self.store(result)
                self._delay()
        finally:
            session.close()

    def _count(self, key: str) -> None:
        with self.queue_lock:
            self.counts[key] += 1

    def run(self, records: Iterable[PlaceRecord]) -> PoolReport:
        self.results = load_acquired(self.results_path)
        pending = [record for record in records if record.id not in self.results]
        self.queue = deque(pending)
        logger.info(
            "acquiring %d records with %d workers (%d already acquired)",
            len(pending),
            self.workers,
            len(self.results),
            extra={"stage": "acquire", "event": "POOL_START", "records_in": len(pending)},
        )

        interrupted = False
        try:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="acquire") as executor:
                futures = [executor.submit(self._worker, worker_id) for worker_id in range(self.workers)]
                try:
                    wait(futures, return_when=FIRST_EXCEPTION)
                    for future in futures:
                        future.result()
                except KeyboardInterrupt:
                    interrupted = True
                    self.shutdown()
                    wait(futures)
                except BaseException:
                    self.shutdown()
                    wait(futures)
                    raise
        finally:
            self.snapshot()

        if self.counts["workers_failed"] == self.workers and self.queue:
            raise SetupError(f"no acquisition worker could open a session; {len(self.queue)} records left unclaimed")
        report = PoolReport(
            claimed=self.counts["claimed"],
            acquired=self.counts["acquired"],
            not_found=self.counts["not_found"],
            failed=self.counts["failed"],
            workers_failed=self.counts["workers_failed"],
            interrupted=interrupted or self.shutdown_event.is_set(),
            results_path=self.results_path,
        )
        logger.info(
            "acquisition done: %d claimed, %d acquired, %d not found, %d failed",
            report.claimed,
            report.acquired,
            report.not_found,
            report.failed,
            extra={"stage": "acquire", "event": "POOL_DONE", "records_out": report.acquired},
        )
        return report
