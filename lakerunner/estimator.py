"""Per-organization estimates of bytes per record, refreshed from the database."""

from __future__ import annotations

import enum
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_BYTES_PER_RECORD = 100.0
DEFAULT_INTERVAL = 30 * 60.0


class Signal(str, enum.Enum):
    """Kind of telemetry an estimate belongs to."""

    LOGS = "logs"
    METRICS = "metrics"


@dataclass(frozen=True)
class Estimate:
    """Estimated size of one stored record."""

    avg_bytes_per_record: float


class EstimationQuerier(Protocol):
    """Source of estimate rows with organization_id, instance_num and avg_bpr.

    Either method may raise LookupError to mean that there are no rows.
    """

    def metric_seg_estimator(self) -> Iterable[Any]: ...

    def log_seg_estimator(self) -> Iterable[Any]: ...


def _rows(fetch) -> list[Any]:
    try:
        return list(fetch())
    except LookupError:
        return []


class Estimator:
    """Holds the latest estimates and can refresh them periodically."""

    def __init__(self, querier: EstimationQuerier, interval: float = DEFAULT_INTERVAL) -> None:
        self._querier = querier
        self._interval = interval
        self._lock = threading.RLock()
        self._estimates: dict[tuple[uuid.UUID, int, Signal], Estimate] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def get(self, organization_id: uuid.UUID, instance_num: int, signal: Signal) -> Estimate:
        """Return the estimate for a key, the average of all known, or a default guess."""
        with self._lock:
            found = self._estimates.get((organization_id, instance_num, Signal(signal)))
            if found is not None:
                return found
            if self._estimates:
                total = sum(e.avg_bytes_per_record for e in self._estimates.values())
                return Estimate(total / len(self._estimates))
        return Estimate(DEFAULT_BYTES_PER_RECORD)

    def update_estimates(self) -> None:
        """Replace the estimates with fresh ones; keep the old ones if none are found."""
        metric_rows = _rows(self._querier.metric_seg_estimator)
        log_rows = _rows(self._querier.log_seg_estimator)
        if not metric_rows and not log_rows:
            logger.warning("no estimates found in database, will keep trying")
            return
        fresh: dict[tuple[uuid.UUID, int, Signal], Estimate] = {}
        for signal, rows in ((Signal.METRICS, metric_rows), (Signal.LOGS, log_rows)):
            for row in rows:
                key = (row.organization_id, row.instance_num, signal)
                fresh[key] = Estimate(float(row.avg_bpr))
        with self._lock:
            self._estimates = fresh

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.update_estimates()
            except Exception:
                logger.exception("failed to update estimates")

    def start(self) -> None:
        """Start refreshing in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="estimator", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background refresh and wait for it to end."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> Estimator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def new_estimator(querier: EstimationQuerier) -> Estimator:
    """Load the initial estimates, raising on failure, and start periodic refresh."""
    estimator = Estimator(querier)
    estimator.update_estimates()
    estimator.start()
    return estimator