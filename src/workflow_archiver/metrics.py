"""Prometheus metrics for monitoring archival runs."""

import time
from pathlib import Path
from typing import Optional

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    write_to_textfile,
)

from utils.logging import get_logger


class ArchiverMetrics:
    """Prometheus metrics for the archiver.

    The archiver is a short-lived cron job, so metrics live in a private
    registry and are written out once per run for the node exporter
    textfile collector instead of being served over HTTP.
    """

    def __init__(
        self,
        logger: Optional[structlog.BoundLogger] = None,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.logger = logger or get_logger("metrics")
        self.registry = registry or CollectorRegistry()

        self.units_archived_total = Counter(
            "workflow_archiver_units_archived_total",
            "Workflow units moved to the archive table",
            registry=self.registry,
        )
        self.rows_archived_total = Counter(
            "workflow_archiver_rows_archived_total",
            "Workflow step rows moved to the archive table",
            registry=self.registry,
        )
        self.unit_errors_total = Counter(
            "workflow_archiver_unit_errors_total",
            "Units abandoned after exhausting their attempts",
            registry=self.registry,
        )
        self.units_skipped_total = Counter(
            "workflow_archiver_units_skipped_total",
            "Units skipped because their version could not be resolved",
            registry=self.registry,
        )
        self.attempts_total = Counter(
            "workflow_archiver_attempts_total",
            "Archive transaction attempts",
            ["outcome"],  # success, transient_failure, permanent_failure
            registry=self.registry,
        )
        self.runs_total = Counter(
            "workflow_archiver_runs_total",
            "Archival runs",
            ["status"],  # success, partial, halted, failure
            registry=self.registry,
        )
        self.candidates = Gauge(
            "workflow_archiver_candidates",
            "Completed units found in the last run",
            registry=self.registry,
        )
        self.run_duration_seconds = Gauge(
            "workflow_archiver_run_duration_seconds",
            "Duration of the last run",
            registry=self.registry,
        )
        self.last_success_timestamp = Gauge(
            "workflow_archiver_last_success_timestamp",
            "Unix timestamp of the last run that ended without errors",
            registry=self.registry,
        )

    def record_attempt(self, outcome: str) -> None:
        self.attempts_total.labels(outcome=outcome).inc()

    def record_run(
        self,
        status: str,
        candidates: int = 0,
        archived: int = 0,
        rows: int = 0,
        errors: int = 0,
        skipped: int = 0,
        duration_seconds: float = 0.0,
    ) -> None:
        """Record the totals of a finished run.

        Args:
            status: Run status (success, partial, halted, failure)
            candidates: Completed units discovered
            archived: Units committed
            rows: Rows moved
            errors: Units abandoned
            skipped: Units skipped before any write
            duration_seconds: Wall-clock run time
        """
        self.runs_total.labels(status=status).inc()
        self.candidates.set(candidates)
        self.units_archived_total.inc(archived)
        self.rows_archived_total.inc(rows)
        self.unit_errors_total.inc(errors)
        self.units_skipped_total.inc(skipped)
        self.run_duration_seconds.set(duration_seconds)
        if status == "success":
            self.last_success_timestamp.set(time.time())

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry)

    def write_textfile(self, path: Path) -> None:
        """Write metrics atomically to ``path``; failures are logged, not raised."""
        try:
            write_to_textfile(str(path), self.registry)
        except OSError as e:
            self.logger.warning("Failed to write metrics file", path=str(path), error=str(e))
