"""Batch controller that drives one archival run."""

import time
from typing import Optional

import structlog

from utils.logging import get_logger
from workflow_archiver.candidate_finder import CandidateFinder
from workflow_archiver.config import ArchiverConfig
from workflow_archiver.criteria import CriteriaBuilder
from workflow_archiver.database import DatabaseManager
from workflow_archiver.index_suspender import IndexSuspender
from workflow_archiver.metrics import ArchiverMetrics
from workflow_archiver.result import RunResult
from workflow_archiver.transaction_runner import ArchiveTransactionRunner
from workflow_archiver.version_resolver import VersionResolver


class BatchController:
    """Finds completed workflows and moves them to the archive table.

    One run: connect, discover, cap the batch, resolve versions, archive
    each unit with the archive indexes suspended, report, disconnect.
    """

    def __init__(
        self,
        config: ArchiverConfig,
        dry_run: bool = False,
        db_manager: Optional[DatabaseManager] = None,
        resolver: Optional[VersionResolver] = None,
        metrics: Optional[ArchiverMetrics] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Archiver configuration
            dry_run: If True, only report what would be archived
            db_manager: Database manager (built from config if omitted)
            resolver: Version resolver (built from config if omitted)
            metrics: Metrics sink (built from config if omitted and enabled)
            logger: Optional logger instance
        """
        self.config = config
        self.dry_run = dry_run
        self.logger = logger or get_logger("controller")
        self.db_manager = db_manager or DatabaseManager(config.database, logger=self.logger)
        self.resolver = resolver or VersionResolver(config.version_service, logger=self.logger)
        if metrics is None and config.monitoring.metrics_enabled:
            metrics = ArchiverMetrics(logger=self.logger)
        self.metrics = metrics

        self.finder = CandidateFinder(self.db_manager, config.tables, logger=self.logger)
        self.runner = ArchiveTransactionRunner(
            self.db_manager,
            config.tables,
            config.archive,
            metrics=self.metrics,
            logger=self.logger,
        )
        self.index_suspender = IndexSuspender(
            self.db_manager,
            config.tables,
            config.archive.indexes,
            logger=self.logger,
        )

    async def run(self) -> RunResult:
        """Run one archival pass.

        Returns:
            The run's counts; see RunResult.exit_code for the process status

        Raises:
            DatabaseError: If connecting or candidate discovery fails
        """
        started = time.monotonic()
        result = RunResult()
        status = "failure"

        try:
            await self.db_manager.connect()

            candidates = await self.finder.find_completed_units()
            result.candidates = len(candidates)
            if not candidates:
                self.logger.info("Nothing to archive")
                status = result.status
                return result

            batch_limit = self.config.archive.batch_limit
            selected = candidates[:batch_limit]
            result.selected = len(selected)
            if len(candidates) > batch_limit:
                self.logger.info(
                    "Batch limit applied",
                    found=len(candidates),
                    batch_limit=batch_limit,
                    deferred=len(candidates) - batch_limit,
                )

            if self.dry_run:
                for unit in selected:
                    self.logger.info("Would archive", **unit.as_log_context())
                status = result.status
                return result

            async with self.resolver:
                items, result.skipped = await CriteriaBuilder(
                    self.resolver, logger=self.logger
                ).build(selected)

            if items:
                if self.config.archive.suspend_indexes:
                    await self.index_suspender.around(lambda: self.runner.run(items, result))
                else:
                    await self.runner.run(items, result)

            log = self.logger.error if result.halted else self.logger.info
            log("Archival run finished", **result.summary())
            status = result.status
            return result
        finally:
            await self.db_manager.disconnect()
            if self.metrics:
                self.metrics.record_run(
                    status,
                    candidates=result.candidates,
                    archived=result.archived,
                    rows=result.rows_archived,
                    errors=result.errors,
                    skipped=result.skipped,
                    duration_seconds=time.monotonic() - started,
                )
                if self.config.monitoring.metrics_textfile:
                    self.metrics.write_textfile(self.config.monitoring.metrics_textfile)
