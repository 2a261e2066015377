"""Atomic copy+delete of workflow units into the archive table."""

import asyncio
from collections.abc import Sequence
from typing import Any, Optional

import asyncpg
import structlog

from utils import affected_rows, qualified_name
from utils.logging import get_logger
from workflow_archiver.config import ArchiveConfig, TablesConfig
from workflow_archiver.database import DatabaseManager
from workflow_archiver.exceptions import TransactionError
from workflow_archiver.metrics import ArchiverMetrics
from workflow_archiver.models import WORKFLOW_STEP_COLUMNS, ArchiveCriteria
from workflow_archiver.result import (
    AttemptOutcome,
    AttemptResult,
    RunResult,
    UnitResult,
    UnitState,
)

# Errors expected to fail the same way on every attempt; labelled, still retried.
PERMANENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.SyntaxOrAccessError,
)


class ArchiveTransactionRunner:
    """Moves each unit's rows to the archive table in a single transaction.

    A unit is attempted up to ``max_attempts`` times with a fixed delay
    between attempts, then abandoned. Every abandonment counts against the
    run's error budget; once the budget is spent the remaining units are
    left untouched for the next run.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        tables: TablesConfig,
        config: ArchiveConfig,
        metrics: Optional[ArchiverMetrics] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.db_manager = db_manager
        self.tables = tables
        self.retry_delay = config.retry_delay
        self.max_attempts = config.max_attempts
        self.error_budget = config.error_budget
        self.metrics = metrics
        self.logger = logger or get_logger("transaction_runner")

    def _unit_predicate(self, criteria: ArchiveCriteria, alias: str = "") -> tuple[str, list[Any]]:
        """WHERE clause selecting one unit's rows.

        NULL never equals NULL, so a missing repository gets an IS NULL branch
        rather than a bound value.
        """
        prefix = f"{alias}." if alias else ""
        clause = f"{prefix}druid = $1 AND {prefix}datastream = $2"
        args: list[Any] = [criteria.druid, criteria.datastream]
        if criteria.repository is None:
            clause += f" AND {prefix}repository IS NULL"
        else:
            args.append(criteria.repository)
            clause += f" AND {prefix}repository = ${len(args)}"
        return clause, args

    def copy_statement(self, criteria: ArchiveCriteria) -> tuple[str, list[Any]]:
        workflow = qualified_name(self.tables.schema_name, self.tables.workflow)
        archive = qualified_name(self.tables.schema_name, self.tables.workflow_archive)
        where, args = self._unit_predicate(criteria, alias="w")
        args.append(criteria.version)
        columns = ", ".join(WORKFLOW_STEP_COLUMNS)
        selected = ", ".join(f"w.{column}" for column in WORKFLOW_STEP_COLUMNS)
        sql = (
            f"INSERT INTO {archive} ({columns}, version) "
            f"SELECT {selected}, ${len(args)}::integer "
            f"FROM {workflow} w WHERE {where}"
        )
        return sql, args

    def delete_statement(self, criteria: ArchiveCriteria) -> tuple[str, list[Any]]:
        workflow = qualified_name(self.tables.schema_name, self.tables.workflow)
        where, args = self._unit_predicate(criteria)
        return f"DELETE FROM {workflow} WHERE {where}", args

    async def _copy_and_delete(self, criteria: ArchiveCriteria) -> int:
        copy_sql, copy_args = self.copy_statement(criteria)
        delete_sql, delete_args = self.delete_statement(criteria)

        async with self.db_manager.acquire_connection(discard_on_error=True) as conn:
            # repeatable read: the delete sees exactly the snapshot the copy read
            async with conn.transaction(isolation="repeatable_read"):
                copied = affected_rows(await conn.execute(copy_sql, *copy_args))
                if copied == 0:
                    raise TransactionError(
                        "Expected more than 0 rows to be archived",
                        permanent=True,
                        context=criteria.as_log_context(),
                    )

                self.logger.debug("Removing old workflow rows", druid=criteria.druid, rows=copied)
                deleted = affected_rows(await conn.execute(delete_sql, *delete_args))
                if deleted != copied:
                    raise TransactionError(
                        f"Deleted {deleted} rows but archived {copied}",
                        context=criteria.as_log_context(),
                    )
        return copied

    async def attempt(self, criteria: ArchiveCriteria) -> AttemptResult:
        """Run one copy+delete+commit attempt and classify its outcome."""
        try:
            rows = await self._copy_and_delete(criteria)
        except Exception as e:
            permanent = isinstance(e, PERMANENT_ERRORS) or (
                isinstance(e, TransactionError) and e.permanent
            )
            outcome = (
                AttemptOutcome.PERMANENT_FAILURE if permanent else AttemptOutcome.TRANSIENT_FAILURE
            )
            self.logger.error(
                "Rolled back archive transaction",
                **criteria.as_log_context(),
                outcome=outcome.value,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            result = AttemptResult(outcome=outcome, error=str(e))
        else:
            result = AttemptResult(outcome=AttemptOutcome.SUCCESS, rows=rows)

        if self.metrics:
            self.metrics.record_attempt(result.outcome.value)
        return result

    async def archive_unit(self, criteria: ArchiveCriteria) -> UnitResult:
        """Archive one unit, retrying any failed attempt up to ``max_attempts``."""
        unit = UnitResult(criteria=criteria)

        while unit.attempts < self.max_attempts:
            unit.state = UnitState.ATTEMPTING
            unit.attempts += 1
            self.logger.info(
                "Archiving unit",
                **criteria.as_log_context(),
                attempt=unit.attempts,
                max_attempts=self.max_attempts,
            )

            result = await self.attempt(criteria)
            if result.outcome is AttemptOutcome.SUCCESS:
                unit.state = UnitState.COMMITTED
                unit.rows = result.rows
                self.logger.info(
                    "Unit archived", **criteria.as_log_context(), rows=result.rows
                )
                return unit

            unit.state = UnitState.ROLLED_BACK
            unit.last_error = result.error
            if unit.attempts < self.max_attempts:
                self.logger.warning(
                    "Retrying archive operation",
                    druid=criteria.druid,
                    attempt=unit.attempts,
                    delay=self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)

        unit.state = UnitState.ABANDONED
        self.logger.error(
            "Giving up on unit",
            **criteria.as_log_context(),
            attempts=unit.attempts,
            error=unit.last_error,
        )
        return unit

    async def run(
        self,
        items: Sequence[ArchiveCriteria],
        result: Optional[RunResult] = None,
    ) -> RunResult:
        """Archive ``items`` in order until done or the error budget is spent."""
        result = result if result is not None else RunResult()

        for index, criteria in enumerate(items):
            result.record(await self.archive_unit(criteria))

            if result.errors >= self.error_budget:
                result.halted = True
                self.logger.critical(
                    "Too many errors. Archiving halted",
                    errors=result.errors,
                    error_budget=self.error_budget,
                    remaining=len(items) - index - 1,
                )
                break

        return result
