"""Discovery of workflow units whose steps have all finished."""

from typing import Optional

import structlog

from utils import qualified_name
from utils.logging import get_logger
from workflow_archiver.config import TablesConfig
from workflow_archiver.database import DatabaseManager
from workflow_archiver.models import TERMINAL_STATUSES, UnitKey


class CandidateFinder:
    """Finds unit keys whose rows are all in a terminal state."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        tables: TablesConfig,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.db_manager = db_manager
        self.tables = tables
        self.logger = logger or get_logger("candidate_finder")

    def build_query(self) -> str:
        """Build the grouped discovery query.

        GROUP BY puts NULL repositories into one group. bool_and() skips NULL
        inputs, so a NULL status is coalesced to false to keep its unit out.
        """
        workflow = qualified_name(self.tables.schema_name, self.tables.workflow)
        return f"""
            SELECT repository, druid, datastream
            FROM {workflow}
            GROUP BY repository, druid, datastream
            HAVING bool_and(COALESCE(status = ANY($1::text[]), false))
            ORDER BY MAX(datetime) ASC NULLS FIRST, druid, datastream
        """

    async def find_completed_units(self) -> list[UnitKey]:
        """Return the distinct units whose every step is completed or skipped.

        Database errors propagate as DatabaseError; discovery is not retried.
        """
        records = await self.db_manager.fetch(self.build_query(), list(TERMINAL_STATUSES))
        units = [UnitKey.from_record(record) for record in records]
        self.logger.info("Found completed workflows", count=len(units))
        return units
