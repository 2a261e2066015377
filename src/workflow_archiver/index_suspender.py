"""Temporary removal of archive-table indexes around a bulk copy."""

from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Optional, TypeVar

import structlog

from utils import qualified_name, quote_identifier
from utils.logging import get_logger
from workflow_archiver.config import IndexConfig, TablesConfig
from workflow_archiver.database import DatabaseManager

T = TypeVar("T")


class IndexSuspender:
    """Drops secondary indexes on the archive table and rebuilds them afterwards.

    Maintaining the indexes across thousands of single-unit inserts costs more
    than one drop and rebuild around the whole batch. Both steps are best
    effort: failures are logged and never raised, so they cannot mask the
    outcome of the wrapped work.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        tables: TablesConfig,
        indexes: Sequence[IndexConfig],
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.db_manager = db_manager
        self.tables = tables
        self.indexes = list(indexes)
        self.logger = logger or get_logger("index_suspender")

    def drop_statement(self, index: IndexConfig) -> str:
        return f"DROP INDEX {qualified_name(self.tables.schema_name, index.name)}"

    def create_statement(self, index: IndexConfig) -> str:
        archive = qualified_name(self.tables.schema_name, self.tables.workflow_archive)
        return (
            f"CREATE INDEX {quote_identifier(index.name)} "
            f"ON {archive} ({quote_identifier(index.column)})"
        )

    async def _try_execute(self, sql: str, action: str, index: IndexConfig) -> bool:
        try:
            await self.db_manager.execute(sql)
        except Exception as e:
            self.logger.warning(
                f"Ignoring error while trying to {action} index",
                index=index.name,
                error=str(e),
            )
            return False
        self.logger.debug(f"Index {action} succeeded", index=index.name)
        return True

    async def drop_indexes(self) -> None:
        for index in self.indexes:
            await self._try_execute(self.drop_statement(index), "drop", index)

    async def recreate_indexes(self) -> None:
        for index in self.indexes:
            await self._try_execute(self.create_statement(index), "create", index)

    @asynccontextmanager
    async def suspended(self) -> AsyncGenerator[None, None]:
        """Run the enclosed block with the indexes dropped.

        The indexes are recreated on every exit path, including exceptions.
        """
        await self.drop_indexes()
        try:
            yield
        finally:
            await self.recreate_indexes()

    async def around(self, action: Callable[[], Awaitable[T]]) -> T:
        """Await ``action()`` inside :meth:`suspended` and return its result."""
        async with self.suspended():
            return await action()
