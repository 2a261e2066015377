"""Turns discovered units into versioned archive criteria."""

from collections.abc import Iterable
from typing import Optional

import structlog

from utils.logging import get_logger
from workflow_archiver.models import ArchiveCriteria, UnitKey
from workflow_archiver.version_resolver import VersionResolver


class CriteriaBuilder:
    """Resolves a version for each unit; one bad unit never aborts the batch."""

    def __init__(
        self,
        resolver: VersionResolver,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.resolver = resolver
        self.logger = logger or get_logger("criteria_builder")

    async def build(
        self, candidates: Iterable[UnitKey]
    ) -> tuple[list[ArchiveCriteria], int]:
        """Build criteria for every unit whose version can be resolved.

        Returns:
            The criteria and the number of units skipped
        """
        items: list[ArchiveCriteria] = []
        skipped = 0

        for unit in candidates:
            try:
                version = await self.resolver.resolve_version(unit.druid)
            except Exception as e:
                skipped += 1
                self.logger.error(
                    "Skipping unit, could not resolve version",
                    **unit.as_log_context(),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            items.append(ArchiveCriteria.for_unit(unit, version))

        self.logger.info("Archive criteria built", ready=len(items), skipped=skipped)
        return items, skipped
