"""Workflow step records and the immutable values passed between archiver phases."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class WorkflowStatus(str, Enum):
    """Status of a single workflow step."""

    WAITING = "waiting"
    QUEUED = "queued"
    STARTED = "started"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


TERMINAL_STATUSES: tuple[str, ...] = (
    WorkflowStatus.COMPLETED.value,
    WorkflowStatus.SKIPPED.value,
)

# Columns shared by the active and archive tables, in copy order.
# The archive table additionally has VERSION and an ARCHIVE_DT the store fills in.
WORKFLOW_STEP_COLUMNS: tuple[str, ...] = (
    "id",
    "druid",
    "datastream",
    "process",
    "status",
    "error_msg",
    "error_txt",
    "datetime",
    "attempts",
    "lifecycle",
    "elapsed",
    "repository",
    "note",
    "priority",
    "lane_id",
)


@dataclass(frozen=True)
class UnitKey:
    """All workflow rows of one (repository, druid, datastream) instance."""

    repository: Optional[str]
    druid: str
    datastream: str

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "UnitKey":
        return cls(
            repository=record["repository"],
            druid=record["druid"],
            datastream=record["datastream"],
        )

    def as_log_context(self) -> dict[str, Optional[str]]:
        return {
            "repository": self.repository,
            "druid": self.druid,
            "datastream": self.datastream,
        }


@dataclass(frozen=True)
class ArchiveCriteria:
    """A unit ready to archive, stamped with its already-resolved version."""

    repository: Optional[str]
    druid: str
    datastream: str
    version: int

    @classmethod
    def for_unit(cls, unit: UnitKey, version: int) -> "ArchiveCriteria":
        return cls(
            repository=unit.repository,
            druid=unit.druid,
            datastream=unit.datastream,
            version=version,
        )

    @property
    def unit(self) -> UnitKey:
        return UnitKey(self.repository, self.druid, self.datastream)

    def as_log_context(self) -> dict[str, Any]:
        return {**self.unit.as_log_context(), "version": self.version}
