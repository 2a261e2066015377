"""Outcome values produced by an archival run."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

from workflow_archiver.models import ArchiveCriteria


class UnitState(str, Enum):
    """Lifecycle of one unit inside the transaction runner."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ABANDONED = "abandoned"


class AttemptOutcome(str, Enum):
    """Tagged result of a single copy+delete+commit attempt."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


class ExitCode(IntEnum):
    """Process exit status of the archiver CLI."""

    CLEAN = 0
    FATAL = 1
    PARTIAL_FAILURE = 2
    HALTED = 3


@dataclass(frozen=True)
class AttemptResult:
    outcome: AttemptOutcome
    rows: int = 0
    error: Optional[str] = None


@dataclass
class UnitResult:
    """Final state of one unit after the runner is done with it."""

    criteria: ArchiveCriteria
    state: UnitState = UnitState.PENDING
    attempts: int = 0
    rows: int = 0
    last_error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.state is UnitState.COMMITTED


@dataclass
class RunResult:
    """Counts accumulated over one run and returned to the caller."""

    candidates: int = 0
    selected: int = 0
    skipped: int = 0
    archived: int = 0
    errors: int = 0
    rows_archived: int = 0
    halted: bool = False
    units: list[UnitResult] = field(default_factory=list)

    @property
    def nothing_to_archive(self) -> bool:
        return self.candidates == 0

    @property
    def exit_code(self) -> ExitCode:
        if self.halted:
            return ExitCode.HALTED
        if self.errors or self.skipped:
            return ExitCode.PARTIAL_FAILURE
        return ExitCode.CLEAN

    @property
    def status(self) -> str:
        """Run status label used in logs and metrics."""
        return {
            ExitCode.CLEAN: "success",
            ExitCode.PARTIAL_FAILURE: "partial",
            ExitCode.HALTED: "halted",
        }[self.exit_code]

    def record(self, unit: UnitResult) -> None:
        """Fold a finished unit into the run totals."""
        self.units.append(unit)
        if unit.committed:
            self.archived += 1
            self.rows_archived += unit.rows
        else:
            self.errors += 1

    def summary(self) -> dict[str, Any]:
        return {
            "candidates": self.candidates,
            "selected": self.selected,
            "archived": self.archived,
            "errors": self.errors,
            "skipped": self.skipped,
            "rows_archived": self.rows_archived,
            "halted": self.halted,
            "status": self.status,
        }
