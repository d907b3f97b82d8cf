"""Execution report models returned by the Executor."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from installforge.models.targets import TargetKind, TargetState


class RunStatus(str, Enum):
    """State of a single execution run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ExitStatus(str, Enum):
    """Overall outcome of a run, mapped to a process exit code."""

    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES: dict[ExitStatus, int] = {
    ExitStatus.ALL_SUCCEEDED: 0,
    ExitStatus.PARTIAL_FAILURE: 1,
    ExitStatus.ABORTED: 2,
}


class TargetOutcome(BaseModel):
    """Terminal state of one target, with a reason for every non-success."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    kind: TargetKind
    state: TargetState
    reason: str = ""
    duration_ms: int = 0


class ExecutionReport(BaseModel):
    """Mapping of target id to outcome, plus the overall status."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus
    exit_status: ExitStatus
    outcomes: dict[str, TargetOutcome]
    actions_executed: int = 0
    dry_run: bool = False
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    finished_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def states(self) -> dict[str, TargetState]:
        """Target id -> terminal state, in plan order."""
        return {tid: outcome.state for tid, outcome in self.outcomes.items()}

    def _with_state(self, state: TargetState) -> list[str]:
        return [tid for tid, o in self.outcomes.items() if o.state == state]

    def succeeded(self) -> list[str]:
        return self._with_state(TargetState.SUCCEEDED)

    def failed(self) -> list[str]:
        return self._with_state(TargetState.FAILED)

    def skipped(self) -> list[str]:
        return self._with_state(TargetState.SKIPPED)

    def fresh(self) -> list[str]:
        return self._with_state(TargetState.FRESH)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
