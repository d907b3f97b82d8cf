"""Execution plan model produced by the Planner."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Plan(BaseModel):
    """The ordered subset of targets selected for a run.

    ``order`` covers the whole selection closure (selected targets plus
    their transitive dependencies) in topological order. ``stale`` is the
    subsequence that must execute; ``fresh`` is reported for visibility.
    """

    model_config = ConfigDict(frozen=True)

    selection: list[str]
    order: list[str]
    stale: list[str]
    fresh: list[str]
    reasons: dict[str, str] = {}  # target_id -> why it is stale
    forced: bool = False
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_empty(self) -> bool:
        """True when nothing needs to run."""
        return not self.stale

    def is_stale(self, target_id: str) -> bool:
        return target_id in self.reasons
