"""Per-run execution options."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from installforge.config import InstallerSettings


def default_concurrency() -> int:
    """One less than the available CPUs, minimum 1."""
    return max(1, (os.cpu_count() or 1) - 1)


class ExecutionOptions(BaseModel):
    """Options controlling a single ``execute`` call."""

    model_config = ConfigDict(frozen=True)

    concurrency_limit: int = Field(default_factory=default_concurrency, ge=1)
    fail_fast: bool = False
    dry_run: bool = False
    grace_period_seconds: float = Field(default=10.0, ge=0)

    @classmethod
    def from_settings(
        cls, settings: InstallerSettings, **overrides: object
    ) -> ExecutionOptions:
        """Build options from installer settings, with explicit overrides."""
        values: dict[str, object] = {
            "fail_fast": settings.fail_fast,
            "dry_run": settings.dry_run,
            "grace_period_seconds": settings.grace_period_seconds,
        }
        if settings.concurrency_limit is not None:
            values["concurrency_limit"] = settings.concurrency_limit
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
