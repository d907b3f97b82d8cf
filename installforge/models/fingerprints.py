"""Fingerprint record model: what the store remembers between runs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Scope holding artifact (output) records keyed by location.
ARTIFACT_SCOPE = ""

# Location of the per-target marker written after every successful run.
RUN_MARKER = ""

# Recorded signature of an optional input that did not exist.
ABSENT_SIGNATURE = "absent"


class SignatureMode(str, Enum):
    """How file signatures are computed.

    ``content`` hashes bytes (correct across checkouts and clock skew).
    ``mtime`` uses modification time and size (fast, but fooled by
    touched files and mtime resets).
    """

    CONTENT = "content"
    MTIME = "mtime"


class FingerprintRecord(BaseModel):
    """A persisted signature for one location within a scope.

    Scope ``""`` holds output artifacts keyed by location. A scope equal
    to a target id holds the input signatures that target observed on
    its last successful run, plus the run marker at location ``""``.
    """

    model_config = ConfigDict(frozen=True)

    scope: str = ARTIFACT_SCOPE
    location: str
    signature: str
    recorded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
