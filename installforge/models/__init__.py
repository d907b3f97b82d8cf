"""installforge data models: all Pydantic v2, all frozen (immutable)."""

from installforge.models.config import ExecutionOptions, default_concurrency
from installforge.models.fingerprints import (
    ABSENT_SIGNATURE,
    ARTIFACT_SCOPE,
    RUN_MARKER,
    FingerprintRecord,
    SignatureMode,
)
from installforge.models.plan import Plan
from installforge.models.reports import (
    ExecutionReport,
    ExitStatus,
    RunStatus,
    TargetOutcome,
)
from installforge.models.targets import (
    SATISFIED_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    StalenessCheck,
    StalenessContext,
    TargetDefinition,
    TargetKind,
    TargetState,
    TargetTransition,
    target_ref,
)

__all__ = [
    # targets
    "TargetKind",
    "TargetState",
    "TargetTransition",
    "TargetDefinition",
    "StalenessContext",
    "StalenessCheck",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "SATISFIED_STATES",
    "target_ref",
    # fingerprints
    "FingerprintRecord",
    "SignatureMode",
    "ARTIFACT_SCOPE",
    "RUN_MARKER",
    "ABSENT_SIGNATURE",
    # plan
    "Plan",
    # reports
    "RunStatus",
    "ExitStatus",
    "TargetOutcome",
    "ExecutionReport",
    # config
    "ExecutionOptions",
    "default_concurrency",
]
