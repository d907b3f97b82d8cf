"""Target models: the tagged union of buildable/installable units.

A target is described by a frozen ``TargetDefinition``. The variant is a
``TargetKind`` tag rather than a subclass; the behavior of each variant
lives in the ``action`` callable bound by the factories in
``installforge.targets``.

Dependencies are not part of a definition. They are edges of the
``DependencyGraph`` and are only ever referenced by target id.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# Prefix for inputs that refer to another target's recorded outputs.
TARGET_REF_PREFIX = "target:"

# Schemes of non-file artifacts whose signatures are recorded, not read
# from disk: built images and images loaded into a container engine.
ARTIFACT_SCHEMES: frozenset[str] = frozenset({"image", "engine"})


class TargetKind(str, Enum):
    """The variant tag of a target."""

    COMPONENT_BUILD = "component_build"
    IMAGE_BUILD = "image_build"
    IMAGE_LOAD = "image_load"
    FILE_INSTALL = "file_install"
    COMPOSITE_GROUP = "composite_group"


class TargetState(str, Enum):
    """Per-run state of a target."""

    PENDING = "pending"
    STALE = "stale"
    FRESH = "fresh"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# Forward-only transitions, enforced by TargetStateMachine.
# FRESH, SUCCEEDED, FAILED and SKIPPED are terminal.
VALID_TRANSITIONS: dict[TargetState, set[TargetState]] = {
    TargetState.PENDING: {TargetState.STALE, TargetState.FRESH, TargetState.SKIPPED},
    TargetState.STALE: {TargetState.RUNNING, TargetState.SKIPPED},
    TargetState.RUNNING: {TargetState.SUCCEEDED, TargetState.FAILED},
    TargetState.FRESH: set(),
    TargetState.SUCCEEDED: set(),
    TargetState.FAILED: set(),
    TargetState.SKIPPED: set(),
}

TERMINAL_STATES: frozenset[TargetState] = frozenset(
    state for state, allowed in VALID_TRANSITIONS.items() if not allowed
)

# States a dependency must be in before its dependents may start.
SATISFIED_STATES: frozenset[TargetState] = frozenset(
    {TargetState.SUCCEEDED, TargetState.FRESH}
)


def is_target_ref(location: str) -> bool:
    """Whether *location* is a logical ``target:<id>`` reference."""
    return location.startswith(TARGET_REF_PREFIX)


def target_ref(target_id: str) -> str:
    """Build the logical input location for another target's outputs."""
    return f"{TARGET_REF_PREFIX}{target_id}"


def has_scheme(location: str) -> bool:
    """Whether *location* is a non-file artifact such as ``image:app:1.0``.

    Only the schemes in ``ARTIFACT_SCHEMES`` count. Any other location,
    colons or not (``build:1/out.bin``, ``C:\\out``), is a filesystem path.
    """
    scheme, sep, _ = location.partition(":")
    return bool(sep) and scheme in ARTIFACT_SCHEMES


def _as_path(location: str) -> Path | None:
    """Absolute, normalized form of a path location; None for logical ones."""
    if is_target_ref(location) or has_scheme(location):
        return None
    return Path(os.path.abspath(location))


class StalenessContext(BaseModel):
    """Everything a staleness verdict may look at.

    Built by the Planner before any fingerprint is written, so verdict
    functions see a consistent, read-only snapshot.
    """

    model_config = ConfigDict(frozen=True)

    target_id: str
    # location -> current signature, or None when the input is absent
    current_inputs: dict[str, str | None]
    # location -> signature observed on the last successful run
    recorded_inputs: dict[str, str]
    # True when the target has completed successfully at least once
    has_record: bool
    # path outputs that are recorded but currently missing on disk
    missing_outputs: list[str] = []


StalenessCheck = Callable[[StalenessContext], bool]


class TargetDefinition(BaseModel):
    """A unit of buildable or installable work.

    Parameters
    ----------
    target_id:
        Unique identifier within a graph.
    kind:
        The variant tag.
    inputs:
        Ordered source locations whose change must trigger a rebuild.
        Either paths or ``target:<id>`` references.
    optional_inputs:
        Inputs (a subset of *inputs*) that may be absent, such as a lock
        file the action itself creates. Absence is recorded as a
        signature, and they are signed again after the action runs.
    outputs:
        Ordered produced artifact locations. Paths, or scheme-prefixed
        locations (``image:<tag>``, ``engine:<tag>``) for non-file artifacts.
    action:
        ``action(definition, context) -> dict[str, str] | None``. Only
        composite groups have no action.
    staleness:
        Optional replacement for the default staleness verdict.
    always_run:
        Mark the target stale on every run.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    target_id: str
    kind: TargetKind
    inputs: tuple[str, ...] = ()
    optional_inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    action: Callable[..., Any] | None = None
    staleness: Callable[..., bool] | None = None
    description: str = ""
    always_run: bool = False
    options: dict[str, Any] = {}

    @field_validator("target_id")
    @classmethod
    def _non_empty_id(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("target_id must be a non-empty string")
        if is_target_ref(value):
            raise ValueError(f"target_id may not start with {TARGET_REF_PREFIX!r}")
        return value

    @model_validator(mode="after")
    def _check_outputs_and_action(self) -> TargetDefinition:
        overlap = set(self.inputs) & set(self.outputs)
        if overlap:
            raise ValueError(
                f"Target {self.target_id!r} lists {sorted(overlap)} as both "
                f"input and output"
            )
        self._check_output_paths()
        unknown = set(self.optional_inputs) - set(self.inputs)
        if unknown:
            raise ValueError(
                f"Target {self.target_id!r} lists optional inputs {sorted(unknown)} "
                f"that are not inputs"
            )
        if self.action is None and self.kind != TargetKind.COMPOSITE_GROUP:
            raise ValueError(
                f"Target {self.target_id!r} of kind {self.kind.value} needs an action"
            )
        if self.kind == TargetKind.COMPOSITE_GROUP and (self.inputs or self.outputs):
            raise ValueError(
                f"Composite group {self.target_id!r} cannot declare inputs or outputs"
            )
        return self

    def _check_output_paths(self) -> None:
        """Reject path outputs that are, or lie inside, a path input."""
        inputs = [(loc, _as_path(loc)) for loc in self.inputs]
        for output in self.outputs:
            out_path = _as_path(output)
            if out_path is None:
                continue
            for location, in_path in inputs:
                if in_path is None:
                    continue
                if out_path == in_path:
                    raise ValueError(
                        f"Target {self.target_id!r} lists {output!r} and {location!r} "
                        f"as both input and output"
                    )
                if in_path in out_path.parents:
                    raise ValueError(
                        f"Target {self.target_id!r} writes output {output!r} "
                        f"inside its input {location!r}"
                    )

    @property
    def label(self) -> str:
        """Description if set, else the id."""
        return self.description or self.target_id

    @property
    def referenced_targets(self) -> list[str]:
        """Target ids referenced through ``target:<id>`` inputs."""
        return [
            loc[len(TARGET_REF_PREFIX):] for loc in self.inputs if is_target_ref(loc)
        ]


class TargetTransition(BaseModel):
    """Records a single state transition for the run history."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    from_state: TargetState
    to_state: TargetState
    reason: str = ""
