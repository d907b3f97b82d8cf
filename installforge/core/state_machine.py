"""Per-run target state machine.

Enforces:
- Valid, forward-only transitions (VALID_TRANSITIONS table)
- Dependencies satisfied (SUCCEEDED or FRESH) before RUNNING
- Cascade skipping of every not-yet-started dependent on failure
- Every transition recorded in the run history
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from installforge.core.dependency_graph import DependencyGraph
from installforge.models.targets import (
    SATISFIED_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    TargetState,
    TargetTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class DependencyNotSatisfiedError(RuntimeError):
    """Raised when a target would start before its dependencies finished."""


class TargetStateMachine:
    """Tracks the state of every target in one run.

    Parameters
    ----------
    graph:
        The dependency graph, used for prerequisite checks and cascades.
    target_ids:
        The targets taking part in this run (the plan's closure).
    on_transition:
        Optional listener called after every transition.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        target_ids: list[str],
        on_transition: Callable[[TargetTransition], None] | None = None,
    ) -> None:
        self._graph = graph
        self._on_transition = on_transition
        self._states: dict[str, TargetState] = {
            tid: TargetState.PENDING for tid in target_ids
        }
        self._reasons: dict[str, str] = {}
        self.history: list[TargetTransition] = []

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def get_state(self, target_id: str) -> TargetState:
        return self._states[target_id]

    def get_all_states(self) -> dict[str, TargetState]:
        """Return a snapshot of all target states."""
        return dict(self._states)

    def get_reason(self, target_id: str) -> str:
        return self._reasons.get(target_id, "")

    def is_terminal(self, target_id: str) -> bool:
        return self._states[target_id] in TERMINAL_STATES

    def all_terminal(self) -> bool:
        return all(state in TERMINAL_STATES for state in self._states.values())

    def with_state(self, state: TargetState) -> list[str]:
        return [tid for tid, s in self._states.items() if s == state]

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self, target_id: str, to_state: TargetState, reason: str = ""
    ) -> TargetTransition:
        """Move a target to a new state.

        Validates:
        1. The transition is allowed by VALID_TRANSITIONS.
        2. If the new state is RUNNING, every dependency in this run is
           SUCCEEDED or FRESH.
        """
        current = self._states[target_id]
        allowed = VALID_TRANSITIONS.get(current, set())
        if to_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {target_id} from {current.value} to {to_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        if to_state == TargetState.RUNNING:
            unmet = self.unmet_dependencies(target_id)
            if unmet:
                raise DependencyNotSatisfiedError(
                    f"Cannot start {target_id}: waiting on {', '.join(unmet)}"
                )

        self._states[target_id] = to_state
        if reason:
            self._reasons[target_id] = reason
        record = TargetTransition(
            target_id=target_id, from_state=current, to_state=to_state, reason=reason
        )
        self.history.append(record)
        logger.debug("%s: %s -> %s", target_id, current.value, to_state.value)
        if self._on_transition is not None:
            self._on_transition(record)
        return record

    def unmet_dependencies(self, target_id: str) -> list[str]:
        """Dependencies in this run that are not SUCCEEDED or FRESH."""
        return [
            dep
            for dep in self._graph.get_dependencies(target_id)
            if dep in self._states and self._states[dep] not in SATISFIED_STATES
        ]

    def is_eligible(self, target_id: str) -> bool:
        """Whether a STALE target may start now."""
        return (
            self._states[target_id] == TargetState.STALE
            and not self.unmet_dependencies(target_id)
        )

    def cascade_skip(self, failed_id: str) -> list[str]:
        """Skip every not-yet-started transitive dependent of *failed_id*.

        Returns the ids that were newly skipped.
        """
        skipped: list[str] = []
        for dependent in self._graph.get_dependents(failed_id):
            if dependent not in self._states:
                continue
            if self._states[dependent] in (TargetState.PENDING, TargetState.STALE):
                self.transition(
                    dependent,
                    TargetState.SKIPPED,
                    reason=f"dependency '{failed_id}' failed",
                )
                skipped.append(dependent)
        return skipped

    def skip_remaining(self, reason: str) -> list[str]:
        """Skip every target that has not started yet."""
        skipped: list[str] = []
        for target_id, state in list(self._states.items()):
            if state in (TargetState.PENDING, TargetState.STALE):
                self.transition(target_id, TargetState.SKIPPED, reason=reason)
                skipped.append(target_id)
        return skipped
