"""Tests for the TargetStateMachine: transitions, prerequisites, cascades."""

from __future__ import annotations

import pytest

from installforge.core.state_machine import (
    DependencyNotSatisfiedError,
    InvalidTransitionError,
    TargetStateMachine,
)
from installforge.models.targets import TargetState


@pytest.fixture
def machine(chain) -> TargetStateMachine:
    return TargetStateMachine(chain.graph, ["A", "B", "C"])


class TestTransitions:
    def test_initial_state(self, machine):
        assert machine.get_all_states() == {
            "A": TargetState.PENDING,
            "B": TargetState.PENDING,
            "C": TargetState.PENDING,
        }

    def test_happy_path(self, machine):
        machine.transition("A", TargetState.STALE, "no recorded build")
        machine.transition("A", TargetState.RUNNING)
        machine.transition("A", TargetState.SUCCEEDED)
        assert machine.get_state("A") == TargetState.SUCCEEDED
        assert machine.is_terminal("A")
        assert machine.get_reason("A") == "no recorded build"

    def test_invalid_transition(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.transition("A", TargetState.SUCCEEDED)

    def test_terminal_states_are_final(self, machine):
        machine.transition("A", TargetState.FRESH)
        with pytest.raises(InvalidTransitionError):
            machine.transition("A", TargetState.STALE)

    def test_running_requires_satisfied_dependencies(self, machine):
        machine.transition("A", TargetState.STALE)
        machine.transition("B", TargetState.STALE)
        with pytest.raises(DependencyNotSatisfiedError):
            machine.transition("B", TargetState.RUNNING)
        assert machine.unmet_dependencies("B") == ["A"]
        assert not machine.is_eligible("B")

    def test_fresh_dependency_satisfies(self, machine):
        machine.transition("A", TargetState.FRESH)
        machine.transition("B", TargetState.STALE)
        assert machine.is_eligible("B")

    def test_history_and_listener(self, chain):
        seen = []
        machine = TargetStateMachine(chain.graph, ["A"], on_transition=seen.append)
        machine.transition("A", TargetState.STALE, "why")
        assert len(machine.history) == 1
        assert seen[0].from_state == TargetState.PENDING
        assert seen[0].to_state == TargetState.STALE
        assert seen[0].reason == "why"


class TestCascades:
    def test_cascade_skip(self, machine):
        for tid in ("A", "B", "C"):
            machine.transition(tid, TargetState.STALE)
        machine.transition("A", TargetState.RUNNING)
        machine.transition("A", TargetState.FAILED, "boom")
        skipped = machine.cascade_skip("A")
        assert skipped == ["B", "C"]
        assert machine.get_reason("C") == "dependency 'A' failed"
        assert machine.all_terminal()

    def test_cascade_leaves_terminal_states_alone(self, chain):
        machine = TargetStateMachine(chain.graph, ["A", "B"])
        machine.transition("A", TargetState.STALE)
        machine.transition("B", TargetState.FRESH)
        machine.transition("A", TargetState.RUNNING)
        machine.transition("A", TargetState.FAILED)
        assert machine.cascade_skip("A") == []
        assert machine.get_state("B") == TargetState.FRESH

    def test_skip_remaining(self, machine):
        machine.transition("A", TargetState.FRESH)
        machine.transition("B", TargetState.STALE)
        assert machine.skip_remaining("aborted") == ["B", "C"]
        assert machine.with_state(TargetState.SKIPPED) == ["B", "C"]
