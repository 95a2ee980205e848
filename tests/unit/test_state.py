"""Tests for flow state value types."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from articyflow.flow import AdvancedFlowState, FlowBranch, FlowState, VisitSet
from tests.fixtures.flow_fixtures import FakeGraph, FakeNode


class TestFlowState:
    """Tests for FlowState."""

    def test_is_frozen(self) -> None:
        """States are values and cannot be changed in place."""
        state = FlowState(id="A", last=None)

        with pytest.raises(FrozenInstanceError):
            state.id = "B"  # type: ignore[misc]

    def test_defaults(self) -> None:
        """Variables default to an empty store and shadowing to off."""
        state = FlowState(id="A", last=None)

        assert state.variables == {}
        assert state.shadowing is False


class TestVisitSet:
    """Tests for VisitSet bookkeeping."""

    def test_record_counts_and_indexes(self) -> None:
        """Recording increments the count and stores the latest turn."""
        visits = VisitSet()

        visits.record("A", 0)
        visits.record("A", 4)

        assert visits.count("A") == 2
        assert visits.indices["A"] == 4

    def test_count_of_unvisited_is_zero(self) -> None:
        """Nodes never recorded have count zero."""
        assert VisitSet().count("nope") == 0

    def test_copy_is_independent(self) -> None:
        """Recording on a copy leaves the original untouched."""
        original = VisitSet()
        original.record("A", 0)

        copy = original.copy()
        copy.record("B", 1)

        assert original.counts == {"A": 1}
        assert original.indices == {"A": 0}
        assert copy.counts == {"A": 1, "B": 1}


class TestAdvancedFlowState:
    """Tests for AdvancedFlowState."""

    def test_null_state(self) -> None:
        """The null state is nowhere, with nothing visited."""
        state = AdvancedFlowState.null()

        assert state.id is None
        assert state.last is None
        assert state.variables == {}
        assert state.branches == []
        assert state.visits.counts == {}
        assert state.turn == 0

    def test_null_states_do_not_share_containers(self) -> None:
        """Each null state gets its own visit set and branch list."""
        first = AdvancedFlowState.null()
        second = AdvancedFlowState.null()

        assert first.visits is not second.visits
        assert first.branches is not second.branches


class SpecialNode(FakeNode):
    """FakeNode subclass used to test kind filters."""


class TestFlowBranch:
    """Tests for FlowBranch helpers."""

    @pytest.fixture
    def branch(self) -> FlowBranch:
        nodes = [
            FakeNode("A", "Pin"),
            SpecialNode("B", "Hub"),
            SpecialNode("C", "Line", bases=("DialogueFragment",)),
        ]
        FakeGraph(nodes)
        return FlowBranch(index=0, path=nodes)

    def test_default_index_is_unassigned(self) -> None:
        """A new branch has the sentinel index and an empty path."""
        branch = FlowBranch()

        assert branch.index == -1
        assert branch.path == []

    def test_destination(self, branch: FlowBranch) -> None:
        """The destination is the last node on the path."""
        assert branch.destination().id == "C"
        assert branch.path_ids() == ["A", "B", "C"]

    def test_destination_is(self, branch: FlowBranch) -> None:
        """Type checks on the destination follow its lineage."""
        assert branch.destination_is("DialogueFragment")
        assert not branch.destination_is("Hub")

    def test_destination_as(self, branch: FlowBranch) -> None:
        """destination_as filters by kind and optional type name."""
        assert branch.destination_as(SpecialNode) is branch.path[-1]
        assert branch.destination_as(SpecialNode, "Line") is branch.path[-1]
        assert branch.destination_as(SpecialNode, "Hub") is None
        assert branch.destination_as(int) is None

    def test_path_has(self, branch: FlowBranch) -> None:
        """path_has returns the first matching node on the path."""
        assert branch.path_has(SpecialNode) is branch.path[1]
        assert branch.path_has(FakeNode, "Line") is branch.path[2]
        assert branch.path_has(SpecialNode, "Pin") is None
