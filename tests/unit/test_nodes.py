"""Tests for flow node variants."""

from __future__ import annotations

from typing import Any

import pytest

from articyflow.database import FlowDatabase
from articyflow.flow import IterationConfig, VisitSet, advanced_startup_flow_state, collect_branches
from articyflow.flow.state import FlowState
from articyflow.nodes import (
    ConditionNode,
    InputPin,
    InstructionNode,
    JumpNode,
    OutputPin,
    PinnedNode,
)
from articyflow.script import register_script_function
from tests.fixtures.flow_fixtures import GAME_VARIABLES, connection, flow_model, make_export, pin


@pytest.fixture
def db() -> FlowDatabase:
    """Export exercising every node variant.

    - 0x40 condition ``Game.gold > 3``: pin 0 to 0x41, pin 1 to 0x42
    - 0x50 jump to 0x41
    - 0x60 flow fragment containing 0x61, then on to 0x42
    - 0x70 fragment whose output pin spends a coin on the way to 0x41
    """
    models = [
        flow_model(
            "Condition",
            "0x40",
            expression="Game.gold > 3",
            outputs=[
                pin("0x40o0", "0x40", to=[connection("0x41", "0x41i")]),
                pin("0x40o1", "0x40", to=[connection("0x42", "0x42i")]),
            ],
        ),
        flow_model("DialogueFragment", "0x41", text="Rich.", speaker="0x99", menu_text="Boast"),
        flow_model("DialogueFragment", "0x42", text="Poor.", display_name="Poverty"),
        flow_model("Jump", "0x50", target="0x41", target_pin="0x41i"),
        flow_model("Jump", "0x51", target="0xdead", target_pin=""),
        flow_model(
            "FlowFragment",
            "0x60",
            inputs=[pin("0x60i", "0x60", to=[connection("0x61", "0x61i")])],
            outputs=[pin("0x60o", "0x60", to=[connection("0x42", "0x42i")])],
        ),
        flow_model(
            "DialogueFragment",
            "0x61",
            text="Inside.",
            outputs=[pin("0x61o", "0x61", to=[connection("0x60", "0x60o")])],
        ),
        flow_model(
            "DialogueFragment",
            "0x70",
            text="Pay up.",
            outputs=[
                pin("0x70o", "0x70", text="Game.gold -= 1", to=[connection("0x41", "0x41i")])
            ],
        ),
        flow_model(
            "Instruction",
            "0x80",
            expression="Game.met = true",
            outputs=[pin("0x80o", "0x80", to=[connection("0x41", "0x41i")])],
        ),
        flow_model(
            "DialogueFragment",
            "0x90",
            inputs=[pin("0x90i", "0x90", text="Game.met")],
        ),
    ]
    return FlowDatabase.from_dict(make_export(models, variables=GAME_VARIABLES))


@pytest.fixture
def variables(db: FlowDatabase) -> dict[str, Any]:
    return db.new_variable_store()


class TestConditionNode:
    """Tests for condition nodes."""

    def test_true_takes_first_pin(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """A holding condition leads out of output pin 0."""
        node = db.get_object("0x40")
        assert isinstance(node, ConditionNode)

        assert node.num_branches(variables, None, False) == 1
        assert node.next(variables, 0, None, False).id == "0x40o0"

    def test_false_takes_second_pin(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """A failing condition leads out of output pin 1."""
        variables["Game.gold"] = 1

        assert db.get_object("0x40").next(variables, -1, None, False).id == "0x40o1"

    def test_only_one_branch(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Branch indices above 0 lead nowhere."""
        assert db.get_object("0x40").next(variables, 1, None, False) is None

    def test_collect_through_condition(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Branch collection follows the condition's outcome."""
        config = IterationConfig(stop_at_types=["DialogueFragment"])
        state = FlowState(id="0x40", last=None, variables=variables, shadowing=True)

        branches = collect_branches(db, state, config, VisitSet())

        assert [b.path_ids() for b in branches] == [["0x40o0", "0x41i", "0x41"]]


class TestJumpNode:
    """Tests for jump nodes."""

    def test_jumps_to_target_pin(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """A jump continues at its target pin."""
        node = db.get_object("0x50")
        assert isinstance(node, JumpNode)

        assert node.num_branches(variables, None, False) == 1
        assert node.next(variables, 0, None, False).id == "0x41i"

    def test_missing_target(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """A jump to nowhere has no branches."""
        node = db.get_object("0x51")

        assert node.num_branches(variables, None, False) == 0
        assert node.next(variables, 0, None, False) is None


class TestPins:
    """Tests for input and output pins."""

    def test_input_pin_leads_to_owner(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """An unconnected input pin leads to the node that owns it."""
        node = db.get_object("0x41i")
        assert isinstance(node, InputPin)

        assert node.num_branches(variables, None, False) == 1
        assert node.next(variables, 0, None, False).id == "0x41"
        assert node.next(variables, 1, None, False) is None

    def test_input_pin_condition_gates(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """A failing input condition closes the pin."""
        node = db.get_object("0x90i")

        assert node.num_branches(variables, None, False) == 0
        assert node.next(variables, 0, None, False) is None

        variables["Game.met"] = True
        assert node.num_branches(variables, None, False) == 1

    def test_container_input_enters_children(
        self, db: FlowDatabase, variables: dict[str, Any]
    ) -> None:
        """A connected input pin leads into the container's children."""
        assert db.get_object("0x60i").next(variables, 0, None, False).id == "0x61i"

    def test_child_leaves_through_container_output(
        self, db: FlowDatabase, variables: dict[str, Any]
    ) -> None:
        """Children connect back to the container's output pin."""
        inner = db.get_object("0x61o").next(variables, 0, None, False)

        assert inner.id == "0x60o"
        assert inner.next(variables, 0, None, False).id == "0x42i"

    def test_output_pin_previews_instruction(
        self, db: FlowDatabase, variables: dict[str, Any]
    ) -> None:
        """Output pin instructions run on shadow steps, not on plain steps."""
        node = db.get_object("0x70o")
        assert isinstance(node, OutputPin)
        assert node.needs_shadow()

        node.next(variables, 0, None, False)
        assert variables["Game.gold"] == 5

        node.next(variables, 0, None, True)
        assert variables["Game.gold"] == 4

    def test_output_pin_execute(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Committing an output pin runs its instruction."""
        db.get_object("0x70o").execute(variables)

        assert variables["Game.gold"] == 4

    def test_plain_output_pin_needs_no_shadow(self, db: FlowDatabase) -> None:
        """Pins without instructions never trigger a clone."""
        assert not db.get_object("0x40o0").needs_shadow()

    def test_pin_scripts_see_database(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Native functions called from pins receive the owning database."""
        seen: list[Any] = []

        def who(invocation: Any) -> bool:
            seen.append(invocation.db)
            return True

        register_script_function("who", who)
        gate = InputPin(id="p", type_name="InputPin", db=db, script="who()", owner="0x41")

        assert gate.num_branches(variables, None, True) == 1
        assert seen == [db]


class TestInstructionNode:
    """Tests for instruction nodes."""

    def test_needs_shadow(self, db: FlowDatabase) -> None:
        """Instructions with an expression write to variables."""
        node = db.get_object("0x80")
        assert isinstance(node, InstructionNode)

        assert node.needs_shadow()

    def test_shadow_next_previews(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Stepping in shadow mode runs the expression before moving on."""
        target = db.get_object("0x80").next(variables, 0, None, True)

        assert target.id == "0x80o"
        assert variables["Game.met"] is True

    def test_execute(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Executing runs the expression."""
        db.get_object("0x80").execute(variables)

        assert variables["Game.met"] is True


class TestPinnedNode:
    """Tests for dialogue fragments and other pinned nodes."""

    def test_properties(self, db: FlowDatabase) -> None:
        """Text properties are exposed on the node."""
        node = db.get_object("0x41")
        assert isinstance(node, PinnedNode)

        assert node.text == "Rich."
        assert node.speaker == "0x99"
        assert node.menu_text == "Boast"
        assert db.get_object("0x42").display_name == "Poverty"

    def test_branches_are_output_pins(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """A pinned node branches once per output pin."""
        node = db.get_object("0x70")

        assert node.num_branches(variables, None, False) == 1
        assert node.next(variables, -1, None, False).id == "0x70o"
        assert node.next(variables, 1, None, False) is None

    def test_execute_is_noop(self, db: FlowDatabase, variables: dict[str, Any]) -> None:
        """Plain nodes have nothing to run on commit."""
        before = dict(variables)

        db.get_object("0x41").execute(variables)

        assert variables == before
        assert not db.get_object("0x41").needs_shadow()

    def test_flow_through_container(self, db: FlowDatabase) -> None:
        """Startup inside a container reaches the children, then leaves it."""
        config = IterationConfig(stop_at_types=["DialogueFragment"])

        state, node = advanced_startup_flow_state(db, "0x60i", config)

        assert node is not None and node.id == "0x61"
        assert [b.destination().id for b in state.branches] == ["0x42"]
        assert state.branches[0].path_ids() == ["0x61o", "0x60o", "0x42i", "0x42"]
