"""Flow node variants.

Every object the iterator can stand on implements the :class:`FlowNode`
protocol: it reports how many branches leave it under the current
variables, resolves branch *i* to the next node, says whether it writes to
the variable store (and so needs a shadow copy before speculative
execution), and executes its script when a branch through it is committed.

Traversal goes through pins, as in the export::

    node ─> OutputPin ─(connection)─> InputPin ─> node ─> ...

Output pins carry instruction scripts, input pins carry conditions. A
container (flow fragment, dialogue) whose input pin has connections leads
into its children; the children connect back to the container's output
pin, whose connections lead out again.

Variants:
- OutputPin: runs its instruction, branches along its connections
- InputPin: gates on its condition, leads to its owner or into a container
- PinnedNode: dialogue fragments, hubs, dialogues, flow fragments
- ConditionNode: picks output pin 0 (true) or 1 (false)
- InstructionNode: runs its expression, then continues
- JumpNode: continues at a target pin anywhere in the project

Kinds are distinguished by type tag (``is_type``), which also honors
template types derived from the built-in classes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from articyflow.script.sandbox import ScriptContext, run_script

if TYPE_CHECKING:
    from collections.abc import Callable

    from articyflow.database.database import FlowDatabase
    from articyflow.database.models import ConnectionData, FlowObjectProperties, ModelData, PinData
    from articyflow.variables import VariableStore


@runtime_checkable
class FlowNode(Protocol):
    """Capability set the flow iterator relies on."""

    id: str
    type_name: str
    template: dict[str, dict[str, Any]] | None

    def is_type(self, type_name: str) -> bool:
        """True if this node is *type_name* or derives from it."""
        ...

    def num_branches(
        self,
        variables: VariableStore,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> int:
        """Number of branches leaving this node under *variables*."""
        ...

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        """Node reached through branch *branch_index* (negative means the only one)."""
        ...

    def needs_shadow(self) -> bool:
        """True if leaving this node may write to the variable store."""
        ...

    def execute(self, variables: VariableStore, *, context: ScriptContext | None = None) -> None:
        """Run this node's script in commit mode."""
        ...


@dataclass(eq=False)
class FlowObject:
    """Identity and type tag shared by the node variants."""

    id: str
    type_name: str
    db: FlowDatabase = field(repr=False)
    template: dict[str, dict[str, Any]] | None = field(default=None, repr=False)

    def is_type(self, type_name: str) -> bool:
        return type_name in self.db.type_lineage(self.type_name)

    def needs_shadow(self) -> bool:
        return False

    def execute(self, variables: VariableStore, *, context: ScriptContext | None = None) -> None:
        return None

    def _context(self, context: ScriptContext | None) -> ScriptContext:
        return context if context is not None else ScriptContext(db=self.db)

    def _follow(self, connection: ConnectionData) -> FlowNode | None:
        return self.db.get_object(connection.target_pin) or self.db.get_object(connection.target)


@dataclass(eq=False)
class OutputPin(FlowObject):
    """Output pin. Its text is an instruction run when the pin is left."""

    script: str = ""
    owner: str = ""
    connections: list[ConnectionData] = field(default_factory=list, repr=False)

    def needs_shadow(self) -> bool:
        return bool(self.script.strip())

    def execute(self, variables: VariableStore, *, context: ScriptContext | None = None) -> None:
        run_script(
            self.script, variables, returns=False, shadowing=False, context=self._context(context)
        )

    def num_branches(
        self,
        variables: VariableStore,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> int:
        return len(self.connections)

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        index = max(branch_index, 0)
        if index >= len(self.connections):
            return None
        # Preview the instruction so conditions further down see its effect
        if shadowing and self.needs_shadow():
            run_script(
                self.script,
                variables,
                returns=False,
                shadowing=True,
                context=self._context(context),
            )
        return self._follow(self.connections[index])


@dataclass(eq=False)
class InputPin(FlowObject):
    """Input pin. Its text is a condition that must hold to pass through."""

    script: str = ""
    owner: str = ""
    connections: list[ConnectionData] = field(default_factory=list, repr=False)

    def _passes(
        self, variables: VariableStore, shadowing: bool, context: ScriptContext | None
    ) -> bool:
        return run_script(
            self.script,
            variables,
            returns=True,
            shadowing=shadowing,
            context=self._context(context),
        )

    def num_branches(
        self,
        variables: VariableStore,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> int:
        if not self._passes(variables, shadowing, context):
            return 0
        return len(self.connections) or 1

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        if not self._passes(variables, shadowing, context):
            return None
        index = max(branch_index, 0)
        if self.connections:
            if index >= len(self.connections):
                return None
            return self._follow(self.connections[index])
        if index > 0:
            return None
        return self.db.get_object(self.owner)


@dataclass(eq=False)
class PinnedNode(FlowObject):
    """Node that simply continues through its output pins.

    Covers dialogue fragments, hubs, dialogues and flow fragments, plus any
    template type derived from them.
    """

    properties: FlowObjectProperties | None = field(default=None, repr=False)
    input_pins: list[InputPin] = field(default_factory=list, repr=False)
    output_pins: list[OutputPin] = field(default_factory=list, repr=False)

    @property
    def text(self) -> str:
        return self.properties.text if self.properties else ""

    @property
    def display_name(self) -> str:
        return self.properties.display_name if self.properties else ""

    @property
    def menu_text(self) -> str:
        return self.properties.menu_text if self.properties else ""

    @property
    def speaker(self) -> str:
        return self.properties.speaker if self.properties else ""

    def num_branches(
        self,
        variables: VariableStore,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> int:
        return len(self.output_pins)

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        index = max(branch_index, 0)
        if index >= len(self.output_pins):
            return None
        return self.output_pins[index]


@dataclass(eq=False)
class ConditionNode(PinnedNode):
    """Condition node: output pin 0 when the expression holds, else pin 1."""

    expression: str = ""

    def num_branches(
        self,
        variables: VariableStore,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> int:
        return 1 if self.output_pins else 0

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        if branch_index > 0:
            return None
        result = run_script(
            self.expression,
            variables,
            returns=True,
            shadowing=shadowing,
            context=self._context(context),
        )
        pin = 0 if result else 1
        if pin >= len(self.output_pins):
            return None
        return self.output_pins[pin]


@dataclass(eq=False)
class InstructionNode(PinnedNode):
    """Instruction node: runs its expression, then continues."""

    expression: str = ""

    def needs_shadow(self) -> bool:
        return bool(self.expression.strip())

    def execute(self, variables: VariableStore, *, context: ScriptContext | None = None) -> None:
        run_script(
            self.expression,
            variables,
            returns=False,
            shadowing=False,
            context=self._context(context),
        )

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        if shadowing and self.needs_shadow():
            run_script(
                self.expression,
                variables,
                returns=False,
                shadowing=True,
                context=self._context(context),
            )
        return super().next(variables, branch_index, last, shadowing, context=context)


@dataclass(eq=False)
class JumpNode(PinnedNode):
    """Jump node: continues at its target pin (or target node)."""

    target: str = ""
    target_pin: str = ""

    def _target(self) -> FlowNode | None:
        return self.db.get_object(self.target_pin) or self.db.get_object(self.target)

    def num_branches(
        self,
        variables: VariableStore,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> int:
        return 1 if self._target() is not None else 0

    def next(
        self,
        variables: VariableStore,
        branch_index: int,
        last: str | None,
        shadowing: bool,
        *,
        context: ScriptContext | None = None,
    ) -> FlowNode | None:
        if branch_index > 0:
            return None
        return self._target()


# -----------------------------------------------------------------------------
# Construction from export models
# -----------------------------------------------------------------------------


def _build_pins(db: FlowDatabase, pins: list[PinData], owner: str, kind: type) -> list[Any]:
    return [
        kind(
            id=pin.id,
            type_name=kind.__name__,
            db=db,
            script=pin.text,
            owner=pin.owner or owner,
            connections=list(pin.connections),
        )
        for pin in pins
    ]


def build_flow_objects(
    db: FlowDatabase,
    model: ModelData,
    properties: FlowObjectProperties,
    base_type: str,
) -> list[FlowObject]:
    """Build the node for *model* plus its pins.

    Args:
        db: Owning database (used for lookups at traversal time).
        model: Exported model.
        properties: Model properties validated as flow properties.
        base_type: Built-in flow class the model's type derives from.

    Returns:
        The node first, followed by its input and output pins.
    """
    input_pins: list[InputPin] = _build_pins(db, properties.input_pins, properties.id, InputPin)
    output_pins: list[OutputPin] = _build_pins(
        db, properties.output_pins, properties.id, OutputPin
    )

    kind = NODE_KINDS[base_type]
    extra: dict[str, Any] = {}
    if kind is ConditionNode or kind is InstructionNode:
        extra["expression"] = properties.expression
    elif kind is JumpNode:
        extra["target"] = properties.target
        extra["target_pin"] = properties.target_pin

    node = kind(
        id=properties.id,
        type_name=model.type,
        db=db,
        template=model.template,
        properties=properties,
        input_pins=input_pins,
        output_pins=output_pins,
        **extra,
    )
    return [node, *input_pins, *output_pins]


NODE_KINDS: dict[str, Callable[..., PinnedNode]] = {
    "DialogueFragment": PinnedNode,
    "Hub": PinnedNode,
    "Dialogue": PinnedNode,
    "FlowFragment": PinnedNode,
    "Condition": ConditionNode,
    "Instruction": InstructionNode,
    "Jump": JumpNode,
}
"""Built-in flow classes and the variant interpreting each."""
