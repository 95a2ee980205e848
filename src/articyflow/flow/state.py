"""Flow traversal state.

- FlowState: a position in the flow plus the variables in effect there
- VisitSet: how often and when each node was committed
- FlowBranch: a path from a fork to the next stopping point
- AdvancedFlowState: a position plus visits, turn counter and branch cache

States are values. Every transition builds a new one with
``dataclasses.replace``; earlier states stay valid for history and undo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from articyflow.nodes import FlowNode
    from articyflow.variables import VariableStore

NodeT = TypeVar("NodeT")


@dataclass(frozen=True)
class FlowState:
    """Minimal position in the flow.

    Attributes:
        id: Current node id, or None when traversal has ended.
        last: Id of the node we came from.
        variables: Variable store in effect at this position.
        shadowing: True while previewing. Nothing done in shadow mode may
            have lasting effects.
    """

    id: str | None
    last: str | None
    variables: VariableStore = field(default_factory=dict)
    shadowing: bool = False


@dataclass
class VisitSet:
    """Visit bookkeeping keyed by node id.

    Attributes:
        counts: Number of commits through each node.
        indices: Turn at which each node was last committed.
    """

    counts: dict[str, int] = field(default_factory=dict)
    indices: dict[str, int] = field(default_factory=dict)

    def copy(self) -> VisitSet:
        return VisitSet(counts=dict(self.counts), indices=dict(self.indices))

    def record(self, node_id: str, turn: int) -> None:
        """Count a visit to *node_id* during *turn* (mutates this set)."""
        self.counts[node_id] = self.counts.get(node_id, 0) + 1
        self.indices[node_id] = turn

    def count(self, node_id: str) -> int:
        return self.counts.get(node_id, 0)


@dataclass
class FlowBranch:
    """A branch available at a fork.

    Attributes:
        index: Position among the branches at the fork; pass it to
            ``advanced_next_flow_state``. -1 while unassigned.
        path: Nodes from (not including) the fork up to and including the
            stopping point.
    """

    index: int = -1
    path: list[FlowNode] = field(default_factory=list)

    def destination(self) -> FlowNode:
        """The terminal node of this branch."""
        return self.path[-1]

    def destination_is(self, type_name: str) -> bool:
        return self.destination().is_type(type_name)

    def destination_as(self, kind: type[NodeT], type_name: str | None = None) -> NodeT | None:
        """Return the destination if it is a *kind* (and *type_name*), else None."""
        dest = self.destination()
        if not isinstance(dest, kind):
            return None
        if type_name and not dest.is_type(type_name):
            return None
        return dest

    def path_has(self, kind: type[NodeT], type_name: str | None = None) -> NodeT | None:
        """First node on the path that is a *kind* (and *type_name*), or None."""
        for item in self.path:
            if not isinstance(item, kind):
                continue
            if type_name and not item.is_type(type_name):
                continue
            return item
        return None

    def path_ids(self) -> list[str]:
        return [node.id for node in self.path]


@dataclass(frozen=True)
class AdvancedFlowState(FlowState):
    """Flow position with visits, turn counter and available branches.

    Attributes:
        branches: Branches available from this position. Derived from
            ``(id, variables, visits)`` by ``refresh_branches``; never edit
            it by hand.
        visits: Visit bookkeeping up to this state.
        turn: Number of committed steps. Only guaranteed to increase.
    """

    branches: list[FlowBranch] = field(default_factory=list)
    visits: VisitSet = field(default_factory=VisitSet)
    turn: int = 0

    @classmethod
    def null(cls) -> AdvancedFlowState:
        """The empty state: nowhere in the flow, nothing visited."""
        return cls(id=None, last=None)
