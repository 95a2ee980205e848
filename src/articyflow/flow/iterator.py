"""Flow iteration and branch collection.

Two levels of iteration:

- **Basic**: :func:`basic_next_flow_state` moves a :class:`FlowState` one
  node along one branch. Pure; it runs no scripts of its own.
- **Advanced**: an :class:`AdvancedFlowState` stands on a stopping point
  (typically a dialogue fragment) and caches every branch leading to the
  next stopping points. :func:`advanced_next_flow_state` commits one of
  them: it executes each node on the branch, records visits and moves on.

Branches are discovered by :func:`collect_branches`, a depth-first walk run
in shadow mode. Scripts on the way are previewed against a clone of the
variable store (cloned on first need, separately for each fork path) so the
caller's committed variables are never touched.

Traversal failures are data, not errors: unknown ids, exhausted branches
and dead ends produce empty results or the null state.

Note:
    Cycle termination is left to the stop set and to the ``Visit_Limitation``
    template feature. A cycle with neither a stop node nor an only-once node
    on it never terminates.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from articyflow.flow.config import CustomStopType
from articyflow.flow.state import AdvancedFlowState, FlowBranch, FlowState, VisitSet
from articyflow.nodes import FlowNode
from articyflow.observability.logging import get_logger
from articyflow.script.sandbox import on_node_execution
from articyflow.variables import clone_variable_store

if TYPE_CHECKING:
    from articyflow.database.database import Database
    from articyflow.flow.config import IterationConfig
    from articyflow.script.sandbox import ScriptContext

log = get_logger(__name__)

VISIT_LIMITATION_FEATURE = "Visit_Limitation"

BasicIterationResult = tuple[FlowState, FlowNode | None]
AdvancedIterationResult = tuple[AdvancedFlowState, FlowNode | None]


def get_flow_state_children(
    db: Database,
    state: FlowState,
    node: FlowNode | None = None,
    *,
    context: ScriptContext | None = None,
) -> list[FlowNode]:
    """Find every immediate valid child of the state's node.

    Args:
        db: Database.
        state: Current flow state.
        node: The state's node, if already resolved.
        context: Script context for condition evaluation.

    Returns:
        Children in branch order. Branches that resolve to nothing are
        skipped.
    """
    if not state.id:
        return []

    node = node if node is not None else db.get_object(state.id, FlowNode)
    if node is None:
        return []

    children: list[FlowNode] = []
    count = node.num_branches(state.variables, state.last, state.shadowing, context=context)
    shadow = node.needs_shadow()
    for i in range(count):
        # Each preview starts from the caller's variables
        variables = clone_variable_store(state.variables) if shadow else state.variables
        child = node.next(variables, i, state.last, state.shadowing, context=context)
        if child is not None:
            children.append(child)
    return children


def basic_next_flow_state(
    db: Database,
    state: FlowState,
    branch_index: int,
    *,
    context: ScriptContext | None = None,
) -> BasicIterationResult:
    """Advance a flow state one node down a branch.

    Args:
        db: Database.
        state: Current flow state.
        branch_index: Branch to follow (-1 to follow the only branch).
        context: Script context for the node's scripts.

    Returns:
        The new state and the node it now stands on. When there is nowhere
        to go, the state is reset (no id, no variables) and the node is None.
    """
    if not state.id:
        return state, None

    node = db.get_object(state.id, FlowNode)
    next_node = (
        node.next(state.variables, branch_index, state.last, state.shadowing, context=context)
        if node is not None
        else None
    )

    if next_node is None:
        return FlowState(id=None, last=None, variables={}, shadowing=state.shadowing), None

    return (
        FlowState(
            id=next_node.id,
            last=state.id,
            variables=state.variables,
            shadowing=state.shadowing,
        ),
        next_node,
    )


def _visit_limited(node: FlowNode, visits: VisitSet) -> bool:
    template = node.template or {}
    feature = template.get(VISIT_LIMITATION_FEATURE)
    if not feature or not feature.get("Only_Once"):
        return False
    return visits.count(node.id) > 0


def collect_branches(
    db: Database,
    state: FlowState,
    config: IterationConfig,
    visits: VisitSet,
    branch: FlowBranch | None = None,
    index: int = 0,
    direction: int = -1,
    node: FlowNode | None = None,
    *,
    context: ScriptContext | None = None,
    cloned: bool = False,
) -> list[FlowBranch]:
    """Collect every branch from a position to the next stopping points.

    Walks forward while there is exactly one way to go (or a forced
    ``direction``), forking the walk at every node with several branches.
    A walk ends at a node matching ``config.stop_at_types`` (subject to
    ``config.custom_stop_handler``); walks that hit a dead end or an
    already-visited only-once node are dropped.

    Args:
        db: Database.
        state: Position to collect from. Pass a shadowing state.
        config: Iteration configuration.
        visits: Committed visits, used for visit limitation.
        branch: Branch being extended (internal).
        index: Index for the next branch produced.
        direction: Branch to force on the first step, -1 for none.
        node: The state's node, if already resolved.
        context: Script context for previews.
        cloned: Whether this walk already owns a clone of the variables
            (internal).

    Returns:
        Branches indexed contiguously from ``index`` in discovery order.
    """
    if not state.id:
        return []

    node = node if node is not None else db.get_object(state.id, FlowNode)
    if node is None:
        return []

    if branch is None:
        branch = FlowBranch(index=index)

    branches = node.num_branches(state.variables, state.last, state.shadowing, context=context)

    while branches == 1 or direction >= 0:
        # Previewing this node may write variables: work on our own copy
        if not cloned and node.needs_shadow():
            state = replace(state, variables=clone_variable_store(state.variables))
            cloned = True

        state, reached = basic_next_flow_state(db, state, direction, context=context)
        direction = -1

        if reached is None:
            log.debug("branch_dead_end", from_node=node.id, path=branch.path_ids())
            return []

        if _visit_limited(reached, visits):
            log.debug("branch_visit_limited", node=reached.id)
            return []

        node = reached
        branch.path.append(node)

        if config.should_stop_at(node):
            behaviour = (
                config.custom_stop_handler(node, visits) if config.custom_stop_handler else None
            )

            if behaviour is None or behaviour is CustomStopType.NORMAL_STOP:
                return [branch]

            if behaviour is CustomStopType.STOP_AND_CONTINUE:
                forked = FlowBranch(index=index + 1, path=list(branch.path))
                return [
                    branch,
                    *collect_branches(
                        db,
                        state,
                        config,
                        visits,
                        forked,
                        index + 1,
                        0,
                        node,
                        context=context,
                        cloned=cloned,
                    ),
                ]

            if behaviour is not CustomStopType.CONTINUE:
                log.warning(
                    "unexpected_custom_stop_behaviour",
                    behaviour=repr(behaviour),
                    node=node.id,
                )
                return [branch]

        branches = node.num_branches(state.variables, state.last, state.shadowing, context=context)

    # Fork: one recursive walk per branch, each with its own copy-on-first-need
    result: list[FlowBranch] = []
    for i in range(branches):
        forked = FlowBranch(index=index, path=list(branch.path))
        result.extend(
            collect_branches(db, state, config, visits, forked, index, i, node, context=context)
        )
        if result:
            index = result[-1].index + 1

    return result


def refresh_branches(
    db: Database,
    state: AdvancedFlowState,
    config: IterationConfig,
    *,
    context: ScriptContext | None = None,
) -> AdvancedFlowState:
    """Recompute the branches available at an advanced flow state.

    Collection runs in shadow mode; the returned state shares the input's
    variable store, which collection never modifies.
    """
    branches = collect_branches(
        db,
        FlowState(id=state.id, last=state.last, variables=state.variables, shadowing=True),
        config,
        state.visits,
        context=context,
    )
    log.debug("branches_refreshed", node=state.id, count=len(branches))
    return replace(state, branches=branches)


def advanced_startup_flow_state(
    db: Database,
    start: str,
    config: IterationConfig,
    *,
    context: ScriptContext | None = None,
) -> AdvancedIterationResult:
    """Start iterating at *start* and advance to the first stopping point.

    If the start node is itself a stop node it is returned as is.

    Args:
        db: Database.
        start: Id of the node to start from.
        config: Iteration configuration.
        context: Script context for committed steps.

    Returns:
        The first advanced state and its node. An unknown start id gives the
        null state and None.
    """
    node = db.get_object(start, FlowNode)
    if node is None:
        log.debug("startup_unresolved", start=start)
        return AdvancedFlowState.null(), None

    initial = AdvancedFlowState(
        id=start,
        last=None,
        variables=db.new_variable_store(),
        visits=VisitSet(),
        turn=0,
    )
    initial = refresh_branches(db, initial, config, context=context)

    if config.should_stop_at(node):
        return initial, node

    return advanced_next_flow_state(db, initial, config, 0, context=context)


def advanced_next_flow_state(
    db: Database,
    state: AdvancedFlowState,
    config: IterationConfig,
    branch_index: int,
    *,
    context: ScriptContext | None = None,
) -> AdvancedIterationResult:
    """Commit a cached branch and move to its destination.

    Every node on the branch is executed in order (instructions run, feature
    handlers fire), its visit count is incremented and the current turn is
    recorded for it. The variable store is cloned once, before the first
    node that writes to it.

    Args:
        db: Database.
        state: Current advanced state.
        config: Iteration configuration.
        branch_index: Index of the branch to follow.
        context: Script context receiving deferred actions.

    Returns:
        The new state (turn advanced, branches refreshed) and the
        destination node. An unknown branch index returns the input state
        and None.
    """
    if not state.id or branch_index < 0 or branch_index >= len(state.branches):
        return state, None

    branch = next((b for b in state.branches if b.index == branch_index), None)
    if branch is None or not branch.path:
        return state, None

    variables = state.variables
    cloned = False
    visits = state.visits.copy()

    for step in branch.path:
        if not cloned and step.needs_shadow():
            variables = clone_variable_store(variables)
            cloned = True

        step.execute(variables, context=context)

        # Handlers may keep the state: give them a snapshot of the visits so far
        evolving = replace(state, id=step.id, variables=variables, visits=visits.copy())
        on_node_execution(step, evolving, context)

        visits.record(step.id, state.turn)

    if len(branch.path) > 1:
        last_id: str | None = branch.path[-2].id
    else:
        last_id = state.id

    destination = branch.destination()
    new_state = AdvancedFlowState(
        id=destination.id,
        last=last_id,
        variables=variables,
        visits=visits,
        turn=state.turn + 1,
    )
    log.debug(
        "branch_committed",
        branch=branch_index,
        destination=destination.id,
        steps=len(branch.path),
        turn=new_state.turn,
    )

    return refresh_branches(db, new_state, config, context=context), destination
