"""Script execution sandbox.

Runs a single condition or instruction script against a variable store and
the registered native functions. Two modes:

- **Shadow** (preview): used while collecting branches. Native functions are
  told they are shadowing, and any deferred actions they return are dropped.
- **Commit**: used when a branch is actually taken. Deferred actions are
  appended to the active dispatch context's queue and handed to the
  embedding application once the dispatch scope closes.

There is no process-wide state here. Everything a script call may need
(application state snapshot, action queue, database, registry) travels in
an explicit :class:`ScriptContext`.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from articyflow.observability.logging import get_logger
from articyflow.script.base import ScriptActions, ScriptInvocation
from articyflow.script.evaluator import default_evaluator
from articyflow.script.registry import ScriptRegistry, default_registry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from articyflow.database.database import Database
    from articyflow.flow.state import AdvancedFlowState
    from articyflow.nodes import FlowNode
    from articyflow.script.base import ScriptFunction
    from articyflow.script.evaluator import Evaluator
    from articyflow.variables import Variable, VariableStore

log = get_logger(__name__)


@dataclass
class ScriptContext:
    """Explicit execution context for scripts and feature handlers.

    Attributes:
        db: Database whose scripts are being run.
        app_state: Read-only application state snapshot. Only set inside a
            :func:`script_dispatch` scope.
        actions: Deferred action queue. None when no dispatch scope is
            active, in which case committed actions are discarded.
        registry: Native functions and feature handlers to use.
    """

    db: Database | None = None
    app_state: Any = None
    actions: list[Any] | None = None
    registry: ScriptRegistry = field(default_factory=lambda: default_registry)

    @property
    def active(self) -> bool:
        """True while a dispatch scope owns this context."""
        return self.actions is not None

    def invocation(self, shadowing: bool) -> ScriptInvocation:
        return ScriptInvocation(app_state=self.app_state, db=self.db, shadowing=shadowing)


def _read_only(app_state: Any) -> Any:
    if isinstance(app_state, Mapping) and not isinstance(app_state, MappingProxyType):
        return MappingProxyType(dict(app_state))
    return app_state


def queue_actions(returned: ScriptActions, shadowing: bool, context: ScriptContext) -> Any:
    """Drain a function's deferred actions and return its value.

    Args:
        returned: What the native function produced.
        shadowing: If True, the actions are dropped.
        context: Context whose queue receives the actions.

    Returns:
        ``returned.result``.
    """
    if returned.actions:
        if not shadowing and context.actions is not None:
            context.actions.extend(returned.actions)
        else:
            log.debug(
                "script_actions_dropped",
                count=len(returned.actions),
                shadowing=shadowing,
            )
    return returned.result


def wrap_script_function(
    func: ScriptFunction,
    context: ScriptContext,
    shadowing: bool,
) -> Callable[..., Variable | None]:
    """Adapt a registered function to the plain call signature scripts use."""
    invocation = context.invocation(shadowing)

    def call(*args: Any) -> Variable | None:
        returned = func(invocation, *args)
        if isinstance(returned, ScriptActions):
            return queue_actions(returned, shadowing, context)
        return returned

    return call


def run_script(
    script: str | None,
    variables: VariableStore,
    *,
    returns: bool,
    shadowing: bool,
    context: ScriptContext | None = None,
    evaluator: Evaluator | None = None,
) -> bool:
    """Run a condition or instruction script.

    Args:
        script: Script source. Empty or None is vacuously true.
        variables: Variable store. Instruction scripts write to it in place.
        returns: True for condition scripts.
        shadowing: True while previewing branches.
        context: Dispatch context. A bare context on the default registry is
            used when omitted.
        evaluator: Expression evaluator (defaults to the lark evaluator).

    Returns:
        True only if the script's value is exactly ``true``.

    Raises:
        ScriptError: If the script is malformed or references unknown names.
    """
    if not script or not script.strip():
        return True

    context = context if context is not None else ScriptContext()
    evaluator = evaluator if evaluator is not None else default_evaluator

    functions = {
        name: wrap_script_function(func, context, shadowing)
        for name, func in context.registry.functions.items()
    }

    result = evaluator.evaluate(script, variables, functions, returns=returns)
    return result is True


def on_node_execution(
    node: FlowNode,
    state: AdvancedFlowState,
    context: ScriptContext | None = None,
) -> None:
    """Call every registered feature handler for the features on *node*.

    Handlers run in commit mode; deferred actions they return are queued on
    the context. Features without handlers are skipped.
    """
    if not node.template:
        return

    context = context if context is not None else ScriptContext()
    invocation = context.invocation(shadowing=False)

    for name, feature in node.template.items():
        handlers = context.registry.feature_handlers(name)
        for handler in handlers:
            returned = handler(invocation, feature, node, state)
            if isinstance(returned, ScriptActions):
                queue_actions(returned, False, context)


@contextmanager
def script_dispatch(
    app_state: Any = None,
    *,
    db: Database | None = None,
    registry: ScriptRegistry | None = None,
    dispatch: Callable[[Any], Any] | None = None,
    finalize: Callable[[], Any] | None = None,
) -> Iterator[ScriptContext]:
    """Open a dispatch scope for committed flow steps.

    Everything committed inside the block sees *app_state* (read-only) and
    queues its deferred actions. When the block exits the context is torn
    down first, then each queued action is passed to *dispatch* in order,
    then *finalize* is called once if at least one action was queued.

    If the block raises, the context is torn down and queued actions are
    discarded.

    Example:
        >>> with script_dispatch(store.state, db=db, dispatch=store.dispatch) as ctx:
        ...     state, node = advanced_next_flow_state(db, state, config, 0, context=ctx)
    """
    queue: list[Any] = []
    context = ScriptContext(
        db=db,
        app_state=_read_only(app_state),
        actions=queue,
        registry=registry if registry is not None else default_registry,
    )
    try:
        yield context
    finally:
        context.actions = None
        context.app_state = None

    if queue:
        log.debug("script_dispatch_flush", count=len(queue))
        if dispatch is not None:
            for action in queue:
                dispatch(action)
        if finalize is not None:
            finalize()
