"""Core value types shared by the script registry and sandbox.

- ScriptInvocation: what a native function learns about the call it serves
- ScriptActions: explicit return type for functions that emit deferred actions
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Callable

    from articyflow.database.database import Database
    from articyflow.flow.state import AdvancedFlowState
    from articyflow.nodes import FlowNode
    from articyflow.variables import Variable


@dataclass(frozen=True)
class ScriptInvocation:
    """Call information passed as the first argument to native functions.

    Attributes:
        app_state: Read-only snapshot of the embedding application's state.
            Only set while a dispatch scope is active, None otherwise.
        db: Database the script belongs to, if known.
        shadowing: True while previewing branches. Functions must not cause
            lasting side effects when this is set.
    """

    app_state: Any = None
    db: Database | None = None
    shadowing: bool = False


@dataclass
class ScriptActions:
    """Deferred actions emitted by a native function, plus its value.

    Native functions that need to change application state return this
    instead of acting directly. The actions are queued for the embedding
    application after the current dispatch (or dropped while shadowing), and
    ``result`` is what the script sees as the call's value.

    Example:
        >>> def give_item(call, item):
        ...     return ScriptActions(actions=[{"type": "inventory/add", "item": item}])
    """

    actions: list[Any] = field(default_factory=list)
    result: Variable | None = None


ScriptFunction: TypeAlias = "Callable[..., Variable | ScriptActions | None]"
"""Native function: ``fn(invocation, *args)``."""

FeatureExecutionHandler: TypeAlias = (
    "Callable[[ScriptInvocation, dict[str, Any], FlowNode, AdvancedFlowState], "
    "Variable | ScriptActions | None]"
)
"""Feature hook: ``handler(invocation, feature, node, state)``."""
