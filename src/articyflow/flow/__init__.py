"""Flow package - traversal state, branch collection and iteration."""

from articyflow.flow.config import (
    DEFAULT_STOP_AT_TYPES,
    CustomStopHandler,
    CustomStopType,
    FlowConfigError,
    FlowSettings,
    IterationConfig,
    load_flow_settings,
)
from articyflow.flow.iterator import (
    advanced_next_flow_state,
    advanced_startup_flow_state,
    basic_next_flow_state,
    collect_branches,
    get_flow_state_children,
    refresh_branches,
)
from articyflow.flow.state import AdvancedFlowState, FlowBranch, FlowState, VisitSet

__all__ = [
    "DEFAULT_STOP_AT_TYPES",
    "AdvancedFlowState",
    "CustomStopHandler",
    "CustomStopType",
    "FlowBranch",
    "FlowConfigError",
    "FlowSettings",
    "FlowState",
    "IterationConfig",
    "VisitSet",
    "advanced_next_flow_state",
    "advanced_startup_flow_state",
    "basic_next_flow_state",
    "collect_branches",
    "get_flow_state_children",
    "refresh_branches",
    "load_flow_settings",
]
