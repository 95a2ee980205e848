"""articyflow - interpreter for exported articy:draft flow graphs."""

from articyflow.flow import (
    AdvancedFlowState,
    CustomStopType,
    FlowBranch,
    FlowState,
    IterationConfig,
    VisitSet,
    advanced_next_flow_state,
    advanced_startup_flow_state,
    basic_next_flow_state,
    collect_branches,
    get_flow_state_children,
    refresh_branches,
)

__version__ = "0.1.0"

__all__ = [
    "AdvancedFlowState",
    "CustomStopType",
    "FlowBranch",
    "FlowState",
    "IterationConfig",
    "VisitSet",
    "__version__",
    "advanced_next_flow_state",
    "advanced_startup_flow_state",
    "basic_next_flow_state",
    "collect_branches",
    "get_flow_state_children",
    "refresh_branches",
]
