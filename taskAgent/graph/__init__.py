"""Task engine state machine: state, node results and transitions.

Controllers live in ``taskAgent.graph.loop`` (task loop),
``taskAgent.graph.supervisor`` (handoff coordinator) and
``taskAgent.graph.run`` (run orchestration).
"""

from .context import CallerContext
from .results import ControlResult, NodeResult, Redirect, StateUpdate, Suspend
from .routing import Route, RunStage, TaskNode, run_transition, transition
from .state import (
    Decision,
    HandoffRequest,
    MutationStatus,
    PendingMutation,
    RunCheckpoint,
    RunStatus,
    TaskEngineState,
    ToolObservation,
    apply_update,
    initial_task_state,
)

__all__ = [
    "CallerContext",
    "ControlResult",
    "NodeResult",
    "Redirect",
    "StateUpdate",
    "Suspend",
    "Route",
    "RunStage",
    "TaskNode",
    "run_transition",
    "transition",
    "Decision",
    "HandoffRequest",
    "MutationStatus",
    "PendingMutation",
    "RunCheckpoint",
    "RunStatus",
    "TaskEngineState",
    "ToolObservation",
    "apply_update",
    "initial_task_state",
]
