"""Node identifiers and pure transition functions.

``transition(node, state)`` is the whole control flow of the task loop. Nodes
that need to jump elsewhere return a Redirect instead.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from langchain_core.messages import AIMessage, ToolCall

from taskAgent.utils.logging_utils import log_routing_decision

from .state import Decision, TaskEngineState

LOGGER = logging.getLogger("taskagent.routing")


class TaskNode(str, Enum):
    PLAN = "plan"
    TOOLS = "tools"
    REVIEW = "review"
    REFLECT = "reflect"
    OUTPUT = "output"
    ABORT_OUTPUT = "abort_output"
    END = "end"


class RunStage(str, Enum):
    ROUTER = "router"
    DIRECT_REPLY = "direct_reply"
    COORDINATOR = "coordinator"
    RESPOND = "respond"
    END = "end"


class Route(str, Enum):
    DIRECT_REPLY = "DIRECT_REPLY"
    TASK_ENGINE = "TASK_ENGINE"


def pending_tool_calls(state: TaskEngineState) -> List[ToolCall]:
    """Tool calls of the latest planner message (empty if it concluded)."""
    messages = state.get("task_engine_messages") or []
    if not messages or not isinstance(messages[-1], AIMessage):
        return []
    return list(messages[-1].tool_calls or [])


def unapproved_call_ids(state: TaskEngineState) -> List[str]:
    approved = set(state.get("approved_call_ids") or [])
    return [call_id for call_id in state.get("review_required") or [] if call_id not in approved]


def plan_route(state: TaskEngineState) -> TaskNode:
    loops = state.get("loop_counter", 0)
    max_loops = state.get("max_loops", 10)

    if loops > max_loops:
        log_routing_decision(LOGGER, "plan", TaskNode.ABORT_OUTPUT.value, f"loop budget exhausted ({loops}>{max_loops})")
        return TaskNode.ABORT_OUTPUT

    calls = pending_tool_calls(state)
    if calls:
        if unapproved_call_ids(state):
            log_routing_decision(LOGGER, "plan", TaskNode.REVIEW.value, "side-effecting call needs review")
            return TaskNode.REVIEW
        log_routing_decision(LOGGER, "plan", TaskNode.TOOLS.value, f"{len(calls)} tool call(s)")
        return TaskNode.TOOLS

    log_routing_decision(LOGGER, "plan", TaskNode.REFLECT.value, "no tool calls")
    return TaskNode.REFLECT


def review_route(state: TaskEngineState) -> TaskNode:
    if unapproved_call_ids(state):
        return TaskNode.REVIEW
    return TaskNode.TOOLS


def reflect_route(state: TaskEngineState) -> TaskNode:
    decision = state.get("decision", Decision.UNSET)
    if decision == Decision.IMPROVE:
        log_routing_decision(LOGGER, "reflect", TaskNode.PLAN.value, "IMPROVE")
        return TaskNode.PLAN
    log_routing_decision(LOGGER, "reflect", TaskNode.OUTPUT.value, "ACCEPT")
    return TaskNode.OUTPUT


_TRANSITIONS: Dict[TaskNode, Callable[[TaskEngineState], TaskNode]] = {
    TaskNode.PLAN: plan_route,
    TaskNode.TOOLS: lambda state: TaskNode.PLAN,
    TaskNode.REVIEW: review_route,
    TaskNode.REFLECT: reflect_route,
    TaskNode.OUTPUT: lambda state: TaskNode.END,
    TaskNode.ABORT_OUTPUT: lambda state: TaskNode.END,
}


def transition(node: TaskNode, state: TaskEngineState) -> TaskNode:
    """Return the node that follows ``node`` given the (already patched) state."""
    if node is TaskNode.END:
        return TaskNode.END
    return _TRANSITIONS[node](state)


def run_transition(stage: RunStage, route: Optional[Route] = None) -> RunStage:
    """Run-level flow: router -> direct reply | coordinator -> respond -> end."""
    if stage is RunStage.ROUTER:
        return RunStage.DIRECT_REPLY if route is Route.DIRECT_REPLY else RunStage.COORDINATOR
    if stage is RunStage.COORDINATOR:
        return RunStage.RESPOND
    return RunStage.END
