"""Node factories of the task engine."""

from .finalize import build_output_node
from .planner import ToolResolver, build_planner_node
from .reflect import ReflectionVerdict, build_reflect_node
from .router import RouteDecision, build_direct_reply_node, build_router_node
from .tools import build_tools_node, invoke_tool, merge_round

__all__ = [
    "build_output_node",
    "ToolResolver",
    "build_planner_node",
    "ReflectionVerdict",
    "build_reflect_node",
    "RouteDecision",
    "build_direct_reply_node",
    "build_router_node",
    "build_tools_node",
    "invoke_tool",
    "merge_round",
]
