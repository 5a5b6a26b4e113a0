"""Tool invoker node: runs one planner round of tool calls with per-call isolation."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from langchain_core.messages import ToolCall
from langchain_core.tools import BaseTool

from taskAgent.graph.context import CallerContext
from taskAgent.graph.results import ControlResult, NodeResult, StateUpdate
from taskAgent.graph.routing import pending_tool_calls
from taskAgent.graph.state import HandoffRequest, PendingMutation, TaskEngineState, ToolObservation, apply_update
from taskAgent.persistence.mutations import MutationLedger
from taskAgent.tools.registry import CONTEXT_ARG, accepts_context
from taskAgent.utils.error_handler import ToolExecutionError
from taskAgent.utils.logging_utils import log_node_entry, log_node_exit, log_tool_call, log_tool_result

from .planner import ToolResolver

LOGGER = logging.getLogger("taskagent.tools")


@dataclass
class ToolInvocation:
    """Outcome of one tool call: the observation plus any control data."""

    observation: ToolObservation
    patch: Dict[str, Any] = field(default_factory=dict)
    handoff: Optional[HandoffRequest] = None


def _stringify(result: Any) -> str:
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(result)


async def invoke_tool(tool: Optional[BaseTool], call: ToolCall, context: CallerContext) -> ToolInvocation:
    """Invoke a single tool call; exceptions become error observations."""
    call_id = call["id"]
    name = call["name"]

    if tool is None:
        error = ToolExecutionError(name, "tool is not available in this context")
        log_tool_result(LOGGER, name, error, success=False)
        return ToolInvocation(ToolObservation(call_id, name, f"Error: {error}", is_error=True))

    # Caller context is merged right before invocation, never captured by the tool
    args = dict(call.get("args") or {})
    log_tool_call(LOGGER, name, args)
    if accepts_context(tool):
        args[CONTEXT_ARG] = context

    try:
        result = await tool.ainvoke(args)
    except Exception as e:
        error = ToolExecutionError(name, f"{type(e).__name__}: {e}")
        LOGGER.warning(f"Tool {name} ({call_id}) failed: {error}")
        log_tool_result(LOGGER, name, error, success=False)
        return ToolInvocation(ToolObservation(call_id, name, f"Error: {error}", is_error=True))

    if isinstance(result, ControlResult):
        log_tool_result(LOGGER, name, result.content)
        return ToolInvocation(
            ToolObservation(call_id, name, result.content),
            patch=dict(result.patch),
            handoff=result.handoff,
        )
    if isinstance(result, ToolObservation):
        log_tool_result(LOGGER, name, result.content, success=not result.is_error)
        return ToolInvocation(ToolObservation(call_id, name, result.content, result.is_error))

    content = _stringify(result)
    log_tool_result(LOGGER, name, content)
    return ToolInvocation(ToolObservation(call_id, name, content))


def merge_round(invocations: List[ToolInvocation]) -> Dict[str, Any]:
    """Fold the results of one round into a single task state patch.

    Observations keep the emission order of their tool calls. Control patches
    are applied in the same order; the first handoff of the round wins.
    """
    merged: Dict[str, Any] = {}
    handoff: Optional[HandoffRequest] = None
    for invocation in invocations:
        if invocation.patch:
            merged = apply_update(merged, invocation.patch)
        if invocation.handoff is not None:
            if handoff is None:
                handoff = invocation.handoff
            else:
                LOGGER.warning(
                    f"Ignoring extra handoff to {invocation.handoff.to_agent}; "
                    f"{handoff.to_agent} was requested first in this round"
                )

    observations = [inv.observation.to_message() for inv in invocations]
    merged["task_engine_messages"] = [*merged.get("task_engine_messages", []), *observations]
    if handoff is not None:
        merged["handoff"] = handoff
    return merged


def build_tools_node(
    *,
    resolve_tools: ToolResolver,
    settings,
    mutation_ledger: Optional[MutationLedger] = None,
):
    """Create the tool invoker node."""

    concurrency = settings.governance.tool_concurrency

    async def tools_node(state: TaskEngineState, context: CallerContext) -> NodeResult:
        log_node_entry(LOGGER, "tools", state, context)

        calls = pending_tool_calls(state)
        tools_by_name = {tool.name: tool for tool in resolve_tools(context)}
        semaphore = asyncio.Semaphore(concurrency)

        async def _run(call: ToolCall) -> ToolInvocation:
            async with semaphore:
                return await invoke_tool(tools_by_name.get(call["name"]), call, context)

        # gather keeps the emission order regardless of completion order
        invocations = await asyncio.gather(*(_run(call) for call in calls))

        updates = merge_round(list(invocations))
        for mutation in (updates.get("pending_mutations") or {}).values():
            if isinstance(mutation, PendingMutation) and mutation_ledger is not None:
                mutation_ledger.propose(mutation)

        errors = sum(1 for inv in invocations if inv.observation.is_error)
        LOGGER.info(f"Tool round finished: {len(invocations)} call(s), {errors} error(s)")

        updates.update({"review_required": [], "approved_call_ids": [], "review": None})
        log_node_exit(LOGGER, "tools", updates, context)
        return StateUpdate(updates)

    return tools_node
