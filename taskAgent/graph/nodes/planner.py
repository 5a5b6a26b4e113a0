"""Planner node: proposes tool calls or concludes."""

from __future__ import annotations

import logging
import uuid
from typing import Callable, List, Optional

from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool

from taskAgent.agents.interfaces import ModelCapability
from taskAgent.graph.context import CallerContext
from taskAgent.graph.message_utils import (
    clean_message_history,
    conversation_window,
    truncate_messages_safely,
)
from taskAgent.graph.prompts import PLANNER_SYSTEM_PROMPT, PROPOSED_CHANGES_HINT, get_current_datetime_tag
from taskAgent.graph.results import NodeResult, StateUpdate
from taskAgent.graph.state import TaskEngineState
from taskAgent.hitl.approval_checker import ApprovalChecker
from taskAgent.utils.error_handler import PlannerModelError, call_with_retries
from taskAgent.utils.logging_utils import log_node_entry, log_node_exit, log_prompt

LOGGER = logging.getLogger("taskagent.planner")

ToolResolver = Callable[[CallerContext], List[BaseTool]]


def _normalize_tool_calls(output: AIMessage) -> None:
    """Give every tool call an id that is unique within the round."""
    seen = set()
    for call in output.tool_calls or []:
        if not call.get("id") or call["id"] in seen:
            call["id"] = f"call_{uuid.uuid4().hex[:12]}"
        seen.add(call["id"])


def build_planner_node(
    *,
    model: ModelCapability,
    resolve_tools: ToolResolver,
    settings,
    approval_checker: Optional[ApprovalChecker] = None,
    persona: str = "",
):
    """Create a planner node bound to a model and a tool scope."""

    max_message_history = settings.governance.max_message_history
    attempts = settings.governance.model_max_attempts
    log_prompt_length = settings.observability.log_prompt_max_length

    base_prompt = PLANNER_SYSTEM_PROMPT
    if persona:
        base_prompt = f"{base_prompt}\n\n{persona}"

    def _system_prompt(state: TaskEngineState) -> str:
        prompt = base_prompt
        if state.get("request"):
            prompt += f"\n\n<delegated_task>\n{state['request']}\n</delegated_task>"
        mutations = state.get("pending_mutations") or {}
        if mutations:
            lines = "\n".join(f"- [{m.status.value}] {m.description}" for m in mutations.values())
            prompt += f"\n\n{PROPOSED_CHANGES_HINT}\n<proposed_changes>\n{lines}\n</proposed_changes>"
        return f"{prompt}\n\n{get_current_datetime_tag()}"

    def _prompt_messages(state: TaskEngineState) -> List[BaseMessage]:
        conversation = conversation_window(state.get("messages") or [], max_message_history)
        internal = clean_message_history(state.get("task_engine_messages") or [])
        internal = truncate_messages_safely(internal, keep_recent=max_message_history)
        return [*conversation, *internal]

    async def planner_node(state: TaskEngineState, context: CallerContext) -> NodeResult:
        log_node_entry(LOGGER, "plan", state, context)

        loops = state.get("loop_counter", 0) + 1
        max_loops = state.get("max_loops", settings.governance.max_loops)

        # Over budget: the round still counts, routing sends it to Abort Output
        if loops > max_loops:
            LOGGER.warning(f"Loop budget exhausted ({loops}>{max_loops}), skipping planner model call")
            updates = {"loop_counter": loops, "review_required": [], "approved_call_ids": []}
            log_node_exit(LOGGER, "plan", updates, context)
            return StateUpdate(updates)

        tools = resolve_tools(context)
        system_prompt = _system_prompt(state)
        messages = _prompt_messages(state)
        log_prompt(LOGGER, "plan", system_prompt, max_length=log_prompt_length)
        LOGGER.info(f"Planner round {loops}/{max_loops}: {len(messages)} messages, {len(tools)} tools")

        output = await call_with_retries(
            lambda: model.complete(
                phase="plan",
                system_prompt=system_prompt,
                messages=messages,
                tools=tools,
                context=context,
            ),
            attempts=attempts,
            error_cls=PlannerModelError,
            phase="plan",
        )
        _normalize_tool_calls(output)

        review_required: List[str] = []
        if approval_checker is not None:
            for call in output.tool_calls or []:
                decision = approval_checker.check(call["name"], call.get("args") or {})
                if decision.needs_approval:
                    LOGGER.info(f"  - {call['name']} ({call['id']}) needs review: {decision.reason}")
                    review_required.append(call["id"])

        updates = {
            "task_engine_messages": [output],
            "loop_counter": loops,
            "review_required": review_required,
            "approved_call_ids": [],
        }
        log_node_exit(LOGGER, "plan", updates, context)
        return StateUpdate(updates)

    return planner_node
