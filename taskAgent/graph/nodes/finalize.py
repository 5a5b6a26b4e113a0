"""Finalizer nodes: Output and Abort Output.

Both synthesize a draft from the internal messages and are the only place the
task state is reset (messages cleared, counters back to zero).
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from langchain_core.messages import HumanMessage, RemoveMessage, ToolMessage
from langgraph.graph.message import REMOVE_ALL_MESSAGES

from taskAgent.agents.interfaces import ModelCapability
from taskAgent.graph.context import CallerContext
from taskAgent.graph.message_utils import conversation_window, message_text, render_observations
from taskAgent.graph.prompts import ABORT_OUTPUT_SYSTEM_PROMPT, OUTPUT_SYSTEM_PROMPT
from taskAgent.graph.results import NodeResult, StateUpdate
from taskAgent.graph.state import Decision, TaskEngineState
from taskAgent.utils.error_handler import FinalizerModelError, call_with_retries
from taskAgent.utils.logging_utils import log_error, log_node_entry, log_node_exit

from .reflect import original_request

LOGGER = logging.getLogger("taskagent.finalize")


def reset_patch(state: TaskEngineState, draft: str) -> Dict[str, Any]:
    """Patch shared by both finalizers."""
    return {
        "response_draft": draft,
        "transcript": list(state.get("task_engine_messages") or []),
        "task_engine_messages": [RemoveMessage(id=REMOVE_ALL_MESSAGES)],
        "loop_counter": 0,
        "reflection_step_count": 0,
        "decision": Decision.UNSET,
        "review_required": [],
        "approved_call_ids": [],
        "review": None,
    }


def fallback_draft(state: TaskEngineState) -> str:
    """Deterministic draft used when Abort Output cannot reach the model."""
    succeeded, failed = [], []
    for msg in state.get("task_engine_messages") or []:
        if isinstance(msg, ToolMessage):
            target = failed if msg.status == "error" else succeeded
            target.append(msg.name or msg.tool_call_id)

    lines = ["I could not finish this request within the allowed number of steps."]
    if succeeded:
        lines.append(f"Information was retrieved from: {', '.join(succeeded)}.")
    if failed:
        lines.append(f"These lookups failed and their information could not be retrieved: {', '.join(failed)}.")
    if not succeeded and not failed:
        lines.append("No information could be retrieved.")
    lines.append("Please narrow the request or try again.")
    return " ".join(lines)


def build_output_node(*, model: ModelCapability, settings, abort: bool = False):
    """Create Output (``abort=False``) or Abort Output (``abort=True``)."""

    node_name = "abort_output" if abort else "output"
    system_prompt = ABORT_OUTPUT_SYSTEM_PROMPT if abort else OUTPUT_SYSTEM_PROMPT
    attempts = settings.governance.model_max_attempts
    history_window = settings.governance.max_message_history

    async def output_node(state: TaskEngineState, context: CallerContext) -> NodeResult:
        log_node_entry(LOGGER, node_name, state, context)

        synthesis_input = HumanMessage(
            content=(
                f"<request>\n{original_request(state)}\n</request>\n\n"
                f"<observations>\n{render_observations(state.get('task_engine_messages') or [])}\n</observations>"
            )
        )
        messages = [*conversation_window(state.get("messages") or [], history_window), synthesis_input]

        try:
            output = await call_with_retries(
                lambda: model.complete(
                    phase="output",
                    system_prompt=system_prompt,
                    messages=messages,
                    context=context,
                ),
                attempts=attempts,
                error_cls=FinalizerModelError,
                phase=node_name,
            )
            draft = message_text(output)
        except FinalizerModelError as e:
            if not abort:
                raise
            log_error(LOGGER, e, "abort output falls back to a deterministic draft")
            draft = fallback_draft(state)

        updates = reset_patch(state, draft)
        log_node_exit(LOGGER, node_name, updates, context)
        return StateUpdate(updates)

    return output_node
