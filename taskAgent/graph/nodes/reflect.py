"""Reflector node: judges whether the observations satisfy the request."""

from __future__ import annotations

import logging
from typing import Literal

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, Field

from taskAgent.agents.interfaces import ModelCapability
from taskAgent.graph.context import CallerContext
from taskAgent.graph.message_utils import last_user_message, message_text, render_observations
from taskAgent.graph.prompts import IMPROVE_MESSAGE_TEMPLATE, REFLECT_SYSTEM_PROMPT
from taskAgent.graph.results import NodeResult, StateUpdate
from taskAgent.graph.state import Decision, TaskEngineState
from taskAgent.utils.error_handler import ReflectorModelError, call_with_retries
from taskAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger("taskagent.reflect")


class ReflectionVerdict(BaseModel):
    """Structured reflector output."""

    decision: Literal["ACCEPT", "IMPROVE"] = Field(description="ACCEPT when the answer can be written now")
    critique: str = Field(default="", description="What the planner should do next (IMPROVE only)")


def original_request(state: TaskEngineState) -> str:
    """The delegated task when present, else the last user message."""
    if state.get("request"):
        return str(state["request"])
    return message_text(last_user_message(state.get("messages") or []))


def build_reflect_node(*, model: ModelCapability, settings):
    attempts = settings.governance.model_max_attempts

    async def reflect_node(state: TaskEngineState, context: CallerContext) -> NodeResult:
        log_node_entry(LOGGER, "reflect", state, context)

        step = state.get("reflection_step_count", 0)
        max_steps = state.get("max_reflection_steps", settings.governance.max_reflection_steps)

        if step >= max_steps:
            LOGGER.info(f"Reflection bound reached ({step}/{max_steps}), forcing ACCEPT")
            updates = {"decision": Decision.ACCEPT, "reflection_step_count": step + 1}
            log_node_exit(LOGGER, "reflect", updates, context)
            return StateUpdate(updates)

        review_input = HumanMessage(
            content=(
                f"<request>\n{original_request(state)}\n</request>\n\n"
                f"<observations>\n{render_observations(state.get('task_engine_messages') or [])}\n</observations>"
            )
        )
        verdict = await call_with_retries(
            lambda: model.structured(
                phase="reflect",
                system_prompt=REFLECT_SYSTEM_PROMPT,
                messages=[review_input],
                schema=ReflectionVerdict,
                context=context,
            ),
            attempts=attempts,
            error_cls=ReflectorModelError,
            phase="reflect",
        )

        decision = Decision(verdict.decision)
        updates = {"decision": decision, "reflection_step_count": step + 1}
        if decision is Decision.IMPROVE:
            critique = verdict.critique.strip() or "Gather the missing information before answering."
            updates["task_engine_messages"] = [
                HumanMessage(
                    content=IMPROVE_MESSAGE_TEMPLATE.format(step=step + 1, critique=critique),
                    name="reflector",
                )
            ]
        LOGGER.info(f"Reflection {step + 1}/{max_steps}: {decision.value}")
        log_node_exit(LOGGER, "reflect", updates, context)
        return StateUpdate(updates)

    return reflect_node
