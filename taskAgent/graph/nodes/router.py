"""Router and direct reply nodes (run level, before any task engine state exists)."""

from __future__ import annotations

import logging
from typing import Literal, Sequence

from langchain_core.messages import AIMessage, BaseMessage
from pydantic import BaseModel, Field

from taskAgent.agents.interfaces import ModelCapability
from taskAgent.graph.context import CallerContext
from taskAgent.graph.message_utils import conversation_window
from taskAgent.graph.prompts import DIRECT_REPLY_SYSTEM_PROMPT, ROUTER_SYSTEM_PROMPT
from taskAgent.graph.routing import Route
from taskAgent.utils.error_handler import ModelInvocationError, call_with_retries
from taskAgent.utils.logging_utils import log_routing_decision

LOGGER = logging.getLogger("taskagent.router")


class RouteDecision(BaseModel):
    """Structured router output."""

    reasoning: str = Field(description="One sentence explaining the choice")
    response: Literal["DIRECT_REPLY", "TASK_ENGINE"] = Field(description="Where the request should go")


def build_router_node(*, model: ModelCapability, settings):
    window = settings.governance.router_window

    async def router_node(messages: Sequence[BaseMessage], context: CallerContext) -> Route:
        recent = conversation_window(messages, window)
        try:
            decision = await model.structured(
                phase="route",
                system_prompt=ROUTER_SYSTEM_PROMPT,
                messages=recent,
                schema=RouteDecision,
                context=context,
            )
            route = Route(decision.response)
        except Exception as e:
            # Fail open to the more capable path
            LOGGER.warning(f"Router classification failed, defaulting to TASK_ENGINE: {type(e).__name__}: {e}")
            log_routing_decision(LOGGER, "router", Route.TASK_ENGINE.value, "classifier failure")
            return Route.TASK_ENGINE

        log_routing_decision(LOGGER, "router", route.value, decision.reasoning)
        return route

    return router_node


def build_direct_reply_node(*, model: ModelCapability, settings):
    window = settings.governance.router_window
    attempts = settings.governance.model_max_attempts

    async def direct_reply_node(messages: Sequence[BaseMessage], context: CallerContext) -> AIMessage:
        recent = conversation_window(messages, window)
        reply = await call_with_retries(
            lambda: model.complete(
                phase="reply",
                system_prompt=DIRECT_REPLY_SYSTEM_PROMPT,
                messages=recent,
                context=context,
            ),
            attempts=attempts,
            error_cls=ModelInvocationError,
            phase="reply",
        )
        # Strip tool calls a chat model may still attach
        return AIMessage(content=reply.content, id=reply.id)

    return direct_reply_node
