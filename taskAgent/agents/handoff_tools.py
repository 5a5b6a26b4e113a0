"""Handoff tools for coordinator delegation and worker-to-worker transfers.

- ``transfer_to_<worker>``: bound to the coordinator model
- ``peer_transfer_to_<peer>``: given to workers with peer communication enabled

Both return a ControlResult carrying a HandoffRequest; the coordinator decides
where control goes next.
"""

from __future__ import annotations

import logging
import uuid
from typing import List

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from taskAgent.graph.results import ControlResult
from taskAgent.graph.state import HandoffRequest

from .registry import AgentRegistry
from .schema import AgentConfig

LOGGER = logging.getLogger("taskagent.handoff")

TRANSFER_PREFIX = "transfer_to_"
PEER_TRANSFER_PREFIX = "peer_transfer_to_"
TRANSFER_BACK_PREFIX = "transfer_back_to_"


class TransferArgs(BaseModel):
    task: str = Field(
        description="Self-contained description of the work to hand over; "
                    "the receiving worker does not see your internal reasoning"
    )


def _create_transfer_tool(*, tool_name: str, from_agent: str, target: AgentConfig, description: str) -> BaseTool:
    def transfer(task: str) -> ControlResult:
        LOGGER.info(f"Handoff requested: {from_agent} → {target.name}")
        handoff = HandoffRequest(from_agent=from_agent, to_agent=target.name, payload={"task": task})
        return ControlResult(content=f"Successfully transferred to {target.name}", handoff=handoff)

    return StructuredTool.from_function(
        func=transfer,
        name=tool_name,
        description=description,
        args_schema=TransferArgs,
    )


def create_supervisor_handoff_tools(registry: AgentRegistry, supervisor_name: str) -> List[BaseTool]:
    """One ``transfer_to_<worker>`` tool per registered worker."""
    tools = []
    for config in registry.list_agents():
        tools.append(_create_transfer_tool(
            tool_name=f"{TRANSFER_PREFIX}{config.name}",
            from_agent=supervisor_name,
            target=config,
            description=f"Delegate work to {config.name}. {config.description}".strip(),
        ))
    LOGGER.info(f"Created supervisor handoff tools: {[t.name for t in tools]}")
    return tools


def create_peer_handoff_tools(registry: AgentRegistry, worker: AgentConfig) -> List[BaseTool]:
    """One ``peer_transfer_to_<peer>`` tool per declared peer of ``worker``."""
    tools = []
    for peer_name in sorted(worker.peers):
        peer = registry.get(peer_name)
        tools.append(_create_transfer_tool(
            tool_name=f"{PEER_TRANSFER_PREFIX}{peer.name}",
            from_agent=worker.name,
            target=peer,
            description=(
                f"Hand the remaining work directly to {peer.name} once your own part is done. "
                f"{peer.description}"
            ).strip(),
        ))
    return tools


def handoff_back_messages(agent_name: str, supervisor_name: str) -> List[BaseMessage]:
    """AI/tool message pair recording that a worker returned control."""
    tool_call_id = f"call_{uuid.uuid4().hex[:12]}"
    tool_name = f"{TRANSFER_BACK_PREFIX}{supervisor_name}"
    return [
        AIMessage(
            content=f"Transferring back to {supervisor_name}",
            name=agent_name,
            tool_calls=[{"name": tool_name, "args": {}, "id": tool_call_id}],
        ),
        ToolMessage(
            content=f"Successfully transferred back to {supervisor_name}",
            tool_call_id=tool_call_id,
            name=tool_name,
        ),
    ]
