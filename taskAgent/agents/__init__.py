"""Agent configuration, registry, handoff tools and the model capability."""

from .factory import ChatModelCapability
from .handoff_tools import (
    PEER_TRANSFER_PREFIX,
    TRANSFER_PREFIX,
    create_peer_handoff_tools,
    create_supervisor_handoff_tools,
    handoff_back_messages,
)
from .interfaces import ModelCapability, ModelResolver
from .registry import AgentRegistry
from .scanner import load_agents_config
from .schema import AgentConfig, OutputMode, PeerCommunicationConfig, SupervisorConfig

__all__ = [
    "ChatModelCapability",
    "PEER_TRANSFER_PREFIX",
    "TRANSFER_PREFIX",
    "create_peer_handoff_tools",
    "create_supervisor_handoff_tools",
    "handoff_back_messages",
    "ModelCapability",
    "ModelResolver",
    "AgentRegistry",
    "load_agents_config",
    "AgentConfig",
    "OutputMode",
    "PeerCommunicationConfig",
    "SupervisorConfig",
]
