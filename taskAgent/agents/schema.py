"""Worker and supervisor configuration records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class OutputMode(str, Enum):
    """What the coordinator sees when a worker hands control back."""
    FULL_HISTORY = "full_history"  # Worker's internal transcript + its draft
    LAST_MESSAGE = "last_message"  # Only the worker's draft


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Static registration record of a worker.

    Attributes:
        name: Unique worker name (also used in transfer tool names)
        description: Shown to the coordinator when choosing a worker
        capabilities: Tool names the worker may use (empty = every tool)
        peers: Workers this one may hand off to directly
        prompt: Extra instructions added to the worker's planner prompt
    """

    name: str
    description: str = ""
    capabilities: Tuple[str, ...] = ()
    peers: FrozenSet[str] = frozenset()
    prompt: str = ""

    def persona(self) -> str:
        text = f'You are the worker "{self.name}".'
        if self.description:
            text += f" {self.description}"
        if self.prompt:
            text += f"\n\n{self.prompt}"
        return text


@dataclass(frozen=True, slots=True)
class PeerCommunicationConfig:
    enabled: bool = False
    max_peer_hops: Optional[int] = None  # None = GovernanceSettings.max_peer_hops
    always_return_to_supervisor: bool = False


@dataclass(frozen=True, slots=True)
class SupervisorConfig:
    name: str = "supervisor"
    output_mode: OutputMode = OutputMode.LAST_MESSAGE
    add_handoff_back_messages: bool = True
    peer_communication: PeerCommunicationConfig = field(default_factory=PeerCommunicationConfig)
    prompt: str = ""
