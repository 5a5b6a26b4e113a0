"""Agent registry with construction-time validation."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List

from taskAgent.utils.error_handler import ConfigurationError

from .schema import AgentConfig

LOGGER = logging.getLogger("taskagent.agents")

# Names end up in tool names, which chat APIs restrict to this alphabet
AGENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,48}$")


class AgentRegistry:
    """Registered workers keyed by name.

    Construction rejects duplicate names, unknown peers and self-peering with a
    ConfigurationError; ``validate()`` re-checks after later registrations.
    """

    def __init__(self, configs: Iterable[AgentConfig] = ()) -> None:
        self._agents: Dict[str, AgentConfig] = {}
        for config in configs:
            self.register(config)
        self.validate()

    def register(self, config: AgentConfig) -> None:
        if not AGENT_NAME_PATTERN.match(config.name or ""):
            raise ConfigurationError(f"Invalid agent name {config.name!r}: use letters, digits, '_' or '-'")
        if config.name in self._agents:
            raise ConfigurationError(f"Duplicate agent name: {config.name}")
        self._agents[config.name] = config
        LOGGER.debug(f"Registered agent: {config.name}")

    def validate(self) -> None:
        for config in self._agents.values():
            if config.name in config.peers:
                raise ConfigurationError(f"Agent {config.name} declares itself as a peer")
            unknown = sorted(set(config.peers) - set(self._agents))
            if unknown:
                raise ConfigurationError(f"Agent {config.name} declares unknown peers: {', '.join(unknown)}")

    def get(self, name: str) -> AgentConfig:
        if name not in self._agents:
            raise KeyError(f"Unknown agent: {name}")
        return self._agents[name]

    def names(self) -> List[str]:
        return list(self._agents)

    def list_agents(self) -> List[AgentConfig]:
        return list(self._agents.values())

    def can_hand_off(self, from_agent: str, to_agent: str) -> bool:
        config = self._agents.get(from_agent)
        return bool(config and to_agent in config.peers)

    def get_catalog_text(self) -> str:
        """Markdown list of workers for the coordinator prompt."""
        lines = []
        for config in self._agents.values():
            lines.append(f"- **{config.name}**: {config.description or 'general purpose worker'}")
        return "\n".join(lines)

    def get_stats(self) -> Dict[str, int]:
        return {
            "agents": len(self._agents),
            "with_peers": sum(1 for c in self._agents.values() if c.peers),
        }

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents
