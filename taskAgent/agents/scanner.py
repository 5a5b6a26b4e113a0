"""Load worker and supervisor configuration from agents.yaml.

Example file::

    supervisor:
      name: supervisor
      output_mode: last_message
      add_handoff_back_messages: true
      peer_communication:
        enabled: false
        max_peer_hops: 3
        always_return_to_supervisor: false
    agents:
      - name: billing
        description: Invoices and payments
        capabilities: [lookup_invoice]
        peers: [support]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from taskAgent.config.project_root import resolve_config_file
from taskAgent.utils.error_handler import ConfigurationError

from .registry import AgentRegistry
from .schema import AgentConfig, OutputMode, PeerCommunicationConfig, SupervisorConfig

LOGGER = logging.getLogger("taskagent.agents")


def parse_agent_config(config: Dict[str, Any]) -> AgentConfig:
    try:
        name = config["name"]
    except KeyError as e:
        raise ConfigurationError(f"Agent entry without a name: {config}") from e
    return AgentConfig(
        name=str(name),
        description=str(config.get("description", "")),
        capabilities=tuple(config.get("capabilities") or ()),
        peers=frozenset(config.get("peers") or ()),
        prompt=str(config.get("prompt", "")),
    )


def parse_supervisor_config(config: Optional[Dict[str, Any]]) -> SupervisorConfig:
    config = config or {}
    peer = config.get("peer_communication") or {}
    try:
        output_mode = OutputMode(config.get("output_mode", OutputMode.LAST_MESSAGE.value))
    except ValueError as e:
        raise ConfigurationError(f"Unknown output_mode: {config.get('output_mode')}") from e

    max_peer_hops = peer.get("max_peer_hops")
    if max_peer_hops is not None and int(max_peer_hops) < 0:
        raise ConfigurationError("max_peer_hops must be >= 0")

    return SupervisorConfig(
        name=str(config.get("name", "supervisor")),
        output_mode=output_mode,
        add_handoff_back_messages=bool(config.get("add_handoff_back_messages", True)),
        peer_communication=PeerCommunicationConfig(
            enabled=bool(peer.get("enabled", False)),
            max_peer_hops=int(max_peer_hops) if max_peer_hops is not None else None,
            always_return_to_supervisor=bool(peer.get("always_return_to_supervisor", False)),
        ),
        prompt=str(config.get("prompt", "")),
    )


def load_agents_config(config_path: Optional[Path] = None) -> Tuple[AgentRegistry, SupervisorConfig]:
    """Read agents.yaml and build a validated registry.

    Entries with ``enabled: false`` are skipped.

    Raises:
        ConfigurationError: invalid file or invalid agent set
    """
    config_path = config_path or resolve_config_file("agents.yaml")
    if not config_path.exists():
        raise ConfigurationError(f"Agents config not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid agents config {config_path}: {e}") from e

    entries: List[Dict[str, Any]] = raw.get("agents") or []
    if not isinstance(entries, list):
        raise ConfigurationError("'agents' must be a list of agent entries")

    configs = [parse_agent_config(entry) for entry in entries if entry.get("enabled", True)]
    registry = AgentRegistry(configs)
    supervisor = parse_supervisor_config(raw.get("supervisor"))
    if supervisor.name in registry:
        raise ConfigurationError(f"Supervisor name {supervisor.name} collides with a worker name")

    LOGGER.info(f"Loaded {len(registry)} agent(s) from {config_path}: {registry.names()}")
    return registry, supervisor
