"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
No test talks to a real model: ``model`` is a ScriptedModel from tests.helpers.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from taskAgent.agents import AgentConfig, AgentRegistry, SupervisorConfig
from taskAgent.config.settings import GovernanceSettings, Settings
from taskAgent.graph.context import CallerContext
from taskAgent.hitl import ApprovalChecker
from taskAgent.persistence import MemoryCheckpointStore, MemoryMutationLedger
from taskAgent.runtime import build_application
from taskAgent.tools import ToolMeta, ToolRegistry

from tests.helpers import ScriptedModel, flaky_lookup, lookup, make_update_record, sleepy, whoami


@pytest.fixture
def settings() -> Settings:
    return Settings(
        governance=GovernanceSettings(
            max_loops=10,
            max_reflection_steps=3,
            model_max_attempts=2,
            router_window=3,
            max_message_history=40,
            tool_concurrency=4,
            max_peer_hops=3,
            max_delegations=5,
        )
    )


@pytest.fixture
def context() -> CallerContext:
    return CallerContext(thread_id="thread-1", run_id="run-1", user_id="u-7", tenant_id="acme")


@pytest.fixture
def model() -> ScriptedModel:
    return ScriptedModel()


@pytest.fixture
def writes() -> List[Dict[str, Any]]:
    """Records every executed update_record call."""
    return []


@pytest.fixture
def tool_registry(writes) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_tool(lookup, ToolMeta("lookup", tags=["read"]))
    registry.register_tool(flaky_lookup, ToolMeta("flaky_lookup", tags=["read"]))
    registry.register_tool(sleepy)
    registry.register_tool(whoami)
    registry.register_tool(make_update_record(writes), ToolMeta("update_record", risk="high", mutates=True))
    return registry


@pytest.fixture
def ledger() -> MemoryMutationLedger:
    return MemoryMutationLedger()


@pytest.fixture
def store() -> MemoryCheckpointStore:
    return MemoryCheckpointStore()


@pytest.fixture
def approval_checker(tool_registry) -> ApprovalChecker:
    return ApprovalChecker(tool_registry=tool_registry)


@pytest.fixture
def make_app(settings, model, tool_registry, store, ledger, approval_checker):
    """Factory building the full application around the shared fakes."""

    def _make(agents: Optional[List[AgentConfig]] = None, supervisor: Optional[SupervisorConfig] = None):
        return build_application(
            settings,
            model=model,
            tool_registry=tool_registry,
            agent_registry=AgentRegistry(agents or [AgentConfig(name="assistant")]),
            supervisor_config=supervisor or SupervisorConfig(),
            checkpoint_store=store,
            mutation_ledger=ledger,
            approval_checker=approval_checker,
        )

    return _make
