"""Runtime assembly: registries, stores, task loops, coordinator and run controller."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from langchain_core.messages import BaseMessage

from taskAgent.agents import (
    AgentConfig,
    AgentRegistry,
    ChatModelCapability,
    ModelCapability,
    ModelResolver,
    SupervisorConfig,
    create_peer_handoff_tools,
    load_agents_config,
)
from taskAgent.config import Settings, get_settings, resolve_config_file
from taskAgent.graph.context import CallerContext
from taskAgent.graph.loop import NotifyHook, TaskLoopController, build_task_loop
from taskAgent.graph.nodes import ToolResolver, build_direct_reply_node, build_router_node
from taskAgent.graph.prompts import PEER_HANDOFF_HINT
from taskAgent.graph.run import RunController, RunResult
from taskAgent.graph.supervisor import HandoffCoordinator
from taskAgent.hitl import ApprovalChecker, ResumeDecision
from taskAgent.models import build_default_registry
from taskAgent.persistence import CheckpointStore, MutationLedger, build_checkpoint_store, build_mutation_ledger
from taskAgent.telemetry import configure_tracing
from taskAgent.tools import ToolMeta, ToolRegistry
from taskAgent.tools.builtin import NoteBook, build_note_tools, now

from .model_resolver import build_model_resolver, resolve_model_configs

LOGGER = logging.getLogger("taskagent.runtime")


def _create_tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_tool(now, ToolMeta("now", risk="low", tags=["meta"]))
    for tool, meta in build_note_tools(NoteBook()):
        registry.register_tool(tool, meta)
    return registry


def _worker_tool_resolver(
    tool_registry: ToolRegistry,
    agent_registry: AgentRegistry,
    worker: AgentConfig,
    peer_enabled: bool,
) -> ToolResolver:
    peer_tools = create_peer_handoff_tools(agent_registry, worker) if peer_enabled else []

    def resolve(context: CallerContext):
        return [*tool_registry.resolve_tools(context, worker.capabilities), *peer_tools]

    return resolve


def _worker_persona(worker: AgentConfig, peer_enabled: bool) -> str:
    persona = worker.persona()
    if peer_enabled and worker.peers:
        persona += f"\n\n{PEER_HANDOFF_HINT}"
    return persona


@dataclass
class TaskAgentApp:
    """Entry point for callers: start runs and resume suspended ones."""

    controller: RunController
    coordinator: HandoffCoordinator
    loops: Dict[str, TaskLoopController]
    tool_registry: ToolRegistry
    agent_registry: AgentRegistry
    checkpoint_store: CheckpointStore
    mutation_ledger: MutationLedger
    settings: Settings

    async def run(
        self,
        thread_id: str,
        run_id: str,
        message: str,
        context: Optional[CallerContext] = None,
        history: Sequence[BaseMessage] = (),
    ) -> RunResult:
        context = context or CallerContext(thread_id=thread_id, run_id=run_id)
        return await self.controller.run(thread_id, run_id, message, context, history)

    async def resume(
        self,
        thread_id: str,
        run_id: str,
        decision: ResumeDecision | Dict[str, Any],
        context: Optional[CallerContext] = None,
    ) -> RunResult:
        context = context or CallerContext(thread_id=thread_id, run_id=run_id)
        return await self.controller.resume(thread_id, run_id, decision, context)


def build_application(
    settings: Optional[Settings] = None,
    *,
    model: Optional[ModelCapability] = None,
    model_resolver: Optional[ModelResolver] = None,
    tool_registry: Optional[ToolRegistry] = None,
    agent_registry: Optional[AgentRegistry] = None,
    supervisor_config: Optional[SupervisorConfig] = None,
    checkpoint_store: Optional[CheckpointStore] = None,
    mutation_ledger: Optional[MutationLedger] = None,
    approval_checker: Optional[ApprovalChecker] = None,
    agents_config_path: Optional[Path] = None,
    on_start: Optional[NotifyHook] = None,
    after_plan: Optional[NotifyHook] = None,
) -> TaskAgentApp:
    """Wire the engine. Every collaborator can be injected (tests pass fakes).

    ``on_start`` and ``after_plan`` are handed to every worker loop for
    acknowledgement and progress notifications.
    """

    settings = settings or get_settings()
    configure_tracing(settings.observability)

    if model is None:
        model_configs = resolve_model_configs(settings)
        model = ChatModelCapability(
            model_registry=build_default_registry(model_configs),
            model_resolver=model_resolver or build_model_resolver(model_configs),
        )

    tool_registry = tool_registry or _create_tool_registry()

    if agent_registry is None:
        agent_registry, loaded_supervisor = load_agents_config(agents_config_path)
        supervisor_config = supervisor_config or loaded_supervisor
    supervisor_config = supervisor_config or SupervisorConfig()

    db_path = settings.observability.checkpoint_db_path
    checkpoint_store = checkpoint_store or build_checkpoint_store(db_path)
    mutation_ledger = mutation_ledger or build_mutation_ledger(db_path)
    approval_checker = approval_checker or ApprovalChecker(
        resolve_config_file("hitl_rules.yaml"),
        tool_registry=tool_registry,
        auto_approve_mutations=settings.governance.auto_approve_mutations,
    )

    peer_enabled = supervisor_config.peer_communication.enabled
    loops: Dict[str, TaskLoopController] = {}
    for worker in agent_registry.list_agents():
        loops[worker.name] = build_task_loop(
            name=worker.name,
            model=model,
            resolve_tools=_worker_tool_resolver(tool_registry, agent_registry, worker, peer_enabled),
            settings=settings,
            approval_checker=approval_checker,
            mutation_ledger=mutation_ledger,
            persona=_worker_persona(worker, peer_enabled),
            on_start=on_start,
            after_plan=after_plan,
        )

    coordinator = HandoffCoordinator(
        registry=agent_registry,
        loops=loops,
        model=model,
        settings=settings,
        config=supervisor_config,
    )
    controller = RunController(
        store=checkpoint_store,
        router=build_router_node(model=model, settings=settings),
        direct_reply=build_direct_reply_node(model=model, settings=settings),
        coordinator=coordinator,
    )

    LOGGER.info(
        f"Application built: {len(tool_registry.list_tools())} tool(s), "
        f"agents={agent_registry.get_stats()}, peer_communication={peer_enabled}"
    )
    return TaskAgentApp(
        controller=controller,
        coordinator=coordinator,
        loops=loops,
        tool_registry=tool_registry,
        agent_registry=agent_registry,
        checkpoint_store=checkpoint_store,
        mutation_ledger=mutation_ledger,
        settings=settings,
    )
