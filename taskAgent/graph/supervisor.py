"""Handoff Coordinator: delegates to workers and reclaims control.

Phases (kept in SupervisorState so a suspended run can continue elsewhere):

- coordinate: the coordinator model picks a worker via ``transfer_to_<worker>``
  or answers the user directly
- worker: the active worker's task loop runs (it may suspend for review)
- done: ``final_answer`` holds the reply for the user

A worker returns control to the coordinator unless peer communication is
enabled and it requested a ``peer_transfer_to_<peer>`` handoff, in which case
the peer runs next, up to ``max_peer_hops`` consecutive hops.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from dataclasses import dataclass
from langchain_core.messages import AIMessage, ToolMessage

from taskAgent.agents.handoff_tools import create_supervisor_handoff_tools, handoff_back_messages
from taskAgent.agents.interfaces import ModelCapability
from taskAgent.agents.registry import AgentRegistry
from taskAgent.agents.schema import OutputMode, SupervisorConfig
from taskAgent.hitl.review_gate import ResumeDecision
from taskAgent.utils.error_handler import ConfigurationError, SupervisorModelError, call_with_retries
from taskAgent.utils.logging_utils import log_routing_decision

from .context import CallerContext
from .loop import LoopOutcome, TaskLoopController
from .message_utils import clean_message_history, conversation_window, last_user_message, message_text
from .prompts import DELEGATION_LIMIT_ANSWER, SUPERVISOR_SYSTEM_PROMPT
from .results import ControlResult
from .routing import TaskNode
from .state import HandoffRequest, RunCheckpoint, SupervisorState, TaskEngineState, initial_task_state

LOGGER = logging.getLogger("taskagent.supervisor")

Persist = Callable[[], Awaitable[None]]


@dataclass
class CoordinatorOutcome:
    answer: Optional[str] = None
    interrupt: Optional[Dict[str, Any]] = None


class HandoffCoordinator:
    """Routes a request across the registered workers."""

    def __init__(
        self,
        *,
        registry: AgentRegistry,
        loops: Mapping[str, TaskLoopController],
        model: ModelCapability,
        settings,
        config: Optional[SupervisorConfig] = None,
    ) -> None:
        registry.validate()
        if len(registry) == 0:
            raise ConfigurationError("At least one worker must be registered")
        missing = [name for name in registry.names() if name not in loops]
        if missing:
            raise ConfigurationError(f"No task loop for workers: {', '.join(missing)}")

        self._registry = registry
        self._loops = dict(loops)
        self._model = model
        self._settings = settings
        self.config = config or SupervisorConfig()
        if self.config.name in registry:
            raise ConfigurationError(f"Supervisor name {self.config.name} collides with a worker name")

        peer = self.config.peer_communication
        self.max_peer_hops = peer.max_peer_hops if peer.max_peer_hops is not None else settings.governance.max_peer_hops
        self._transfer_tools = {t.name: t for t in create_supervisor_handoff_tools(registry, self.config.name)}

        self._system_prompt = SUPERVISOR_SYSTEM_PROMPT.format(
            name=self.config.name, catalog=registry.get_catalog_text()
        )
        if self.config.prompt:
            self._system_prompt += f"\n\n{self.config.prompt}"

    @property
    def single_worker(self) -> bool:
        return len(self._registry) == 1

    def new_state(self) -> SupervisorState:
        return SupervisorState()

    async def run(
        self,
        checkpoint: RunCheckpoint,
        context: CallerContext,
        *,
        persist: Persist,
        resume: Optional[ResumeDecision | Dict[str, Any]] = None,
    ) -> CoordinatorOutcome:
        """Advance until a final answer exists or a worker suspends."""
        if checkpoint.supervisor is None:
            checkpoint.supervisor = self.new_state()
        sup = checkpoint.supervisor

        while sup.phase != "done":
            if sup.phase == "coordinate":
                await self._coordinate(checkpoint, context)
                await persist()
            elif sup.phase == "worker":
                outcome = await self._run_worker(checkpoint, context, persist, resume)
                resume = None
                if outcome.suspended:
                    return CoordinatorOutcome(interrupt=outcome.interrupt)
                self._complete_worker(checkpoint, outcome)
                await persist()
            else:
                raise ConfigurationError(f"Unknown supervisor phase: {sup.phase}")

        return CoordinatorOutcome(answer=sup.final_answer or "")

    # ========== coordinate ==========

    async def _coordinate(self, checkpoint: RunCheckpoint, context: CallerContext) -> None:
        sup = checkpoint.supervisor
        max_delegations = self._settings.governance.max_delegations

        if sup.delegations >= max_delegations:
            LOGGER.warning(f"Delegation bound reached ({sup.delegations}/{max_delegations}), finishing with last draft")
            if not (sup.final_answer or "").strip():
                sup.final_answer = DELEGATION_LIMIT_ANSWER
            sup.phase = "done"
            return

        if self.single_worker:
            if sup.delegations > 0:
                sup.phase = "done"
                return
            worker = self._registry.names()[0]
            task = message_text(last_user_message(checkpoint.messages))
            log_routing_decision(LOGGER, self.config.name, worker, "single worker")
            self._start_worker(checkpoint, HandoffRequest(self.config.name, worker, {"task": task}), delegated=True)
            return

        history = self._settings.governance.max_message_history
        messages = [*conversation_window(checkpoint.messages, history), *clean_message_history(sup.messages)]
        output = await call_with_retries(
            lambda: self._model.complete(
                phase="supervise",
                system_prompt=self._system_prompt,
                messages=messages,
                tools=list(self._transfer_tools.values()),
                context=context,
                parallel_tool_calls=False,
            ),
            attempts=self._settings.governance.model_max_attempts,
            error_cls=SupervisorModelError,
            phase="supervise",
        )

        if not output.tool_calls:
            sup.messages.append(output)
            sup.final_answer = message_text(output) or sup.final_answer
            log_routing_decision(LOGGER, self.config.name, "done", "coordinator answered directly")
            sup.phase = "done"
            return

        call = output.tool_calls[0]
        if len(output.tool_calls) > 1:
            LOGGER.warning(f"Coordinator emitted {len(output.tool_calls)} handoffs; only {call['name']} is honoured")
        sup.messages.append(AIMessage(content=output.content, tool_calls=[call], id=output.id))

        handoff = await self._invoke_transfer(call)
        if handoff is None:
            # counts toward the delegation bound
            sup.delegations += 1
            sup.messages.append(ToolMessage(
                content=f"Error: {call['name']} is not a valid worker transfer. "
                        f"Available: {', '.join(self._transfer_tools)}",
                tool_call_id=call["id"],
                name=call["name"],
                status="error",
            ))
            return

        sup.messages.append(ToolMessage(
            content=f"Successfully transferred to {handoff.to_agent}",
            tool_call_id=call["id"],
            name=call["name"],
        ))
        log_routing_decision(LOGGER, self.config.name, handoff.to_agent, handoff.task[:80])
        self._start_worker(checkpoint, handoff, delegated=True)

    async def _invoke_transfer(self, call) -> Optional[HandoffRequest]:
        tool = self._transfer_tools.get(call["name"])
        if tool is None:
            return None
        try:
            result = await tool.ainvoke(call.get("args") or {})
        except Exception as e:
            LOGGER.warning(f"Coordinator transfer {call['name']} failed: {e}")
            return None
        if isinstance(result, ControlResult):
            return result.handoff
        return None

    def _start_worker(self, checkpoint: RunCheckpoint, handoff: HandoffRequest, *, delegated: bool) -> None:
        sup = checkpoint.supervisor
        governance = self._settings.governance
        sup.phase = "worker"
        sup.active_agent = handoff.to_agent
        sup.task = handoff.task
        sup.visited.append(handoff.to_agent)
        if delegated:
            sup.delegations += 1
        checkpoint.task_node = TaskNode.PLAN.value
        checkpoint.task_state = initial_task_state(
            messages=checkpoint.messages,
            agent_name=handoff.to_agent,
            request=handoff.task or None,
            task_index=len(sup.visited),
            max_loops=governance.max_loops,
            max_reflection_steps=governance.max_reflection_steps,
        )

    # ========== worker ==========

    async def _run_worker(
        self,
        checkpoint: RunCheckpoint,
        context: CallerContext,
        persist: Persist,
        resume: Optional[ResumeDecision | Dict[str, Any]],
    ) -> LoopOutcome:
        sup = checkpoint.supervisor
        loop = self._loops[sup.active_agent]

        async def on_transition(node: TaskNode, state: TaskEngineState) -> None:
            checkpoint.task_node = node.value
            checkpoint.task_state = state
            await persist()

        LOGGER.info(f"Running worker {sup.active_agent} from {checkpoint.task_node}")
        return await loop.run(
            checkpoint.task_state,
            context,
            start=TaskNode(checkpoint.task_node),
            on_transition=on_transition,
            resume=resume,
        )

    def _complete_worker(self, checkpoint: RunCheckpoint, outcome: LoopOutcome) -> None:
        sup = checkpoint.supervisor
        worker = sup.active_agent
        state = outcome.state
        draft = state.get("response_draft") or ""

        if self.config.output_mode is OutputMode.FULL_HISTORY:
            sup.messages.extend(clean_message_history(state.get("transcript") or []))
        sup.messages.append(AIMessage(content=draft, name=worker))
        sup.final_answer = draft

        checkpoint.task_state = None
        checkpoint.task_node = None

        handoff: Optional[HandoffRequest] = state.get("handoff")
        if (
            handoff is not None
            and self._peer_allowed(worker, handoff)
            and self._within_hop_budget(sup, worker, handoff.to_agent)
        ):
            LOGGER.info(f"Peer handoff {worker} → {handoff.to_agent} (hop {sup.peer_hops + 1}/{self.max_peer_hops})")
            sup.peer_hops += 1
            self._start_worker(checkpoint, handoff, delegated=False)
            return

        if handoff is not None:
            sup.messages.append(AIMessage(
                content=f"Requested handoff to {handoff.to_agent} was not performed. Pending task: {handoff.task}",
                name=worker,
            ))

        if self.config.add_handoff_back_messages:
            sup.messages.extend(handoff_back_messages(worker, self.config.name))

        sup.peer_hops = 0
        sup.active_agent = None
        sup.task = None
        sup.phase = "done" if self.single_worker else "coordinate"

    def _peer_allowed(self, worker: str, handoff: HandoffRequest) -> bool:
        peer = self.config.peer_communication
        if not peer.enabled or peer.always_return_to_supervisor:
            LOGGER.info(f"Peer handoff from {worker} returned to coordinator (peer routing disabled)")
            return False
        if not self._registry.can_hand_off(worker, handoff.to_agent):
            LOGGER.warning(f"{worker} may not hand off to {handoff.to_agent}")
            return False
        return True

    def _within_hop_budget(self, sup: SupervisorState, worker: str, target: str) -> bool:
        if sup.peer_hops >= self.max_peer_hops:
            LOGGER.warning(f"Peer hop budget exhausted ({sup.peer_hops}/{self.max_peer_hops}), {worker} → {target} returns to coordinator")
            return False
        return True
