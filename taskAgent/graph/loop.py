"""Task Loop Controller: dispatch table + pure transitions.

    PLAN ──tool calls──▶ TOOLS ──▶ PLAN
      │  └─needs review─▶ REVIEW ─continue─▶ TOOLS
      │                     └─update/feedback─▶ PLAN
      ├─no tool calls──▶ REFLECT ─IMPROVE─▶ PLAN
      │                     └─ACCEPT──▶ OUTPUT ──▶ END
      └─loop budget exhausted──▶ ABORT_OUTPUT ──▶ END
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from taskAgent.agents.interfaces import ModelCapability
from taskAgent.hitl.approval_checker import ApprovalChecker
from taskAgent.hitl.review_gate import HumanReviewGate, ResumeDecision
from taskAgent.persistence.mutations import MutationLedger
from taskAgent.utils.error_handler import ProtocolError

from .context import CallerContext
from .nodes import ToolResolver, build_output_node, build_planner_node, build_reflect_node, build_tools_node
from .results import NodeResult, Redirect, Suspend
from .routing import TaskNode, transition
from .state import TaskEngineState, apply_update

LOGGER = logging.getLogger("taskagent.loop")

NodeHandler = Callable[[TaskEngineState, CallerContext], Awaitable[NodeResult]]
TransitionHook = Callable[[TaskNode, TaskEngineState], Awaitable[None]]
NotifyHook = Callable[[TaskEngineState, CallerContext], Awaitable[None]]


@dataclass
class LoopOutcome:
    """Where the loop stopped: END (finished) or REVIEW (suspended)."""

    state: TaskEngineState
    node: TaskNode
    interrupt: Optional[Dict[str, Any]] = None

    @property
    def suspended(self) -> bool:
        return self.interrupt is not None

    @property
    def draft(self) -> Optional[str]:
        return self.state.get("response_draft")


class TaskLoopController:
    """Runs one worker's plan → act → reflect → output loop."""

    def __init__(
        self,
        *,
        name: str,
        planner: NodeHandler,
        tools: NodeHandler,
        review_gate: HumanReviewGate,
        reflector: NodeHandler,
        output: NodeHandler,
        abort_output: NodeHandler,
        on_start: Optional[NotifyHook] = None,
        after_plan: Optional[NotifyHook] = None,
    ) -> None:
        self.name = name
        self._gate = review_gate
        self._on_start = on_start
        self._after_plan = after_plan
        self._handlers: Dict[TaskNode, NodeHandler] = {
            TaskNode.PLAN: planner,
            TaskNode.TOOLS: tools,
            TaskNode.REVIEW: review_gate.enter,
            TaskNode.REFLECT: reflector,
            TaskNode.OUTPUT: output,
            TaskNode.ABORT_OUTPUT: abort_output,
        }

    async def run(
        self,
        state: TaskEngineState,
        context: CallerContext,
        *,
        start: TaskNode = TaskNode.PLAN,
        on_transition: Optional[TransitionHook] = None,
        resume: Optional[ResumeDecision | Dict[str, Any]] = None,
    ) -> LoopOutcome:
        """Drive the loop from ``start`` until it finishes or suspends.

        Each node's patch is applied only after the node completes, then
        ``on_transition(next_node, state)`` is awaited so the caller can persist
        a checkpoint. ``resume`` is only valid when starting at REVIEW.

        ``on_start`` is awaited once before the first planner round and
        ``after_plan`` after every planner round; both only notify the caller
        (acknowledgement and progress updates) and never change the state.
        """
        if resume is not None and start is not TaskNode.REVIEW:
            raise ProtocolError(f"Resume payload given but the loop of {self.name} is at {start.value}, not review")

        if self._on_start is not None and start is TaskNode.PLAN and not state.get("loop_counter"):
            await self._on_start(state, context)

        node = start
        while node is not TaskNode.END:
            if node is TaskNode.REVIEW and resume is not None:
                result = await self._gate.resume(state, resume, context)
                resume = None
            else:
                result = await self._handlers[node](state, context)

            state = apply_update(state, result.patch)
            if node is TaskNode.PLAN and self._after_plan is not None:
                await self._after_plan(state, context)

            if isinstance(result, Suspend):
                if on_transition is not None:
                    await on_transition(node, state)
                LOGGER.info(f"[{self.name}] suspended at {node.value}")
                return LoopOutcome(state=state, node=node, interrupt=result.payload)

            next_node = result.target if isinstance(result, Redirect) else transition(node, state)
            LOGGER.debug(f"[{self.name}] {node.value} → {next_node.value}")
            if on_transition is not None:
                await on_transition(next_node, state)
            node = next_node

        return LoopOutcome(state=state, node=TaskNode.END)


def build_task_loop(
    *,
    name: str,
    model: ModelCapability,
    resolve_tools: ToolResolver,
    settings,
    approval_checker: Optional[ApprovalChecker] = None,
    mutation_ledger: Optional[MutationLedger] = None,
    persona: str = "",
    on_start: Optional[NotifyHook] = None,
    after_plan: Optional[NotifyHook] = None,
) -> TaskLoopController:
    """Assemble a controller with the standard node set."""
    return TaskLoopController(
        name=name,
        planner=build_planner_node(
            model=model,
            resolve_tools=resolve_tools,
            settings=settings,
            approval_checker=approval_checker,
            persona=persona,
        ),
        tools=build_tools_node(resolve_tools=resolve_tools, settings=settings, mutation_ledger=mutation_ledger),
        review_gate=HumanReviewGate(mutation_ledger=mutation_ledger, approval_checker=approval_checker),
        reflector=build_reflect_node(model=model, settings=settings),
        output=build_output_node(model=model, settings=settings),
        abort_output=build_output_node(model=model, settings=settings, abort=True),
        on_start=on_start,
        after_plan=after_plan,
    )
