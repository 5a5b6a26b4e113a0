"""Run controller: router → direct reply | coordinator → respond, with checkpoints.

A run is keyed by ``(thread_id, run_id)``. The checkpoint is loaded exactly
once per call and saved after every transition, so a suspended run can be
resumed by another process that shares the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from taskAgent.hitl.review_gate import ResumeDecision, parse_resume_decision, terminate_review
from taskAgent.persistence.checkpointer import CheckpointStore
from taskAgent.utils.error_handler import ProtocolError, TaskAgentError
from taskAgent.utils.logging_utils import log_error

from .context import CallerContext
from .message_utils import message_text
from .routing import Route, RunStage, run_transition
from .state import RunCheckpoint, RunStatus
from .supervisor import HandoffCoordinator

LOGGER = logging.getLogger("taskagent.run")


@dataclass
class RunResult:
    thread_id: str
    run_id: str
    status: RunStatus
    reply: Optional[str] = None
    messages: List[BaseMessage] = field(default_factory=list)
    interrupt: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def suspended(self) -> bool:
        return self.status is RunStatus.SUSPENDED


def error_record(error: Exception, checkpoint: RunCheckpoint) -> Dict[str, Any]:
    record = {
        "type": type(error).__name__,
        "message": str(error),
        "stage": checkpoint.stage,
        "task_node": checkpoint.task_node,
    }
    if isinstance(error, TaskAgentError):
        record["user_message"] = error.user_message
        phase = getattr(error, "phase", None)
        if phase:
            record["phase"] = phase
    return record


def _check_context(thread_id: str, run_id: str, context: CallerContext) -> None:
    if (context.thread_id, context.run_id) != (thread_id, run_id):
        raise ProtocolError(
            f"Caller context is scoped to {context.thread_id}/{context.run_id}, not {thread_id}/{run_id}"
        )


class RunController:
    """Drives one run from its checkpoint to completion or suspension."""

    def __init__(self, *, store: CheckpointStore, router, direct_reply, coordinator: HandoffCoordinator) -> None:
        self._store = store
        self._router = router
        self._direct_reply = direct_reply
        self._coordinator = coordinator

    async def run(
        self,
        thread_id: str,
        run_id: str,
        message: str,
        context: CallerContext,
        history: Sequence[BaseMessage] = (),
    ) -> RunResult:
        """Start a run, or recover one whose checkpoint is still RUNNING."""
        _check_context(thread_id, run_id, context)
        checkpoint = self._store.load(thread_id, run_id)
        if checkpoint is None:
            checkpoint = RunCheckpoint(
                thread_id=thread_id,
                run_id=run_id,
                messages=[*history, HumanMessage(content=message)],
            )
            self._save(checkpoint)
        elif checkpoint.status is RunStatus.SUSPENDED:
            raise ProtocolError(
                f"Run {thread_id}/{run_id} is suspended for review; resume it instead",
                user_message="This run is waiting for a review decision",
            )
        elif checkpoint.status is not RunStatus.RUNNING:
            raise ProtocolError(f"Run {thread_id}/{run_id} already {checkpoint.status.value}")
        else:
            LOGGER.info(f"Recovering run {thread_id}/{run_id} at stage {checkpoint.stage}")

        return await self._drive(checkpoint, context)

    async def resume(
        self,
        thread_id: str,
        run_id: str,
        decision: ResumeDecision | Dict[str, Any],
        context: CallerContext,
    ) -> RunResult:
        """Resume a suspended run with a review decision.

        A malformed decision terminates the gate: the checkpoint is marked
        FAILED (content unchanged) and ProtocolError is raised to the caller.
        """
        _check_context(thread_id, run_id, context)
        checkpoint = self._store.load(thread_id, run_id)
        if checkpoint is None:
            raise ProtocolError(f"No run {thread_id}/{run_id} to resume")
        if checkpoint.status is not RunStatus.SUSPENDED:
            raise ProtocolError(f"Run {thread_id}/{run_id} is {checkpoint.status.value}, not suspended")

        try:
            parsed = parse_resume_decision(decision)
        except ProtocolError as e:
            terminated = terminate_review(checkpoint.task_state) if checkpoint.task_state is not None else None
            if terminated is not None:
                checkpoint.task_state = {**checkpoint.task_state, "review": terminated}
            checkpoint.status = RunStatus.FAILED
            checkpoint.error = error_record(e, checkpoint)
            self._save(checkpoint)
            LOGGER.error(f"Run {thread_id}/{run_id} terminated: {e}")
            raise

        checkpoint.status = RunStatus.RUNNING
        self._save(checkpoint)
        return await self._drive(checkpoint, context, resume=parsed)

    def _save(self, checkpoint: RunCheckpoint) -> None:
        checkpoint.touch()
        self._store.save(checkpoint.thread_id, checkpoint.run_id, checkpoint)

    async def _drive(
        self,
        checkpoint: RunCheckpoint,
        context: CallerContext,
        resume: Optional[ResumeDecision] = None,
    ) -> RunResult:
        async def persist() -> None:
            self._save(checkpoint)

        stage = RunStage(checkpoint.stage)
        if resume is not None and stage is not RunStage.COORDINATOR:
            raise ProtocolError(f"Cannot resume run at stage {stage.value}")

        try:
            while stage is not RunStage.END:
                if stage is RunStage.ROUTER:
                    route: Route = await self._router(checkpoint.messages, context)
                    next_stage = run_transition(stage, route)

                elif stage is RunStage.DIRECT_REPLY:
                    reply = await self._direct_reply(checkpoint.messages, context)
                    checkpoint.messages.append(reply)
                    next_stage = run_transition(stage)

                elif stage is RunStage.COORDINATOR:
                    outcome = await self._coordinator.run(checkpoint, context, persist=persist, resume=resume)
                    resume = None
                    if outcome.interrupt is not None:
                        checkpoint.status = RunStatus.SUSPENDED
                        self._save(checkpoint)
                        LOGGER.info(f"Run {checkpoint.thread_id}/{checkpoint.run_id} suspended for review")
                        return self._result(checkpoint, interrupt=outcome.interrupt)
                    next_stage = run_transition(stage)

                else:  # RESPOND
                    answer = checkpoint.supervisor.final_answer if checkpoint.supervisor else ""
                    checkpoint.messages.append(AIMessage(content=answer or ""))
                    next_stage = run_transition(stage)

                checkpoint.stage = next_stage.value
                if next_stage is RunStage.END:
                    checkpoint.status = RunStatus.COMPLETED
                self._save(checkpoint)
                stage = next_stage

        except Exception as e:
            return self._fail(checkpoint, e)

        return self._result(checkpoint)

    def _fail(self, checkpoint: RunCheckpoint, error: Exception) -> RunResult:
        log_error(LOGGER, error, f"run {checkpoint.thread_id}/{checkpoint.run_id} at {checkpoint.stage}")
        checkpoint.status = RunStatus.FAILED
        checkpoint.error = error_record(error, checkpoint)
        self._save(checkpoint)
        return self._result(checkpoint)

    @staticmethod
    def _result(checkpoint: RunCheckpoint, interrupt: Optional[Dict[str, Any]] = None) -> RunResult:
        reply = None
        if checkpoint.status is RunStatus.COMPLETED and checkpoint.messages:
            reply = message_text(checkpoint.messages[-1])
        return RunResult(
            thread_id=checkpoint.thread_id,
            run_id=checkpoint.run_id,
            status=checkpoint.status,
            reply=reply,
            messages=list(checkpoint.messages),
            interrupt=interrupt,
            error=checkpoint.error,
        )
