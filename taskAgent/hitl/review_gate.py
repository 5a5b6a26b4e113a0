"""Human review gate: explicit suspend/resume around side-effecting tool calls.

Entering the gate suspends the run (WAITING) with the pending tool call and a
question. The caller later resumes it with one of:

- ``{"action": "continue"}``: the call is approved and executed unchanged
- ``{"action": "update", "data": {...}}``: replacement arguments go back to the planner
- ``{"action": "feedback", "data": "text"}``: free-text feedback goes back to the planner

Anything else is a ProtocolError and the gate is TERMINATED.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from langchain_core.messages import ToolMessage
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from taskAgent.graph.context import CallerContext
from taskAgent.graph.prompts import REVIEW_QUESTION
from taskAgent.graph.results import NodeResult, Redirect, StateUpdate, Suspend
from taskAgent.graph.routing import TaskNode, pending_tool_calls, unapproved_call_ids
from taskAgent.graph.state import (
    GateStatus,
    MutationStatus,
    PendingMutation,
    ReviewRequest,
    TaskEngineState,
)
from taskAgent.persistence.mutations import MutationLedger
from taskAgent.utils.error_handler import MutationStateError, ProtocolError
from taskAgent.utils.logging_utils import log_node_entry, log_node_exit

from .approval_checker import ApprovalChecker

LOGGER = logging.getLogger("taskagent.hitl")

SKIPPED_AFTER_APPROVAL = "approved, not executed: round sent back for review"


class ResumeDecision(BaseModel):
    """Resume payload supplied by the external caller."""

    model_config = ConfigDict(extra="forbid")

    action: Literal["continue", "update", "feedback"]
    data: Any = None

    @model_validator(mode="after")
    def _check_data(self) -> "ResumeDecision":
        if self.action == "update" and not isinstance(self.data, dict):
            raise ValueError("update requires an object of replacement arguments in 'data'")
        if self.action == "feedback":
            text = self.data.get("text") if isinstance(self.data, dict) else self.data
            if not isinstance(text, str) or not text.strip():
                raise ValueError("feedback requires non-empty text in 'data'")
        return self

    @property
    def feedback_text(self) -> str:
        if isinstance(self.data, dict):
            return str(self.data.get("text", ""))
        return str(self.data or "")


def parse_resume_decision(payload: Union[ResumeDecision, Dict[str, Any], Any]) -> ResumeDecision:
    """Validate a resume payload, raising ProtocolError when malformed."""
    if isinstance(payload, ResumeDecision):
        return payload
    if not isinstance(payload, dict):
        raise ProtocolError(f"Resume payload must be an object, got {type(payload).__name__}")
    try:
        return ResumeDecision.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Malformed resume payload: {e.errors(include_url=False)}") from e


def mutation_id(context: CallerContext, state: TaskEngineState, call_id: str) -> str:
    """Ledger id for one reviewed call.

    Model-issued call ids repeat across runs, worker tasks and planner rounds,
    so the id is scoped by thread, run, task, agent and round.
    """
    return (
        f"mut_{context.thread_id}_{context.run_id}_{state.get('task_index', 0)}_"
        f"{state.get('agent_name', '')}_{state.get('loop_counter', 0)}_{call_id}"
    )


def terminate_review(state: TaskEngineState) -> Optional[ReviewRequest]:
    """The current review record marked TERMINATED (None when not reviewing)."""
    review = state.get("review")
    if review is None:
        return None
    return replace(review, status=GateStatus.TERMINATED)


class HumanReviewGate:
    """Suspend point in front of tool calls that need human approval."""

    def __init__(
        self,
        *,
        mutation_ledger: Optional[MutationLedger] = None,
        approval_checker: Optional[ApprovalChecker] = None,
        question: str = REVIEW_QUESTION,
    ) -> None:
        self._ledger = mutation_ledger
        self._checker = approval_checker
        self._question = question

    async def enter(self, state: TaskEngineState, context: CallerContext) -> NodeResult:
        """WAITING: record a pending mutation and suspend on the next unapproved call."""
        log_node_entry(LOGGER, "review", state, context)

        waiting = unapproved_call_ids(state)
        calls = {call["id"]: call for call in pending_tool_calls(state)}
        if not waiting or waiting[0] not in calls:
            raise ProtocolError("Human review entered without a tool call awaiting review")

        call = calls[waiting[0]]
        args = dict(call.get("args") or {})
        reason, risk_level = "", "medium"
        if self._checker is not None:
            decision = self._checker.check(call["name"], args)
            reason, risk_level = decision.reason, decision.risk_level

        mutation = PendingMutation(
            id=mutation_id(context, state, call["id"]),
            description=f"{call['name']}({json.dumps(args, ensure_ascii=False, default=str)})",
            tool_name=call["name"],
            arguments=args,
        )
        if self._ledger is not None:
            try:
                mutation = self._ledger.propose(mutation)
            except MutationStateError as e:
                raise ProtocolError(f"Cannot review {call['name']} ({call['id']}): {e}") from e

        review = ReviewRequest(
            call_id=call["id"],
            tool_call={"name": call["name"], "args": args, "id": call["id"]},
            question=self._question,
            mutation_id=mutation.id,
            reason=reason,
            risk_level=risk_level,
        )
        updates = {"review": review, "pending_mutations": {mutation.id: mutation}}
        LOGGER.info(f"Suspending for review of {call['name']} ({call['id']}): {reason or 'side-effecting call'}")
        log_node_exit(LOGGER, "review", updates, context)
        return Suspend(patch=updates, payload=review.interrupt_payload())

    async def resume(
        self,
        state: TaskEngineState,
        payload: Union[ResumeDecision, Dict[str, Any]],
        context: CallerContext,
    ) -> NodeResult:
        """RESUMED: apply the human decision to the waiting tool call."""
        review = state.get("review")
        if review is None or review.status is not GateStatus.WAITING:
            raise ProtocolError("No tool call is waiting for review")

        decision = parse_resume_decision(payload)
        LOGGER.info(f"Resuming review of {review.tool_call['name']} ({review.call_id}) with '{decision.action}'")

        mutation = (state.get("pending_mutations") or {}).get(review.mutation_id)
        resumed = replace(review, status=GateStatus.RESUMED)

        if decision.action == "continue":
            approved = self._decide(mutation, review.mutation_id, approve=True)
            updates = {
                "review": resumed,
                "approved_call_ids": [*(state.get("approved_call_ids") or []), review.call_id],
            }
            if approved is not None:
                updates["pending_mutations"] = {approved.id: approved}
            log_node_exit(LOGGER, "review", updates, context)
            return StateUpdate(updates)

        rejected = self._decide(mutation, review.mutation_id, approve=False)
        skipped, changed = self._skip_siblings(state, review.call_id, context)
        if decision.action == "update":
            content = json.dumps(
                {
                    "message": "The human reviewer replaced the arguments of this tool call. "
                               "It was not executed; plan again using the updated arguments.",
                    "originalArgs": review.tool_call.get("args", {}),
                    "updatedArgs": decision.data,
                },
                ensure_ascii=False,
                default=str,
            )
        else:
            content = f"The human reviewer did not run this tool call and left feedback: {decision.feedback_text}"

        updates = {
            "task_engine_messages": [
                ToolMessage(content=content, tool_call_id=review.call_id, name=review.tool_call["name"]),
                *skipped,
            ],
            "review": resumed,
            "review_required": [],
            "approved_call_ids": [],
        }
        if rejected is not None:
            changed[rejected.id] = rejected
        if changed:
            updates["pending_mutations"] = changed
        log_node_exit(LOGGER, "review", updates, context)
        return Redirect(TaskNode.PLAN, updates)

    def _decide(self, mutation: Optional[PendingMutation], mutation_id: str, *, approve: bool) -> Optional[PendingMutation]:
        target = MutationStatus.APPROVED if approve else MutationStatus.REJECTED
        try:
            if self._ledger is not None:
                return self._ledger.approve(mutation_id) if approve else self._ledger.reject(mutation_id)
            if mutation is not None:
                return mutation.approve() if approve else mutation.reject()
        except MutationStateError as e:
            current = self._ledger.get(mutation_id) if self._ledger is not None else mutation
            if current is not None and current.status is target:
                return current
            raise ProtocolError(f"Cannot resume review: {e}") from e
        return None

    def _skip_siblings(
        self, state: TaskEngineState, reviewed_call_id: str, context: CallerContext
    ) -> Tuple[List[ToolMessage], Dict[str, PendingMutation]]:
        """Tool results for the other calls of the round, which are dropped with it.

        Siblings the reviewer already approved keep their approved ledger record,
        annotated so it is not mistaken for an executed change.
        """
        approved = set(state.get("approved_call_ids") or [])
        known = state.get("pending_mutations") or {}
        messages: List[ToolMessage] = []
        annotated: Dict[str, PendingMutation] = {}
        for call in pending_tool_calls(state):
            if call["id"] == reviewed_call_id:
                continue
            if call["id"] not in approved:
                content = "Not executed: this call was part of a round sent back for human review."
            else:
                content = (
                    "Approved by the human reviewer but not executed: another call of this round was "
                    "sent back for review. Propose it again if it is still needed."
                )
                record = self._annotate(known, mutation_id(context, state, call["id"]), SKIPPED_AFTER_APPROVAL)
                if record is not None:
                    annotated[record.id] = record
            messages.append(ToolMessage(content=content, tool_call_id=call["id"], name=call["name"], status="error"))
        return messages, annotated

    def _annotate(
        self, known: Dict[str, PendingMutation], record_id: str, note: str
    ) -> Optional[PendingMutation]:
        current = self._ledger.get(record_id) if self._ledger is not None else known.get(record_id)
        if current is None or current.description.endswith(f"[{note}]"):
            return current
        if self._ledger is not None:
            return self._ledger.annotate(record_id, note)
        return replace(current, description=f"{current.description} [{note}]")
