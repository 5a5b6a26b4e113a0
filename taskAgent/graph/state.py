"""State definitions for the task engine and the persisted run checkpoint."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, Callable, Dict, List, Optional, Tuple, TypedDict, get_args, get_origin, get_type_hints

from langchain_core.messages import BaseMessage, ToolMessage, messages_from_dict, messages_to_dict
from langgraph.graph import add_messages

from taskAgent.utils.error_handler import MutationStateError


class Decision(str, Enum):
    UNSET = "UNSET"
    ACCEPT = "ACCEPT"
    IMPROVE = "IMPROVE"


class MutationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class GateStatus(str, Enum):
    WAITING = "waiting"
    RESUMED = "resumed"
    TERMINATED = "terminated"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


# ========== Records ==========

@dataclass(frozen=True, slots=True)
class ToolObservation:
    """Normalized result of one tool call, correlated by ``call_id``."""

    call_id: str
    name: str
    content: str
    is_error: bool = False

    def to_message(self) -> ToolMessage:
        return ToolMessage(
            content=self.content,
            tool_call_id=self.call_id,
            name=self.name,
            status="error" if self.is_error else "success",
        )


@dataclass(frozen=True, slots=True)
class PendingMutation:
    """A proposed side-effecting change awaiting approval.

    ``approved`` and ``rejected`` are terminal: ``approve()`` and ``reject()``
    return a new record and raise MutationStateError when called on one.
    """

    id: str
    description: str
    status: MutationStatus = MutationStatus.PENDING
    tool_name: Optional[str] = None
    arguments: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status is not MutationStatus.PENDING

    def approve(self) -> "PendingMutation":
        return self._transition(MutationStatus.APPROVED)

    def reject(self) -> "PendingMutation":
        return self._transition(MutationStatus.REJECTED)

    def _transition(self, target: MutationStatus) -> "PendingMutation":
        if self.is_terminal:
            raise MutationStateError(
                f"Mutation {self.id} is already {self.status.value}; cannot move to {target.value}"
            )
        return replace(self, status=target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "tool_name": self.tool_name,
            "arguments": dict(self.arguments),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingMutation":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            status=MutationStatus(data.get("status", "pending")),
            tool_name=data.get("tool_name"),
            arguments=dict(data.get("arguments") or {}),
        )


@dataclass(frozen=True, slots=True)
class HandoffRequest:
    """Transient routing decision: transfer control from one agent to another."""

    from_agent: str
    to_agent: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def task(self) -> str:
        return str(self.payload.get("task", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"from_agent": self.from_agent, "to_agent": self.to_agent, "payload": dict(self.payload)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HandoffRequest":
        return cls(from_agent=data["from_agent"], to_agent=data["to_agent"], payload=dict(data.get("payload") or {}))


@dataclass(frozen=True, slots=True)
class ReviewRequest:
    """Human review gate record for one suspended tool call."""

    call_id: str
    tool_call: Dict[str, Any]
    question: str
    mutation_id: str
    reason: str = ""
    risk_level: str = "low"
    status: GateStatus = GateStatus.WAITING

    def interrupt_payload(self) -> Dict[str, Any]:
        """What the external caller sees while the run is suspended."""
        return {
            "type": "tool_review",
            "question": self.question,
            "tool_call": dict(self.tool_call),
            "mutation_id": self.mutation_id,
            "reason": self.reason,
            "risk_level": self.risk_level,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "call_id": self.call_id,
            "tool_call": dict(self.tool_call),
            "question": self.question,
            "mutation_id": self.mutation_id,
            "reason": self.reason,
            "risk_level": self.risk_level,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewRequest":
        return cls(
            call_id=data["call_id"],
            tool_call=dict(data["tool_call"]),
            question=data.get("question", ""),
            mutation_id=data.get("mutation_id", data["call_id"]),
            reason=data.get("reason", ""),
            risk_level=data.get("risk_level", "low"),
            status=GateStatus(data.get("status", "waiting")),
        )


# ========== Task engine state ==========

def merge_mutations(
    left: Optional[Dict[str, PendingMutation]],
    right: Optional[Dict[str, PendingMutation]],
) -> Dict[str, PendingMutation]:
    """Keyed merge; later records replace earlier ones with the same id."""
    merged = dict(left or {})
    merged.update(right or {})
    return merged


class TaskEngineState(TypedDict, total=False):
    """State owned by one Task Loop Controller invocation.

    ``loop_counter`` and ``reflection_step_count`` only grow while the loop runs;
    the Finalizer is the single place that resets them (and clears
    ``task_engine_messages``).
    """

    # ========== Inputs ==========
    messages: List[BaseMessage]  # Conversation seen by the loop (read-only)
    request: Optional[str]       # Delegated task text when running as a worker
    agent_name: str
    task_index: int              # Position of this worker task within the run

    # ========== Internal reasoning ==========
    task_engine_messages: Annotated[List[BaseMessage], add_messages]
    loop_counter: int
    reflection_step_count: int
    decision: Decision

    # ========== Human review ==========
    review_required: List[str]   # Call ids of the current round that need review
    approved_call_ids: List[str]
    review: Optional[ReviewRequest]
    pending_mutations: Annotated[Dict[str, PendingMutation], merge_mutations]

    # ========== Control / output ==========
    handoff: Optional[HandoffRequest]
    response_draft: Optional[str]
    transcript: List[BaseMessage]  # Internal messages captured at finalization

    # ========== Bounds ==========
    max_loops: int
    max_reflection_steps: int


def initial_task_state(
    *,
    messages: List[BaseMessage],
    agent_name: str,
    max_loops: int,
    max_reflection_steps: int,
    request: Optional[str] = None,
    task_index: int = 0,
) -> TaskEngineState:
    return {
        "messages": list(messages),
        "request": request,
        "agent_name": agent_name,
        "task_index": task_index,
        "task_engine_messages": [],
        "loop_counter": 0,
        "reflection_step_count": 0,
        "decision": Decision.UNSET,
        "review_required": [],
        "approved_call_ids": [],
        "review": None,
        "pending_mutations": {},
        "handoff": None,
        "response_draft": None,
        "transcript": [],
        "max_loops": max_loops,
        "max_reflection_steps": max_reflection_steps,
    }


@lru_cache(maxsize=1)
def _reducers() -> Dict[str, Tuple[Callable[[Any, Any], Any], Callable[[], Any]]]:
    """Map channel name -> (reducer, empty value factory) from the Annotated hints."""
    reducers = {}
    for key, hint in get_type_hints(TaskEngineState, include_extras=True).items():
        if get_origin(hint) is Annotated:
            base, reducer = get_args(hint)[:2]
            reducers[key] = (reducer, get_origin(base) or base)
    return reducers


def apply_update(state: TaskEngineState, patch: Dict[str, Any]) -> TaskEngineState:
    """Return a new state with ``patch`` applied; the input state is not modified."""
    updated: Dict[str, Any] = dict(state)
    reducers = _reducers()
    for key, value in patch.items():
        if key in reducers:
            reducer, empty = reducers[key]
            current = updated.get(key)
            updated[key] = reducer(current if current is not None else empty(), value)
        else:
            updated[key] = value
    return updated  # type: ignore[return-value]


def task_state_to_dict(state: TaskEngineState) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, value in state.items():
        if key in ("messages", "task_engine_messages", "transcript"):
            data[key] = messages_to_dict(list(value or []))
        elif key == "decision":
            data[key] = Decision(value).value
        elif key == "pending_mutations":
            data[key] = {mid: m.to_dict() for mid, m in (value or {}).items()}
        elif key in ("review", "handoff"):
            data[key] = value.to_dict() if value is not None else None
        else:
            data[key] = value
    return data


def task_state_from_dict(data: Dict[str, Any]) -> TaskEngineState:
    state: Dict[str, Any] = {}
    for key, value in data.items():
        if key in ("messages", "task_engine_messages", "transcript"):
            state[key] = messages_from_dict(value or [])
        elif key == "decision":
            state[key] = Decision(value)
        elif key == "pending_mutations":
            state[key] = {mid: PendingMutation.from_dict(m) for mid, m in (value or {}).items()}
        elif key == "review":
            state[key] = ReviewRequest.from_dict(value) if value else None
        elif key == "handoff":
            state[key] = HandoffRequest.from_dict(value) if value else None
        else:
            state[key] = value
    return state  # type: ignore[return-value]


# ========== Run checkpoint ==========

@dataclass
class SupervisorState:
    """Coordinator bookkeeping for one run."""

    phase: str = "coordinate"  # coordinate | worker | done
    active_agent: Optional[str] = None
    task: Optional[str] = None
    messages: List[BaseMessage] = field(default_factory=list)
    delegations: int = 0
    peer_hops: int = 0
    visited: List[str] = field(default_factory=list)
    final_answer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "active_agent": self.active_agent,
            "task": self.task,
            "messages": messages_to_dict(self.messages),
            "delegations": self.delegations,
            "peer_hops": self.peer_hops,
            "visited": list(self.visited),
            "final_answer": self.final_answer,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SupervisorState":
        return cls(
            phase=data.get("phase", "coordinate"),
            active_agent=data.get("active_agent"),
            task=data.get("task"),
            messages=messages_from_dict(data.get("messages") or []),
            delegations=int(data.get("delegations", 0)),
            peer_hops=int(data.get("peer_hops", 0)),
            visited=list(data.get("visited") or []),
            final_answer=data.get("final_answer"),
        )


@dataclass
class RunCheckpoint:
    """Snapshot of a run: conversation, supervisor and task state, next node.

    ``stage`` is the run-level node still to execute; ``task_node`` is the
    task loop node still to execute when a worker is active.
    """

    thread_id: str
    run_id: str
    status: RunStatus = RunStatus.RUNNING
    stage: str = "router"
    messages: List[BaseMessage] = field(default_factory=list)
    supervisor: Optional[SupervisorState] = None
    task_node: Optional[str] = None
    task_state: Optional[TaskEngineState] = None
    error: Optional[Dict[str, Any]] = None
    updated_at: str = ""

    @property
    def review(self) -> Optional[ReviewRequest]:
        if self.task_state is None:
            return None
        return self.task_state.get("review")

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "run_id": self.run_id,
            "status": self.status.value,
            "stage": self.stage,
            "messages": messages_to_dict(self.messages),
            "supervisor": self.supervisor.to_dict() if self.supervisor else None,
            "task_node": self.task_node,
            "task_state": task_state_to_dict(self.task_state) if self.task_state is not None else None,
            "error": self.error,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunCheckpoint":
        return cls(
            thread_id=data["thread_id"],
            run_id=data["run_id"],
            status=RunStatus(data.get("status", "running")),
            stage=data.get("stage", "router"),
            messages=messages_from_dict(data.get("messages") or []),
            supervisor=SupervisorState.from_dict(data["supervisor"]) if data.get("supervisor") else None,
            task_node=data.get("task_node"),
            task_state=task_state_from_dict(data["task_state"]) if data.get("task_state") is not None else None,
            error=data.get("error"),
            updated_at=data.get("updated_at", ""),
        )
