"""Shared test doubles: a scripted model capability and sample tools."""

import asyncio
from collections import defaultdict, deque
from typing import Annotated, Any, Callable, Dict, List

from langchain_core.messages import AIMessage
from langchain_core.tools import InjectedToolArg, tool

from taskAgent.graph.context import CallerContext


def tool_call_message(*calls, content: str = "") -> AIMessage:
    """AIMessage carrying ``(name, args, id)`` tool calls."""
    return AIMessage(
        content=content,
        tool_calls=[{"name": name, "args": args, "id": call_id} for name, args, call_id in calls],
    )


class ScriptedModel:
    """Model capability returning queued responses per phase.

    Queued items are AIMessages (``complete``), dicts or pydantic objects
    (``structured``) or exceptions, which are raised. When a phase queue is
    empty the phase default is used; phases without a default fail the test.
    """

    def __init__(self) -> None:
        self.queues: Dict[str, deque] = defaultdict(deque)
        self.defaults: Dict[str, Callable[[], Any]] = {
            "route": lambda: {"reasoning": "needs work", "response": "TASK_ENGINE"},
            "reflect": lambda: {"decision": "ACCEPT", "critique": ""},
            "output": lambda: AIMessage(content="final answer"),
        }
        self.calls: List[Dict[str, Any]] = []

    def script(self, phase: str, *responses: Any) -> "ScriptedModel":
        self.queues[phase].extend(responses)
        return self

    def always(self, phase: str, factory: Callable[[], Any]) -> "ScriptedModel":
        self.defaults[phase] = factory
        return self

    def phases(self) -> List[str]:
        return [call["phase"] for call in self.calls]

    def calls_for(self, phase: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["phase"] == phase]

    def _next(self, phase: str) -> Any:
        if self.queues[phase]:
            item = self.queues[phase].popleft()
        elif phase in self.defaults:
            item = self.defaults[phase]()
        else:
            raise AssertionError(f"Unexpected model call for phase {phase!r}")
        if isinstance(item, BaseException):
            raise item
        return item

    async def complete(
        self,
        *,
        phase: str,
        system_prompt: str,
        messages,
        tools=None,
        context=None,
        parallel_tool_calls=None,
    ) -> AIMessage:
        self.calls.append({
            "phase": phase,
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": [t.name for t in tools or []],
            "context": context,
            "parallel_tool_calls": parallel_tool_calls,
        })
        return self._next(phase)

    async def structured(self, *, phase: str, system_prompt: str, messages, schema, context=None):
        self.calls.append({
            "phase": phase,
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": [],
            "context": context,
            "parallel_tool_calls": None,
        })
        item = self._next(phase)
        if isinstance(item, dict):
            item = schema.model_validate(item)
        return item


# ========== Sample tools ==========

@tool
def lookup(query: str) -> str:
    """Look up a fact."""
    return f"result for {query}"


@tool
def flaky_lookup(query: str) -> str:
    """Look up a fact from an unreliable backend."""
    raise RuntimeError("backend unavailable")


@tool
async def sleepy(label: str, delay: float) -> str:
    """Wait ``delay`` seconds, then echo ``label``."""
    await asyncio.sleep(delay)
    return label


@tool
def whoami(context: Annotated[CallerContext, InjectedToolArg]) -> str:
    """Return the caller identity."""
    return f"{context.tenant_id}:{context.user_id}"


def make_update_record(writes: List[Dict[str, Any]]):
    @tool
    def update_record(record_id: str, value: str) -> str:
        """Change the value of a record."""
        writes.append({"record_id": record_id, "value": value})
        return f"record {record_id} updated"

    return update_record


