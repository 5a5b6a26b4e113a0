"""Interfaces for model dependencies."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, Type, TypeVar

from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel

from taskAgent.graph.context import CallerContext

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ModelResolver(Protocol):
    """Callable that returns a LangChain-compatible chat model."""

    def __call__(self, model_id: str):
        ...


class ModelCapability(Protocol):
    """The language model as seen by the engine.

    Each method is a single opaque call; retries are the caller's concern.
    """

    async def complete(
        self,
        *,
        phase: str,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[BaseTool]] = None,
        context: Optional[CallerContext] = None,
        parallel_tool_calls: Optional[bool] = None,
    ) -> AIMessage:
        ...

    async def structured(
        self,
        *,
        phase: str,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        schema: Type[SchemaT],
        context: Optional[CallerContext] = None,
    ) -> SchemaT:
        ...
