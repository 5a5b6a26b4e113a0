"""Model capability backed by LangChain chat models."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Type

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langchain_core.tools import BaseTool

from taskAgent.graph.context import CallerContext
from taskAgent.models import ModelRegistry
from taskAgent.utils.logging_utils import log_model_selection

from .interfaces import ModelResolver, SchemaT

LOGGER = logging.getLogger("taskagent.models")


class ChatModelCapability:
    """Selects a model per phase and invokes it (optionally with tools bound)."""

    def __init__(self, *, model_registry: ModelRegistry, model_resolver: ModelResolver) -> None:
        self._registry = model_registry
        self._resolver = model_resolver

    def _model(self, phase: str, require_tools: bool):
        spec = self._registry.prefer(phase=phase, require_tools=require_tools)
        log_model_selection(LOGGER, phase, spec.model_id)
        return self._resolver(spec.model_id)

    @staticmethod
    def _prompt(system_prompt: str, messages: Sequence[BaseMessage]) -> List[BaseMessage]:
        return [SystemMessage(content=system_prompt), *messages]

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
        model = self._model(phase, require_tools=bool(tools))
        runnable = model
        if tools:
            bind_kwargs: Dict[str, Any] = {}
            if parallel_tool_calls is not None:
                bind_kwargs["parallel_tool_calls"] = parallel_tool_calls
            runnable = model.bind_tools(list(tools), **bind_kwargs)
        config = context.runnable_config() if context else None
        return await runnable.ainvoke(self._prompt(system_prompt, messages), config=config)

    async def structured(
        self,
        *,
        phase: str,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        schema: Type[SchemaT],
        context: Optional[CallerContext] = None,
    ) -> SchemaT:
        model = self._model(phase, require_tools=False)
        runnable = model.with_structured_output(schema)
        config = context.runnable_config() if context else None
        result = await runnable.ainvoke(self._prompt(system_prompt, messages), config=config)
        if isinstance(result, dict):
            result = schema.model_validate(result)
        if not isinstance(result, schema):
            raise ValueError(f"Unparseable structured output for {schema.__name__}: {result!r}")
        return result
