"""Tool metadata management and capability resolution."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from langchain_core.tools import BaseTool

from taskAgent.graph.context import CallerContext

# Name of the injected argument that receives the caller context
CONTEXT_ARG = "context"


@dataclass(frozen=True, slots=True)
class ToolMeta:
    """Describes governance attributes for a tool."""

    name: str
    risk: str = "low"  # low | medium | high
    tags: List[str] = field(default_factory=list)
    mutates: bool = False  # Changes external state; reviewed before execution
    tenants: Optional[FrozenSet[str]] = None  # Restrict to these tenant ids (None = everyone)


def accepts_context(tool: BaseTool) -> bool:
    """Whether the tool function declares the injected ``context`` argument."""
    func = getattr(tool, "coroutine", None) or getattr(tool, "func", None)
    if func is None:
        return False
    try:
        return CONTEXT_ARG in inspect.signature(func).parameters
    except (TypeError, ValueError):
        return False


class ToolRegistry:
    """Tracks tool instances and governance metadata."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None, meta: Optional[Iterable[ToolMeta]] = None) -> None:
        self._tools: Dict[str, BaseTool] = {}
        self._meta: Dict[str, ToolMeta] = {}
        if tools:
            for tool in tools:
                self.register_tool(tool)
        if meta:
            for item in meta:
                self.register_meta(item)

    def register_tool(self, tool: BaseTool, meta: Optional[ToolMeta] = None) -> None:
        self._tools[tool.name] = tool
        if meta is not None:
            self.register_meta(meta)

    def register_meta(self, metadata: ToolMeta) -> None:
        self._meta[metadata.name] = metadata

    def get_tool(self, name: str) -> BaseTool:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def get_meta(self, name: str) -> ToolMeta:
        if name not in self._meta:
            raise KeyError(f"Missing metadata for tool: {name}")
        return self._meta[name]

    def get_meta_optional(self, name: str) -> ToolMeta | None:
        return self._meta.get(name)

    def list_tools(self) -> List[BaseTool]:
        return list(self._tools.values())

    def resolve_tools(self, context: CallerContext, allowlist: Optional[Iterable[str]] = None) -> List[BaseTool]:
        """Tools callable by ``context``, optionally narrowed to ``allowlist``.

        An empty or missing allowlist means every registered tool.
        """
        names = list(allowlist) if allowlist else list(self._tools)
        resolved: List[BaseTool] = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                continue
            meta = self._meta.get(name)
            if meta and meta.tenants is not None and context.tenant_id not in meta.tenants:
                continue
            resolved.append(tool)
        return resolved
