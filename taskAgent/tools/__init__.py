"""Tool registry exports."""

from .registry import CONTEXT_ARG, ToolMeta, ToolRegistry, accepts_context

__all__ = ["CONTEXT_ARG", "ToolMeta", "ToolRegistry", "accepts_context"]
