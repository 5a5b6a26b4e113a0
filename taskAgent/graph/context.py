"""Caller context threaded explicitly through every node."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CallerContext(BaseModel):
    """Immutable identity/tenant scope of the caller.

    The engine forwards this object unchanged to the capability registry, to
    model calls and to tools that declare an injected ``context`` argument.
    """

    model_config = ConfigDict(frozen=True)

    thread_id: str
    run_id: str
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    locale: str = "en"
    extras: Dict[str, Any] = Field(default_factory=dict)

    def runnable_config(self) -> Dict[str, Any]:
        """Runnable config forwarded to model invocations."""
        return {
            "configurable": {"thread_id": self.thread_id, "caller_context": self},
            "metadata": {"thread_id": self.thread_id, "run_id": self.run_id},
        }
