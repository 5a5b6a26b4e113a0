"""Per-tenant note book: a read tool and a side-effecting write tool.

``save_note`` is registered as mutating, so every call passes the human review
gate unless mutations are auto-approved.
"""

import threading
from datetime import datetime, timezone
from typing import Annotated, Dict, List, Tuple

from langchain_core.tools import BaseTool, InjectedToolArg, tool

from taskAgent.graph.context import CallerContext
from taskAgent.tools.registry import ToolMeta


class NoteBook:
    """In-process note storage keyed by (tenant, user)."""

    def __init__(self) -> None:
        self._notes: Dict[Tuple[str, str], List[Dict[str, str]]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(context: CallerContext) -> Tuple[str, str]:
        return (context.tenant_id or "default", context.user_id or "anonymous")

    def add(self, context: CallerContext, title: str, body: str) -> Dict[str, str]:
        note = {"title": title, "body": body, "created_at": datetime.now(timezone.utc).isoformat()}
        with self._lock:
            self._notes.setdefault(self._key(context), []).append(note)
        return note

    def list(self, context: CallerContext) -> List[Dict[str, str]]:
        with self._lock:
            return list(self._notes.get(self._key(context), []))


def build_note_tools(notebook: NoteBook) -> List[Tuple[BaseTool, ToolMeta]]:
    """Create the note tools bound to ``notebook`` together with their metadata."""

    @tool
    def list_notes(context: Annotated[CallerContext, InjectedToolArg]) -> List[Dict[str, str]]:
        """List the notes saved by the current user."""
        return notebook.list(context)

    @tool
    def save_note(title: str, body: str, context: Annotated[CallerContext, InjectedToolArg]) -> str:
        """Save a note for the current user.

        Args:
            title: Short title of the note
            body: Note content
        """
        notebook.add(context, title, body)
        return f"Saved note '{title}'"

    return [
        (list_notes, ToolMeta("list_notes", risk="low", tags=["read"])),
        (save_note, ToolMeta("save_note", risk="medium", tags=["write"], mutates=True)),
    ]


__all__ = ["NoteBook", "build_note_tools"]
