"""Built-in tools registered by default."""

from .notes import NoteBook, build_note_tools
from .now import now

__all__ = ["NoteBook", "build_note_tools", "now"]
