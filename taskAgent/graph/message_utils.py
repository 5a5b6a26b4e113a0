"""Utilities for cleaning and windowing message histories."""

from __future__ import annotations

from typing import List, Optional, Sequence, Set

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage


def clean_message_history(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Remove AI messages whose tool_calls were never answered.

    Chat APIs require every AI message with tool_calls to be followed by the
    matching ToolMessages.
    """
    answered_call_ids: Set[str] = set()
    for msg in messages:
        if isinstance(msg, ToolMessage) and msg.tool_call_id:
            answered_call_ids.add(msg.tool_call_id)

    cleaned: List[BaseMessage] = []
    for msg in messages:
        if isinstance(msg, AIMessage) and msg.tool_calls:
            if any(tc.get("id") not in answered_call_ids for tc in msg.tool_calls):
                continue
        cleaned.append(msg)

    return cleaned


def truncate_messages_safely(messages: Sequence[BaseMessage], keep_recent: int = 10) -> List[BaseMessage]:
    """Keep the last ``keep_recent`` messages without orphaning tool results.

    If a kept ToolMessage answers an older AIMessage, that AIMessage is kept too.
    SystemMessages are always kept.
    """
    messages = list(messages)
    if len(messages) <= keep_recent:
        return messages

    ai_index_by_call: dict = {}
    for i, msg in enumerate(messages):
        if isinstance(msg, AIMessage):
            for tc in msg.tool_calls or []:
                if tc.get("id"):
                    ai_index_by_call[tc["id"]] = i

    cutoff_idx = len(messages) - keep_recent
    must_keep = set(range(cutoff_idx, len(messages)))

    for i in range(cutoff_idx, len(messages)):
        msg = messages[i]
        if isinstance(msg, ToolMessage) and msg.tool_call_id in ai_index_by_call:
            ai_idx = ai_index_by_call[msg.tool_call_id]
            must_keep.add(ai_idx)
            # Keep the sibling results of that AI message as well
            for j in range(ai_idx + 1, len(messages)):
                if not isinstance(messages[j], ToolMessage):
                    break
                must_keep.add(j)

    for i, msg in enumerate(messages):
        if isinstance(msg, SystemMessage):
            must_keep.add(i)

    return [messages[i] for i in sorted(must_keep)]


def conversation_window(messages: Sequence[BaseMessage], window: int) -> List[BaseMessage]:
    """Last ``window`` user/assistant turns, skipping tool traffic."""
    turns = [
        msg for msg in messages
        if isinstance(msg, HumanMessage) or (isinstance(msg, AIMessage) and not msg.tool_calls)
    ]
    return turns[-window:] if window > 0 else []


def last_user_message(messages: Sequence[BaseMessage]) -> Optional[HumanMessage]:
    for msg in reversed(messages):
        if isinstance(msg, HumanMessage):
            return msg
    return None


def message_text(message: Optional[BaseMessage]) -> str:
    """Plain text of a message (list content is flattened to its text parts)."""
    if message is None:
        return ""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for item in content:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict) and item.get("type") == "text":
            parts.append(item.get("text", ""))
    return "".join(parts)


def render_observations(messages: Sequence[BaseMessage], max_chars: int = 2000) -> str:
    """Flatten internal task messages into a readable log for review/synthesis prompts."""
    lines: List[str] = []
    for msg in messages:
        if isinstance(msg, ToolMessage):
            status = "FAILED" if getattr(msg, "status", "success") == "error" else "ok"
            text = message_text(msg)
            if len(text) > max_chars:
                text = text[:max_chars] + "... (truncated)"
            lines.append(f"[tool {msg.name or msg.tool_call_id} | {status}] {text}")
        elif isinstance(msg, AIMessage):
            text = message_text(msg).strip()
            if text:
                lines.append(f"[assistant] {text}")
            for tc in msg.tool_calls or []:
                lines.append(f"[assistant -> {tc['name']}] {tc.get('args')}")
        elif isinstance(msg, HumanMessage):
            lines.append(f"[{msg.name or 'note'}] {message_text(msg)}")
    return "\n".join(lines) if lines else "(no observations)"
