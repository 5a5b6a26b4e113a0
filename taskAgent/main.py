"""TaskAgent - interactive CLI entrypoint.

Each user message starts a new run on the same thread. When a run suspends
for human review, the CLI asks for a decision and resumes it.
"""

from __future__ import annotations

import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path to support direct execution
if __name__ == "__main__":
    project_root = Path(__file__).parent.parent
    sys.path.insert(0, str(project_root))

from langchain_core.messages import BaseMessage

from taskAgent.graph.context import CallerContext
from taskAgent.graph.routing import pending_tool_calls
from taskAgent.graph.run import RunResult
from taskAgent.graph.state import TaskEngineState
from taskAgent.runtime import TaskAgentApp, build_application
from taskAgent.utils import ProtocolError, get_logger

EXIT_COMMANDS = {"/exit", "/quit"}


async def _show_progress(state: TaskEngineState, context: CallerContext) -> None:
    calls = pending_tool_calls(state)
    if calls:
        print(f"   ⏳ step {state.get('loop_counter', 0)}: {', '.join(call['name'] for call in calls)}")


def _ask_decision(interrupt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Prompt for a review decision; None means the user cancelled the run."""
    call = interrupt.get("tool_call", {})
    print(f"\n🔒 Review needed ({interrupt.get('risk_level', 'medium')}): {interrupt.get('reason', '')}")
    print(f"   {call.get('name')}({json.dumps(call.get('args', {}), ensure_ascii=False)})")
    print(f"   {interrupt.get('question', '')}")

    while True:
        answer = input("[c]ontinue / [u]pdate <json args> / [f]eedback <text> / [x] cancel > ").strip()
        if not answer:
            continue
        command, _, rest = answer.partition(" ")
        if command in ("c", "continue"):
            return {"action": "continue"}
        if command in ("u", "update"):
            try:
                return {"action": "update", "data": json.loads(rest)}
            except json.JSONDecodeError as e:
                print(f"Invalid JSON: {e}")
                continue
        if command in ("f", "feedback") and rest.strip():
            return {"action": "feedback", "data": rest.strip()}
        if command in ("x", "cancel"):
            return None
        print("Unrecognized answer")


async def _converse(app: TaskAgentApp, thread_id: str, history: List[BaseMessage], message: str) -> List[BaseMessage]:
    run_id = uuid.uuid4().hex
    context = CallerContext(thread_id=thread_id, run_id=run_id, user_id="cli")
    result: RunResult = await app.run(thread_id, run_id, message, context, history)

    while result.suspended:
        decision = await asyncio.to_thread(_ask_decision, result.interrupt or {})
        if decision is None:
            print("Run left suspended.")
            return history
        try:
            result = await app.resume(thread_id, run_id, decision, context)
        except ProtocolError as e:
            print(f"❌ {e.user_message}")
            return history

    if result.error:
        print(f"❌ {result.error.get('user_message') or result.error.get('message')}")
        return history

    print(f"\nAgent> {result.reply}\n")
    return result.messages


async def async_main():
    """Async entrypoint for the TaskAgent CLI."""
    logger = get_logger()
    logger.info("TaskAgent starting...")

    try:
        app = build_application(after_plan=_show_progress)
    except Exception as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        print(f"\n❌ Startup failed: {e}")
        return

    thread_id = uuid.uuid4().hex
    history: List[BaseMessage] = []
    print(f"TaskAgent ready (thread {thread_id[:8]}). Type /exit to quit.")

    while True:
        try:
            message = (await asyncio.to_thread(input, "You> ")).strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not message:
            continue
        if message in EXIT_COMMANDS:
            break
        history = await _converse(app, thread_id, history, message)

    logger.info("TaskAgent stopped")


def main():
    """Synchronous wrapper for async_main."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
