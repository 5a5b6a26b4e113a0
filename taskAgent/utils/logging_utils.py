"""Logging utilities for the task engine.

Node helpers take the caller context explicitly so every line can be
correlated with its thread and run.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "taskagent"


def setup_logging(level: int = logging.INFO, logs_dir: Optional[Path] = None) -> logging.Logger:
    """Setup logging configuration for the task engine.

    Args:
        level: Console logging level (default: INFO)
        logs_dir: Directory for the detailed log file; no file handler when None

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all child logs
    logger.propagate = False

    logger.handlers = []

    if logs_dir is not None:
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / f"taskagent_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)
        logger.info(f"Log file: {log_file}")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    return logger


def _run_tag(context: Any) -> str:
    if context is None:
        return "-"
    thread_id = getattr(context, "thread_id", None) or "N/A"
    run_id = getattr(context, "run_id", None) or "N/A"
    return f"{thread_id[:8]}/{run_id[:8]}"


def log_node_entry(logger: logging.Logger, node_name: str, state: Dict[str, Any], context: Any = None) -> None:
    """Log node entry with a compact state snapshot.

    Args:
        logger: Logger instance
        node_name: Name of the node being entered
        state: Current task engine state
        context: Caller context of the run
    """
    logger.info(f"[{_run_tag(context)}] ENTERING NODE: {node_name}")
    logger.debug(
        f"  loop_counter={state.get('loop_counter', 0)} "
        f"reflection_step_count={state.get('reflection_step_count', 0)} "
        f"task_engine_messages={len(state.get('task_engine_messages', []))} "
        f"agent={state.get('agent_name')}"
    )


def log_node_exit(logger: logging.Logger, node_name: str, updates: Dict[str, Any], context: Any = None) -> None:
    """Log node exit with the keys of the produced patch.

    Args:
        logger: Logger instance
        node_name: Name of the node being exited
        updates: State patch returned by the node
        context: Caller context of the run
    """
    logger.info(f"[{_run_tag(context)}] EXITING NODE: {node_name}")
    for key, value in updates.items():
        if key in ("task_engine_messages", "messages", "transcript"):
            logger.debug(f"  - {key}: +{len(value)} messages")
        else:
            logger.debug(f"  - {key}: {value}")


def log_routing_decision(logger: logging.Logger, from_node: str, decision: str, reason: str = "") -> None:
    """Log routing decision.

    Args:
        logger: Logger instance
        from_node: Source node making the decision
        decision: Routing destination
        reason: Reason for the routing decision
    """
    logger.info(f"Routing decision from {from_node} → {decision}" + (f" ({reason})" if reason else ""))


def log_tool_call(logger: logging.Logger, tool_name: str, args: Dict[str, Any]) -> None:
    """Log tool invocation.

    Args:
        logger: Logger instance
        tool_name: Name of the tool being called
        args: Tool arguments
    """
    logger.info(f"Tool call: {tool_name}")
    logger.debug(f"  Arguments: {json.dumps(args, ensure_ascii=False, default=str)}")


def log_tool_result(logger: logging.Logger, tool_name: str, result: Any, success: bool = True) -> None:
    """Log tool execution result.

    Args:
        logger: Logger instance
        tool_name: Name of the tool
        result: Tool execution result
        success: Whether the tool executed successfully
    """
    status = "✓ Success" if success else "✗ Failed"
    logger.info(f"Tool result: {tool_name} - {status}")

    result_str = str(result)
    if len(result_str) > 500:
        result_str = result_str[:500] + "... (truncated)"
    logger.debug(f"  Result: {result_str}")


def log_model_selection(logger: logging.Logger, phase: str, model_id: str, reason: str = "") -> None:
    """Log model selection decision.

    Args:
        logger: Logger instance
        phase: Execution phase (route/plan/reflect/output/supervise)
        model_id: Selected model ID
        reason: Reason for selection
    """
    logger.info(f"Model selected for {phase}: {model_id}")
    if reason:
        logger.debug(f"  Reason: {reason}")


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: int = 500) -> None:
    """Log (a prefix of) the system prompt used for a phase."""
    preview = prompt if len(prompt) <= max_length else prompt[:max_length] + "... (truncated)"
    logger.debug(f"System prompt for {phase}:\n{preview}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {error}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


_global_logger = None


def get_logger() -> logging.Logger:
    """Get or create the global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = setup_logging()
    return _global_logger
