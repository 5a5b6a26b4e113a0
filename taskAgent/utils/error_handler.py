"""Error taxonomy and retry helpers for the task engine."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Type, TypeVar

LOGGER = logging.getLogger("taskagent.errors")

T = TypeVar("T")


class TaskAgentError(Exception):
    """Base exception for task engine errors."""

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class ToolExecutionError(TaskAgentError):
    """One tool call failed. Absorbed by the tool invoker as an error observation."""

    def __init__(self, tool_name: str, message: str, user_message: str = None):
        super().__init__(f"{tool_name}: {message}", user_message)
        self.tool_name = tool_name


class ModelInvocationError(TaskAgentError):
    """Error during model invocation (after retries are exhausted)."""

    phase = "model"


class PlannerModelError(ModelInvocationError):
    phase = "plan"


class ReflectorModelError(ModelInvocationError):
    phase = "reflect"


class FinalizerModelError(ModelInvocationError):
    phase = "output"


class SupervisorModelError(ModelInvocationError):
    phase = "supervise"


class ConfigurationError(TaskAgentError):
    """Invalid agent configuration, raised while the engine is being assembled."""


class ProtocolError(TaskAgentError):
    """Malformed resume payload or a resume against a run that is not suspended."""


class MutationStateError(TaskAgentError):
    """Attempted transition out of a terminal PendingMutation status."""


async def call_with_retries(
    factory: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    error_cls: Type[ModelInvocationError],
    phase: str,
) -> T:
    """Await ``factory()`` up to ``attempts`` times.

    Every failed attempt is logged; once attempts are exhausted the last
    exception is wrapped into ``error_cls`` so callers can treat it as run-fatal.
    Cancellation is never retried.

    Args:
        factory: Zero-argument callable producing a fresh awaitable per attempt
        attempts: Maximum number of attempts (>= 1)
        error_cls: ModelInvocationError subclass raised on exhaustion
        phase: Phase label used in log lines
    """
    last_error: Exception | None = None
    for attempt in range(1, max(1, attempts) + 1):
        try:
            return await factory()
        except Exception as e:
            last_error = e
            LOGGER.warning(f"{phase} model call failed (attempt {attempt}/{attempts}): {type(e).__name__}: {e}")

    raise error_cls(
        f"{phase} model call failed after {attempts} attempts: {last_error}",
        user_message=handle_model_error(last_error),
    ) from last_error


def handle_model_error(error: Exception) -> str:
    """Convert model invocation errors to user-friendly messages.

    Args:
        error: Exception raised during model invocation

    Returns:
        User-friendly error message
    """
    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "The model service is rate limiting requests, please retry shortly"

    if "timeout" in error_str:
        return "The model did not respond in time, please retry"

    if "context_length" in error_str or "token" in error_str:
        return "The conversation is too long for the model, please start a new thread"

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "The model API key is invalid, please contact an administrator"

    if "quota" in error_str or "insufficient" in error_str:
        return "The model service quota is exhausted, please contact an administrator"

    return f"The model service is temporarily unavailable: {error}"
