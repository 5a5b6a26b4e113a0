"""Shared helpers: errors and logging."""

from .error_handler import (
    ConfigurationError,
    FinalizerModelError,
    ModelInvocationError,
    MutationStateError,
    PlannerModelError,
    ProtocolError,
    ReflectorModelError,
    SupervisorModelError,
    TaskAgentError,
    ToolExecutionError,
    call_with_retries,
    handle_model_error,
)
from .logging_utils import get_logger, setup_logging

__all__ = [
    "ConfigurationError",
    "FinalizerModelError",
    "ModelInvocationError",
    "MutationStateError",
    "PlannerModelError",
    "ProtocolError",
    "ReflectorModelError",
    "SupervisorModelError",
    "TaskAgentError",
    "ToolExecutionError",
    "call_with_retries",
    "handle_model_error",
    "get_logger",
    "setup_logging",
]
