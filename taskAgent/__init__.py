"""TaskAgent - bounded task-orchestration engine with human review and handoffs."""

from .runtime.app import TaskAgentApp, build_application

__all__ = ["TaskAgentApp", "build_application"]
