"""Runtime utilities."""

from .app import TaskAgentApp, build_application
from .model_resolver import build_model_resolver, resolve_model_configs

__all__ = ["TaskAgentApp", "build_application", "build_model_resolver", "resolve_model_configs"]
