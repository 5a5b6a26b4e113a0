"""Configuration exports."""

from .settings import (
    GovernanceSettings,
    ModelRoutingSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)
from .project_root import get_project_root, resolve_config_file, resolve_project_path

__all__ = [
    "GovernanceSettings",
    "ModelRoutingSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
    "get_project_root",
    "resolve_config_file",
    "resolve_project_path",
]
