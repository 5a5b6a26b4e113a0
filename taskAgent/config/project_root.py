"""Project root path detection - works regardless of working directory."""

from __future__ import annotations

from pathlib import Path
from functools import lru_cache


@lru_cache(maxsize=1)
def get_project_root() -> Path:
    """Get absolute path to project root directory.

    This works by finding the directory containing the 'taskAgent' package,
    regardless of the current working directory.

    Example:
        >>> root = get_project_root()
        >>> agents_file = root / "taskAgent" / "config" / "agents.yaml"
    """
    # project_root.py -> config/ -> taskAgent/ -> project_root/
    project_root = Path(__file__).resolve().parent.parent.parent

    if not (project_root / "taskAgent").exists():
        raise RuntimeError(
            f"Could not locate project root. Expected 'taskAgent' directory at {project_root}"
        )

    return project_root


def resolve_project_path(relative_path: str | Path) -> Path:
    """Resolve a path relative to project root.

    Example:
        >>> rules = resolve_project_path("taskAgent/config/hitl_rules.yaml")
    """
    return get_project_root() / relative_path


def resolve_config_file(name: str) -> Path:
    """Return the bundled config file ``taskAgent/config/<name>``."""
    return Path(__file__).resolve().parent / name


__all__ = ["get_project_root", "resolve_project_path", "resolve_config_file"]
