"""Model registry exports."""

from .registry import PHASE_SLOTS, ModelKey, ModelRegistry, ModelSpec, build_default_registry

__all__ = ["PHASE_SLOTS", "ModelKey", "ModelRegistry", "ModelSpec", "build_default_registry"]
