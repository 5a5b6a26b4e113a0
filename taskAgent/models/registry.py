"""Model management utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Literal, Optional

ModelKey = Literal["base", "fast"]

# Which slot serves which engine phase
PHASE_SLOTS: Dict[str, ModelKey] = {
    "route": "fast",
    "reply": "fast",
    "reflect": "fast",
    "plan": "base",
    "output": "base",
    "supervise": "base",
}


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """Normalized description of an LLM endpoint."""

    key: ModelKey
    model_id: str
    can_tools: bool
    speed: str  # fast | normal
    context_window: int  # Maximum context window size in tokens


class ModelRegistry:
    """Central registry for model specs and phase routing."""

    def __init__(self, specs: Optional[Iterable[ModelSpec]] = None) -> None:
        self._specs: Dict[str, ModelSpec] = {}
        if specs:
            for spec in specs:
                self.register(spec)

    def register(self, spec: ModelSpec) -> None:
        self._specs[spec.key] = spec

    def get(self, key: str) -> ModelSpec:
        if key not in self._specs:
            raise KeyError(f"Unknown model key: {key}")
        return self._specs[key]

    def prefer(self, *, phase: str, require_tools: bool = False) -> ModelSpec:
        """Choose the model spec for an engine phase.

        Falls back to the ``base`` slot when the phase slot cannot call tools
        but tools are required.
        """
        spec = self.get(PHASE_SLOTS.get(phase, "base"))
        if require_tools and not spec.can_tools:
            return self.get("base")
        return spec


def build_default_registry(model_configs: Dict[str, Dict[str, object]]) -> ModelRegistry:
    """Instantiate the registry from resolved model configs.

    Args:
        model_configs: Mapping of slot name to config dict with 'id' and 'context_window'.
    """
    return ModelRegistry(
        [
            ModelSpec(
                key="base",
                model_id=str(model_configs["base"]["id"]),
                can_tools=True,
                speed="normal",
                context_window=int(model_configs["base"]["context_window"]),
            ),
            ModelSpec(
                key="fast",
                model_id=str(model_configs["fast"]["id"]),
                can_tools=True,
                speed="fast",
                context_window=int(model_configs["fast"]["context_window"]),
            ),
        ]
    )
