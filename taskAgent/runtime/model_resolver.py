"""Default model resolver wiring using environment-derived settings.

Converts settings into ChatOpenAI instances on demand:

    - resolve_model_configs(): normalized id/credentials per slot (base, fast)
    - build_model_resolver(): resolver returning a chat model for a model id

Models are created lazily, so tests can inject their own resolver or model
capability without any credentials configured.
"""

from __future__ import annotations

import os
from typing import Callable, Dict, Optional, TypedDict

from langchain_openai import ChatOpenAI

from taskAgent.agents.interfaces import ModelResolver
from taskAgent.config.settings import Settings
from taskAgent.utils.error_handler import ConfigurationError

_PLACEHOLDERS = {"base-quick", "fast-mini"}


class ModelConfig(TypedDict):
    id: str
    api_key: Optional[str]
    base_url: Optional[str]
    context_window: int


def _resolved_value(preferred: Optional[str], *env_names: str) -> Optional[str]:
    """Return ``preferred`` unless it is a placeholder; then check env directly."""
    if preferred and preferred not in _PLACEHOLDERS:
        return preferred
    for name in env_names:
        value = os.getenv(name)
        if value:
            return value
    return preferred


def resolve_model_configs(settings: Settings) -> Dict[str, ModelConfig]:
    """Build normalized model configs for the ``base`` and ``fast`` slots."""
    return {
        "base": {
            "id": _resolved_value(settings.models.base, "MODEL_BASE_ID", "MODEL_BASE") or "base-quick",
            "api_key": settings.models.base_api_key,
            "base_url": settings.models.base_base_url,
            "context_window": settings.models.base_context_window,
        },
        "fast": {
            "id": _resolved_value(settings.models.fast, "MODEL_FAST_ID", "MODEL_FAST") or "fast-mini",
            "api_key": settings.models.fast_api_key or settings.models.base_api_key,
            "base_url": settings.models.fast_base_url or settings.models.base_base_url,
            "context_window": settings.models.fast_context_window,
        },
    }


def _chat_kwargs(model: str, api_key: Optional[str], base_url: Optional[str]) -> Dict[str, object]:
    if not api_key:
        raise ConfigurationError(
            f"Missing API key for model {model}",
            user_message="No model API key configured, set MODEL_BASE_API_KEY in .env",
        )
    kwargs: Dict[str, object] = {"model": model, "api_key": api_key, "temperature": 0.2}
    if base_url:
        kwargs["base_url"] = base_url
    return kwargs


def build_model_resolver(model_configs: Dict[str, ModelConfig]) -> ModelResolver:
    """Construct a resolver that returns ChatOpenAI-compatible clients (cached per id)."""

    catalog: Dict[str, Callable[[], ChatOpenAI]] = {}
    for config in model_configs.values():
        catalog[config["id"]] = lambda cfg=config: ChatOpenAI(
            **_chat_kwargs(cfg["id"], cfg["api_key"], cfg["base_url"])
        )
    instances: Dict[str, ChatOpenAI] = {}

    def resolver(model_id: str):
        if model_id not in catalog:
            raise ConfigurationError(f"Model {model_id} is not registered in the configuration")
        if model_id not in instances:
            instances[model_id] = catalog[model_id]()
        return instances[model_id]

    return resolver
