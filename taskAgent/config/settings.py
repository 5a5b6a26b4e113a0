"""Environment-bound configuration objects.

Settings are loaded from environment variables and the ``.env`` file through
pydantic-settings. Model slots accept several alias names so existing
deployments can keep their variable names.

Example:
    from taskAgent.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_loops = settings.governance.max_loops
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class ModelRoutingSettings(BaseSettings):
    """Model identifiers and credentials.

    Two slots are used by the engine:
    - base: planner, output synthesis and the supervisor (tool calling)
    - fast: router, reflector and direct replies (cheap classification/chat)

    Each slot has four fields: id, api_key, base_url, context_window.
    """

    base: str = Field(
        default="base-quick",
        validation_alias=AliasChoices("MODEL_BASE", "MODEL_BASE_ID", "MODEL_BASIC_ID"),
    )
    base_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_API_KEY", "MODEL_BASIC_API_KEY", "OPENAI_API_KEY"),
    )
    base_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_URL", "MODEL_BASIC_BASE_URL"),
    )
    base_context_window: int = Field(
        default=128000,
        validation_alias=AliasChoices("MODEL_BASE_CONTEXT_WINDOW", "MODEL_BASIC_CONTEXT_WINDOW"),
    )

    fast: str = Field(
        default="fast-mini",
        validation_alias=AliasChoices("MODEL_FAST", "MODEL_FAST_ID", "MODEL_CHAT_ID"),
    )
    fast_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_FAST_API_KEY", "MODEL_CHAT_API_KEY", "OPENAI_API_KEY"),
    )
    fast_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_FAST_URL", "MODEL_CHAT_BASE_URL"),
    )
    fast_context_window: int = Field(
        default=128000,
        validation_alias=AliasChoices("MODEL_FAST_CONTEXT_WINDOW", "MODEL_CHAT_CONTEXT_WINDOW"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class GovernanceSettings(BaseSettings):
    """Runtime governance and control settings.

    Controls engine limits and policies:
    - max_loops: Planner rounds before Abort Output (default: 10)
    - max_reflection_steps: Reflector rounds before a forced ACCEPT (default: 3)
    - model_max_attempts: Attempts per model call before a run-fatal error (default: 3)
    - router_window: Conversation messages shown to the router (default: 3)
    - max_message_history: Message window sent to the planner (default: 40)
    - auto_approve_mutations: Skip human review for mutating tools (default: False)
    - tool_concurrency: Tool calls executed at once within a round (default: 8)
    - max_peer_hops: Consecutive worker-to-worker handoffs (default: 3)
    - max_delegations: Coordinator delegations per run (default: 5)
    """

    max_loops: int = Field(default=10, ge=1, le=100, alias="MAX_LOOPS")
    max_reflection_steps: int = Field(default=3, ge=0, le=20, alias="MAX_REFLECTION_STEPS")
    model_max_attempts: int = Field(default=3, ge=1, le=10, alias="MODEL_MAX_ATTEMPTS")
    router_window: int = Field(default=3, ge=1, le=20, alias="ROUTER_WINDOW")
    max_message_history: int = Field(default=40, ge=10, le=200, alias="MAX_MESSAGE_HISTORY")
    auto_approve_mutations: bool = Field(default=False, alias="AUTO_APPROVE_MUTATIONS")
    tool_concurrency: int = Field(default=8, ge=1, le=64, alias="TOOL_CONCURRENCY")
    max_peer_hops: int = Field(default=3, ge=0, le=50, alias="MAX_PEER_HOPS")
    max_delegations: int = Field(default=5, ge=1, le=50, alias="MAX_DELEGATIONS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ObservabilitySettings(BaseSettings):
    """Tracing, logging, and persistence configuration.

    Controls observability features:
    - LangSmith tracing (LANGCHAIN_TRACING_V2, LANGCHAIN_PROJECT, etc.)
    - Logging settings (LOG_PROMPT_MAX_LENGTH)
    - Checkpoint persistence (CHECKPOINT_DB_PATH for SQLite storage)
    """

    langsmith_project: Optional[str] = Field(default=None, alias="LANGCHAIN_PROJECT")
    langsmith_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LANGCHAIN_API_KEY", "LANGSMITH_API_KEY")
    )
    langsmith_endpoint: Optional[str] = Field(default=None, alias="LANGCHAIN_ENDPOINT")
    tracing_enabled: bool = Field(default=False, alias="LANGCHAIN_TRACING_V2")

    # Logging settings
    log_prompt_max_length: int = Field(default=500, ge=100, le=5000, alias="LOG_PROMPT_MAX_LENGTH")

    # Checkpoint database path
    # Unset or empty: checkpoints and mutation records are kept in memory
    checkpoint_db_path: Optional[str] = Field(default=None, alias="CHECKPOINT_DB_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Hierarchical structure containing three nested settings groups:
    - models: Model routing and API credentials (ModelRoutingSettings)
    - governance: Loop bounds and review policy (GovernanceSettings)
    - observability: Tracing, logging and persistence (ObservabilitySettings)

    Use get_settings() to obtain a cached singleton instance.
    """

    environment: str = Field(default="dev", alias="APP_ENV")
    models: ModelRoutingSettings = Field(default_factory=ModelRoutingSettings)
    governance: GovernanceSettings = Field(default_factory=GovernanceSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()
