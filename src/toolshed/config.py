"""
Configuration for toolshed.

Settings come from three layers, later ones winning:

    1. Defaults on the Settings model
    2. An optional YAML file (--config, or TOOLSHED_CONFIG)
    3. Environment variables

Environment variables:
    LLM_API_KEY, LLM_BASE_URL, LLM_MODEL, LLM_TIMEOUT
    REGISTRY_BASE_URL, TOOLSHED_REGISTRY_TIMEOUT
    TOOL_CACHE_DIR, TOOLSHED_DB_PATH, TOOLSHED_SECRETS_DB_PATH
    TOOLSHED_MAX_STEPS, TOOLSHED_HISTORY_LIMIT, TOOLSHED_PROMPT_FOR_SECRETS
    TOOLSHED_LOG_LEVEL

Blank environment values are treated as unset. API keys belong in the
environment, not in the YAML file.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from toolshed.errors import ConfigError

CONFIG_ENV_VAR = "TOOLSHED_CONFIG"

# Environment variable -> Settings field
ENV_FIELDS = {
    "LLM_API_KEY": "llm_api_key",
    "LLM_BASE_URL": "llm_base_url",
    "LLM_MODEL": "llm_model",
    "LLM_TIMEOUT": "llm_timeout_seconds",
    "REGISTRY_BASE_URL": "registry_base_url",
    "TOOLSHED_REGISTRY_TIMEOUT": "registry_timeout_seconds",
    "TOOL_CACHE_DIR": "tool_cache_dir",
    "TOOLSHED_DB_PATH": "db_path",
    "TOOLSHED_SECRETS_DB_PATH": "secrets_db_path",
    "TOOLSHED_MAX_STEPS": "max_steps",
    "TOOLSHED_HISTORY_LIMIT": "history_limit",
    "TOOLSHED_PROMPT_FOR_SECRETS": "prompt_for_secrets",
    "TOOLSHED_EXTRACT_FACTS": "extract_facts",
    "TOOLSHED_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """
    Runtime settings.

    Attributes:
        llm_*: OpenAI-compatible chat endpoint
        registry_base_url: Tool registry root URL (required for install/search)
        tool_cache_dir: Root of the local tool store
        db_path: SQLite file for chat memory and the execution log
        secrets_db_path: SQLite file for secrets (db_path if unset)
        max_steps: Model calls allowed per chat turn
        history_limit: Recent messages sent to the model
        prompt_for_secrets: Ask for missing tool secrets instead of denying
        extract_facts: Remember facts from each chat message
        log_level: Root log level
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    llm_api_key: str = Field(default="", description="Bearer token for the chat endpoint")
    llm_base_url: str = Field(default="https://api.openai.com", description="Chat endpoint root")
    llm_model: str = Field(default="gpt-4o-mini", description="Default model name")
    llm_timeout_seconds: float = Field(default=60.0, gt=0, description="Chat request timeout")

    registry_base_url: str = Field(default="", description="Tool registry root URL")
    registry_timeout_seconds: float = Field(default=15.0, gt=0, description="Registry timeout")

    tool_cache_dir: Path = Field(default=Path("tool-cache"), description="Local tool store root")
    db_path: Path = Field(default=Path("toolshed.db"), description="Memory database file")
    secrets_db_path: Path | None = Field(default=None, description="Secrets database file")

    max_steps: int = Field(default=5, ge=1, description="Model calls per chat turn")
    history_limit: int = Field(default=20, ge=1, description="Messages of context")
    prompt_for_secrets: bool = Field(default=False, description="Prompt for missing secrets")
    extract_facts: bool = Field(default=True, description="Extract facts after each chat turn")
    log_level: str = Field(default="WARNING", description="Root log level")

    @property
    def resolved_secrets_db_path(self) -> Path:
        return self.secrets_db_path or self.db_path

    def require_registry(self) -> str:
        """
        The registry URL, which registry commands cannot run without.

        Raises:
            ConfigError: If no registry is configured
        """
        if not self.registry_base_url.strip():
            raise ConfigError(
                source="REGISTRY_BASE_URL",
                detail="no tool registry configured",
                suggestion="Set REGISTRY_BASE_URL or registry_base_url in the config file",
            )
        return self.registry_base_url


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(source=str(path), detail="config file not found") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(source=str(path), detail=str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(source=str(path), detail="top level must be a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Load settings from an optional YAML file and the environment.

    Args:
        path: YAML file; falls back to $TOOLSHED_CONFIG, then none
        environ: Environment mapping (os.environ if None)

    Returns:
        Validated Settings

    Raises:
        ConfigError: If the file is missing or malformed, or a value is invalid
    """
    if environ is None:
        environ = os.environ

    if path is None:
        env_path = environ.get(CONFIG_ENV_VAR, "").strip()
        path = env_path or None

    data: dict[str, Any] = {}
    source = "defaults"
    if path is not None:
        data.update(_read_yaml(Path(path)))
        source = str(path)

    overrides = {
        field_name: environ[env_name].strip()
        for env_name, field_name in ENV_FIELDS.items()
        if environ.get(env_name, "").strip()
    }
    if overrides:
        data.update(overrides)
        source = f"{source} + environment"

    try:
        return Settings.model_validate(data)
    except pydantic.ValidationError as e:
        detail = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigError(source=source, detail=detail) from e
