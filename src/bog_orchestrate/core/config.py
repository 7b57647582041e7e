"""Configuration loading and validation."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ContextLoadError

logger = logging.getLogger(__name__)


class MergeStrategy(str, Enum):
    """When successful agent worktrees are merged into the root tree."""
    INCREMENTAL = "incremental"        # merge each success as soon as it lands
    ALL_OR_NOTHING = "all_or_nothing"  # merge only after every task succeeded

    @classmethod
    def parse(cls, value: str) -> "MergeStrategy":
        """Accept both 'all-or-nothing' and 'all_or_nothing' spellings."""
        return cls(value.strip().lower().replace("-", "_"))


class ProviderConfig(BaseModel):
    """Agent CLI invocation settings."""
    claude_executable: str = "claude"
    codex_executable: str = "codex"
    default_model: Optional[str] = None

    dock_timeout_seconds: float = 120
    agent_timeout_seconds: float = 300
    poll_interval_seconds: float = 0.2

    # Claude CLI turn cap when no budget is given
    max_turns_default: int = 50
    max_budget_usd: Optional[float] = None

    dock_allowed_tools: List[str] = Field(
        default_factory=lambda: ["Read", "Grep", "Glob", "Bash"]
    )
    agent_allowed_tools: List[str] = Field(
        default_factory=lambda: ["Bash", "Edit", "Read", "Write", "Grep", "Glob"]
    )

    @field_validator("dock_timeout_seconds", "agent_timeout_seconds", "poll_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeouts and intervals must be > 0, got {v}")
        return v


class SkimConfig(BaseModel):
    """Work-item lifecycle settings."""
    # argv tokens; {skimsystem} and {action} are substituted per run
    integration_command: List[str] = Field(
        default_factory=lambda: ["bog", "skim", ".", "--name", "{skimsystem}"]
    )
    integration_timeout_seconds: int = 600


class OrchestrateConfig(BaseSettings):
    """Main orchestration configuration."""
    model_config = SettingsConfigDict(
        env_prefix="BOG_ORCHESTRATE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    max_replan_attempts: int = 2
    merge_strategy: MergeStrategy = MergeStrategy.ALL_OR_NOTHING

    worktree_dir: str = ".bog-worktrees"
    branch_prefix: str = "orch"
    sidecar_suffix: str = ".bog"
    ownership_file: str = "ownership.yaml"

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    skim: SkimConfig = Field(default_factory=SkimConfig)

    @field_validator("max_replan_attempts")
    @classmethod
    def validate_replans(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_replan_attempts must be >= 0, got {v}")
        return v

    @field_validator("merge_strategy", mode="before")
    @classmethod
    def normalize_merge_strategy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return MergeStrategy.parse(v)
        return v

    @field_validator("sidecar_suffix")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if not v.startswith("."):
            raise ValueError(f"sidecar_suffix must start with '.', got '{v}'")
        return v


def load_config(config_path: Optional[Path] = None) -> OrchestrateConfig:
    """Load orchestration configuration from a YAML file.

    A missing file falls back to defaults (plus any BOG_ORCHESTRATE_* env vars).
    """
    if config_path is None or not config_path.exists():
        if config_path is not None:
            logger.warning(f"Config file not found: {config_path}. Using default configuration.")
        return OrchestrateConfig()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ContextLoadError(f"Malformed config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ContextLoadError(f"Config file {config_path} must contain a mapping")

    data = _expand_env_vars(data)
    try:
        return OrchestrateConfig(**data)
    except ValidationError as e:
        raise ContextLoadError(f"Invalid config file {config_path}: {e}") from e


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${VAR} references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "provider.default_model")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used."
            )
            return data
        return value
    return data
