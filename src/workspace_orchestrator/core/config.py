"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("workspace-orchestrator.yaml")


class WorktreeSettings(BaseModel):
    """Where and how worktrees are materialized."""
    root: Path = Field(default=Path("~/.workspace-orchestrator/worktrees"))
    branch_prefix: str = "attempt"
    git_timeout: int = 60  # seconds per git invocation

    @field_validator('root')
    @classmethod
    def expand_root(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @field_validator('branch_prefix')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.strip("/")
        if not v:
            raise ValueError("branch_prefix cannot be empty")
        return v


class CleanupSettings(BaseModel):
    """Cleanup script execution and workspace locking."""
    script_timeout: float = 300.0  # a stuck script is recorded as timed out after this
    lock_timeout: float = 30.0     # wait for a busy workspace before giving up
    lock_poll_interval: float = 0.1
    shell: str = "/bin/sh"

    @field_validator('script_timeout', 'lock_timeout')
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout must be positive, got {v}")
        return v


class RegistrySettings(BaseModel):
    """Persistence of projects, repositories, tasks and workspaces."""
    data_dir: Path = Field(default=Path("~/.workspace-orchestrator/data"))

    @field_validator('data_dir')
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        return Path(v).expanduser()


class ExecutorSettings(BaseModel):
    """Executors a workspace may be created with. Variants are not checked."""
    profiles: List[str] = Field(default_factory=lambda: [
        "CLAUDE_CODE",
        "CODEX",
        "GEMINI",
        "OPENCODE",
    ])


class OrchestratorConfig(BaseSettings):
    """Main orchestrator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WORKSPACE_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_file: Path | None = None
    worktree: WorktreeSettings = Field(default_factory=WorktreeSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    executors: ExecutorSettings = Field(default_factory=ExecutorSettings)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log_level: {v}")
        return v


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _load_config_from_file(config_path: Path) -> OrchestratorConfig:
    """Internal loader for orchestrator config (no caching)."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    data = _expand_env_vars(data)
    return OrchestratorConfig(**data)


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> OrchestratorConfig:
    """Load orchestrator configuration from YAML file.

    Uses mtime-based caching: returns the cached config if the file hasn't changed.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration."
        )
        return OrchestratorConfig()

    resolved = config_path.resolve()
    key = str(resolved)
    current_mtime = resolved.stat().st_mtime

    cached = _config_cache.get(key)
    if cached is not None and cached[1] == current_mtime:
        return cached[0]

    config = _load_config_from_file(resolved)
    _config_cache[key] = (config, current_mtime)
    return config


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` references in config data."""
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
