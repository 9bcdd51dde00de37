"""Configuration management for Atlas-Orchestrator."""

import logging
import os
import shutil
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_ENV_NAME, DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, EXECUTOR_BINARY
from .utils import ensure_dir, expand_path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE_PATH = Path(__file__).with_name("config.toml")
CONFIG_ENV_VAR = "ATLAS_ORCHESTRATOR_CONFIG"


def _load_default_template() -> dict[str, Any]:
    """Load the packaged default config template."""
    with open(DEFAULT_CONFIG_TEMPLATE_PATH, "rb") as f:
        return tomllib.load(f)


def _merge_config_data(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge config dictionaries recursively."""
    merged = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_config_data(base_value, value)
        else:
            merged[key] = value
    return merged


def _copy_default_config(config_path: Path) -> None:
    """Copy packaged template to the user config path."""
    ensure_dir(config_path.parent)
    shutil.copyfile(DEFAULT_CONFIG_TEMPLATE_PATH, config_path)


class GlobalPathsConfig(BaseModel):
    """Global path configuration."""

    state_file: Path

    @field_validator("state_file", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path) -> Path:
        """Expand path strings with ~ and environment variables."""
        if isinstance(v, str):
            return expand_path(v)
        return v


class GlobalExecutorConfig(BaseModel):
    """Executor lookup configuration."""

    binary: str = EXECUTOR_BINARY
    search_dir: Path | None = None

    @field_validator("search_dir", mode="before")
    @classmethod
    def expand_search_dir(cls, v: str | Path | None) -> Path | None:
        """Treat an empty string as unset and expand the rest."""
        if v == "" or v is None:
            return None
        if isinstance(v, str):
            return expand_path(v)
        return v


class GlobalMigrateConfig(BaseModel):
    """Orchestration defaults."""

    env_name: str = DEFAULT_ENV_NAME
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0, description="Seconds between polls")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Operation deadline in seconds")
    dev_url: str = ""


class GlobalConfig(BaseModel):
    """Global configuration section."""

    paths: GlobalPathsConfig
    executor: GlobalExecutorConfig = Field(default_factory=GlobalExecutorConfig)
    migrate: GlobalMigrateConfig = Field(default_factory=GlobalMigrateConfig)


class CloudSettings(BaseModel):
    """Provider-level Atlas Cloud defaults."""

    token: str = ""
    project: str = ""
    url: str = ""
    repo: str = ""


class Config(BaseModel):
    """Configuration for Atlas-Orchestrator."""

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    global_config: GlobalConfig = Field(alias="global")
    cloud: CloudSettings = Field(default_factory=CloudSettings)

    @property
    def state_file(self) -> Path:
        """Path to state file."""
        return self.global_config.paths.state_file

    @property
    def executor_binary(self) -> str:
        """Name of the executor binary."""
        return self.global_config.executor.binary

    @property
    def executor_search_dir(self) -> Path | None:
        """Directory searched for the executor before PATH."""
        return self.global_config.executor.search_dir

    @property
    def env_name(self) -> str:
        """Default env block name."""
        return self.global_config.migrate.env_name

    @property
    def poll_interval(self) -> float:
        """Seconds between down-migration polls."""
        return self.global_config.migrate.poll_interval

    @property
    def timeout(self) -> float:
        """Default operation deadline."""
        return self.global_config.migrate.timeout

    @property
    def dev_url(self) -> str:
        """Default dev database URL."""
        return self.global_config.migrate.dev_url

    def save(self, config_path: Path) -> None:
        """
        Persist settings to disk.

        Args:
            config_path: Destination TOML file
        """
        data = self.model_dump(mode="json", by_alias=True)
        # TOML has no null; an unset search_dir is written as an empty string
        if data["global"]["executor"]["search_dir"] is None:
            data["global"]["executor"]["search_dir"] = ""
        ensure_dir(config_path.parent)
        with open(config_path, "wb") as f:
            tomli_w.dump(data, f)


def get_config_path() -> Path:
    """
    Get configuration file path.

    Priority:
    1. ATLAS_ORCHESTRATOR_CONFIG environment variable
    2. Default: ~/.config/atlas-orchestrator/config.toml

    Returns:
        Path to config file
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return expand_path(env_config)

    return expand_path("~/.config/atlas-orchestrator/config.toml")


def create_default_config() -> Config:
    """Create default configuration from the packaged template."""
    return Config.model_validate(_load_default_template())


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from TOML file using Pydantic validation.

    Args:
        config_path: Optional custom config path

    Returns:
        Config instance with validated values

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = get_config_path()

    defaults = _load_default_template()

    if not config_path.exists():
        try:
            _copy_default_config(config_path)
        except (OSError, PermissionError) as e:
            logger.warning(f"Could not copy default config to {config_path}: {e}")

    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        return Config.model_validate(_merge_config_data(defaults, data))

    return Config.model_validate(defaults)
