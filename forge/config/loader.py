"""Configuration loading and saving."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..core.exceptions import ConfigurationError
from .models import ForgeConfig, resolve_env_vars

CONFIG_FILE = "config.yaml"
DEFAULT_WORKSPACE_DIR = ".forge"


def load_config(
    project_root: Optional[Path] = None,
    project_config_path: Optional[Path] = None,
    global_config_path: Optional[Path] = None,
) -> ForgeConfig:
    """Load Forge configuration from multiple sources.

    Later sources override earlier ones:
    1. Defaults built into the models
    2. Global configuration (``~/.config/forge/config.yaml``)
    3. Project configuration (``<project>/.forge/config.yaml``)

    ``${VAR}`` and ``${VAR:default}`` references are resolved before
    validation, so numeric settings can come from the environment.

    Args:
        project_root: Project directory (default: current directory)
        project_config_path: Explicit path to the project config file
        global_config_path: Explicit path to the global config file

    Returns:
        Merged and validated configuration

    Raises:
        ConfigurationError: If a file cannot be parsed or validation fails
    """
    config_data: Dict[str, Any] = {}

    global_path = global_config_path or get_global_config_path()
    if global_path.exists():
        config_data = _merge_config(config_data, _load_yaml_file(global_path))

    project_path = project_config_path or get_project_config_path(
        project_root or Path.cwd()
    )
    if project_path.exists():
        config_data = _merge_config(config_data, _load_yaml_file(project_path))

    try:
        return ForgeConfig(**resolve_env_vars(config_data))
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def save_config(config: ForgeConfig, config_path: Path) -> None:
    """Save configuration to a YAML file.

    Raises:
        ConfigurationError: If the file cannot be written
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                config.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
                indent=2,
                allow_unicode=True,
            )
    except OSError as e:
        raise ConfigurationError(
            f"Failed to save configuration to {config_path}: {e}"
        ) from e


def get_global_config_path() -> Path:
    """Get the global configuration file path."""
    xdg_config = os.getenv("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "forge" / CONFIG_FILE
    return Path.home() / ".config" / "forge" / CONFIG_FILE


def get_project_config_path(project_root: Path) -> Path:
    return Path(project_root) / DEFAULT_WORKSPACE_DIR / CONFIG_FILE


def _load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file.

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read {file_path}: {e}") from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file must contain a YAML object, got {type(data).__name__}"
        )

    return data


def _merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge two configuration dictionaries recursively."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_config(result[key], value)
        else:
            result[key] = value

    return result
