"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("chatbridge")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

# Environment variable overriding the config path
CONFIG_PATH_ENV = "CHATBRIDGE_CONFIG"

# ${VAR}, ${VAR:-default} or $VAR
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """The .env file next to a config file (``config_<name>.yaml`` -> ``.env_<name>``)."""
    if env_path:
        return resolve_config_path(env_path)
    stem = config_path.stem
    if stem.startswith("config_"):
        return config_path.with_name(f".env_{stem[len('config_'):]}")
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    return {key: value for key, value in dotenv_values(env_path).items() if value is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict[str, Any]:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to $CHATBRIDGE_CONFIG, or
              configs/config_default.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Raises:
        ConfigurationError: the file is missing or is not a YAML mapping.
    """
    if path is None:
        path = os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)
    logger.info("Loading configuration from %s", config_path)

    if not config_path.exists():
        logger.error("Config file not found: %s", config_path)
        raise ConfigurationError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info("Loading environment variables from %s", env_file)
            env_values = load_env_values(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    if substitute_env:
        data = substitute_env_vars(data, env_values)

    return data


def substitute_env_vars(obj: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Recursively substitute environment variables in configuration values.

    Values come from ``env_values`` first, then the process environment. An
    unset variable without a ``:-`` default keeps its literal placeholder and
    is logged.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [substitute_env_vars(item, env_values) for item in obj]
    if not isinstance(obj, str):
        return obj

    def replace_var(match: re.Match) -> str:
        var_name = match.group(1) or match.group(3)
        default = match.group(2)
        value = env_values.get(var_name)
        if value is None:
            value = os.getenv(var_name)
        if value is None:
            if default is not None:
                return default
            logger.warning(
                "Environment variable '%s' is not set; keeping the literal placeholder",
                var_name,
            )
            return match.group(0)
        return value

    return _ENV_PATTERN.sub(replace_var, obj)
