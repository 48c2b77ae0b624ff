"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("msgbridge")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config.yaml"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Resolve the env file path for a config file."""
    if env_path:
        return resolve_config_path(env_path)
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to MSGBRIDGE_CONFIG, or
              configs/config.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary. A missing file yields an empty
        config so the built-in defaults apply.
    """
    if path is None:
        path = os.getenv("MSGBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)

    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}, using built-in defaults")
        return {}

    logger.info(f"Loading configuration from {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return data


def _substitute_env_vars(
    obj: Any, env_values: Mapping[str, str] | None = None
) -> Any:
    """Recursively substitute ``${VAR}`` and ``$VAR`` references.

    Values come from the .env file first, then the process environment.
    Unset variables keep their literal placeholder and log a warning.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):

        def replace_var(match: re.Match) -> str:
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    f"Environment variable '${var_name}' is not set, "
                    f"keeping the literal placeholder"
                )
                return match.group(0)
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj


def server_settings(config: Mapping[str, Any]) -> tuple[str, int]:
    """Resolve bind host/port; MSGBRIDGE_HOST / MSGBRIDGE_PORT take priority."""
    server_cfg = config.get("server") or {}
    host = os.getenv("MSGBRIDGE_HOST") or str(server_cfg.get("host", "127.0.0.1"))
    raw_port = os.getenv("MSGBRIDGE_PORT") or server_cfg.get("port", 3000)
    try:
        port = int(raw_port)
    except (TypeError, ValueError):
        logger.warning(f"Invalid port '{raw_port}', falling back to 3000")
        port = 3000
    return host, port
