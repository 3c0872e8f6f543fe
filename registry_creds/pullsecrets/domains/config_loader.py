"""Configuration loader for the registry-creds operator."""
import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .preferences import get_preference

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "REGISTRY_CREDS_CONFIG"
SYSTEM_CONFIG = Path("/etc/registry-creds/config.yml")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULTS: Dict[str, Any] = {
    "kubernetes": {
        "kubeconfig": None,
        "context": None,
    },
    "credentials": {
        "name_suffix": "",
        "owner_references": True,
    },
    "reconcile": {
        "requeue_on_failure": False,
        "requeue_delay": 30,
        "watch_new_objects": False,
    },
    "gcp": {
        "project_id": None,
    },
    "logging": {
        "level": "INFO",
    },
}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def _user_config() -> Path:
    return Path.home() / ".config" / "registry-creds" / "config.yml"


def _get_config_path() -> Optional[str]:
    """
    Find the config file to load.

    Priority order:
    1. REGISTRY_CREDS_CONFIG environment variable
    2. User preference (set with 'registry-creds config set-path')
    3. /etc/registry-creds/config.yml (mounted into the operator pod)
    4. ~/.config/registry-creds/config.yml

    Returns:
        Absolute path to the config file, or None when no file exists

    Raises:
        ConfigError: If an explicitly requested file doesn't exist
    """
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        if not Path(env_path).is_file():
            raise ConfigError(f"{CONFIG_ENV_VAR} points to a missing file: {env_path}")
        return str(Path(env_path))

    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    for candidate in (SYSTEM_CONFIG, _user_config()):
        if candidate.exists():
            return str(candidate)

    return None


def _merge(defaults: Dict[str, Any], overrides: Dict[str, Any], path: str) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        where = f"{path}.{key}" if path else key
        if key not in defaults:
            raise ConfigError(f"Unknown config key '{where}'")
        if isinstance(defaults[key], dict):
            if not isinstance(value, dict):
                raise ConfigError(f"'{where}' must be a mapping")
            merged[key] = _merge(defaults[key], value, where)
        else:
            merged[key] = value
    return merged


def _validate(config: Dict[str, Any]) -> None:
    suffix = config["credentials"]["name_suffix"]
    if not isinstance(suffix, str):
        raise ConfigError("'credentials.name_suffix' must be a string")

    for key in ("owner_references",):
        if not isinstance(config["credentials"][key], bool):
            raise ConfigError(f"'credentials.{key}' must be true or false")

    for key in ("requeue_on_failure", "watch_new_objects"):
        if not isinstance(config["reconcile"][key], bool):
            raise ConfigError(f"'reconcile.{key}' must be true or false")

    delay = config["reconcile"]["requeue_delay"]
    if isinstance(delay, bool) or not isinstance(delay, int) or delay <= 0:
        raise ConfigError("'reconcile.requeue_delay' must be a positive integer (seconds)")

    level = str(config["logging"]["level"]).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"'logging.level' must be one of {', '.join(LOG_LEVELS)}")
    config["logging"]["level"] = level


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate operator configuration.

    Values from the YAML file are layered over DEFAULTS; a missing file
    yields the defaults unchanged.

    Args:
        config_path: Explicit path, skipping the usual lookup

    Returns:
        Dict with kubernetes, credentials, reconcile, gcp and logging sections

    Raises:
        ConfigError: If the file is unreadable, malformed or holds invalid values
    """
    if config_path is None:
        config_path = _get_config_path()

    if config_path is None:
        logger.debug("No config file found, using defaults")
        return copy.deepcopy(DEFAULTS)

    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    config = _merge(DEFAULTS, raw, "")
    _validate(config)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return config
