"""
Configuration management for netscenario.
Loads the YAML scenario with environment variable overrides.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "config.yaml"

_ENV_OVERRIDES = {
    "NETSCENARIO_LOG_LEVEL": ("logging", "level"),
    "NETSCENARIO_SEED": ("simulation", "seed"),
    "NETSCENARIO_DURATION": ("simulation", "stop_time"),
    "NETSCENARIO_ADDRESS_BASE": ("addressing", "base"),
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a scenario configuration with optional environment variable overrides.

    Priority: ENV vars > YAML config > built-in defaults of each component

    Args:
        config_path: Path to YAML config file. Falls back to config/config.yaml.

    Returns:
        Merged configuration dictionary.
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")

    for env_key, (section, key) in _ENV_OVERRIDES.items():
        env_val = os.environ.get(env_key)
        if env_val is None:
            continue
        config.setdefault(section, {})[key] = _coerce(env_val)

    return config


def _coerce(raw: str) -> Any:
    # Addresses such as 10.1.0.0 fall through both conversions
    try:
        return int(raw)
    except ValueError:
        try:
            return float(raw)
        except ValueError:
            return raw


def get_nested(config: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Safely retrieve a nested config value."""
    current = config
    for k in keys:
        if isinstance(current, dict):
            current = current.get(k, default)
        else:
            return default
    return current
