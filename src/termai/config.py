"""Config file loading and resolution."""

import sys
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_DIR = Path.home() / ".config" / "termai"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_MODELS_PATH = CONFIG_DIR / "models.toml"

DEFAULTS: dict[str, Any] = {
    "provider": "openai",
    "model": None,
    "api_key": None,
    "base_url": None,
    "temperature": None,
    "show_cost": False,
    "max_tool_rounds": 10,
    "db_path": None,
    "log_level": "WARNING",
}


class ConfigError(ValueError):
    """The config file exists but cannot be parsed."""


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load config from TOML file. Returns empty dict if file doesn't exist."""
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e


def resolve(cli_value: Any, config_value: Any, default: Any) -> Any:
    """Resolve a setting with precedence: CLI flag > config file > default."""
    if cli_value is not None:
        return cli_value
    if config_value is not None:
        return config_value
    return default
