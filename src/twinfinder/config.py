"""Settings management for twinfinder.

Configuration is read from an optional TOML file in a platform-specific
location:
- Linux/macOS: $XDG_CONFIG_HOME/twinfinder/twinfinder.toml
  (default ~/.config/twinfinder/twinfinder.toml)
- Windows: %APPDATA%\\twinfinder\\twinfinder.toml

Missing files and missing keys fall back to built-in defaults.
"""

import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import tomllib

from .errors import ConfigError

OUTPUT_FORMATS = ("text", "json", "csv")

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "scan": {"workers": 8},
    "output": {"format": "text"},
    "log": {"directory": ""},
}


def get_config_dir() -> Path:
    """Get platform-specific configuration directory."""
    if platform.system() == "Windows":
        appdata = os.getenv("APPDATA")
        if not appdata:
            raise ConfigError("APPDATA environment variable not set")
        return Path(appdata) / "twinfinder"

    xdg_config = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg_config) if xdg_config else Path.home() / ".config"
    return base / "twinfinder"


def get_config_file() -> Path:
    """Get path to user configuration file."""
    return get_config_dir() / "twinfinder.toml"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load configuration merged over the defaults.

    Args:
        config_path: Explicit config file; must exist if given.
            Defaults to the user configuration file, if present.

    Returns:
        Configuration dictionary with every default section present

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    config = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}

    if config_path is None:
        config_path = get_config_file()
        if not config_path.exists():
            return config
    elif not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            user_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot load config {config_path}: {e}") from e

    for section, values in user_config.items():
        if section not in config:
            continue  # Unknown sections are ignored
        if not isinstance(values, dict):
            raise ConfigError(f"[{section}] must be a table")
        for key, value in values.items():
            if key in config[section]:
                config[section][key] = value

    return config


@dataclass
class Settings:
    """Application settings resolved from the configuration file."""

    workers: int = 8
    output_format: str = "text"
    log_directory: Optional[Path] = None

    @classmethod
    def from_config(cls, config: Dict[str, Dict[str, Any]]) -> "Settings":
        """Build settings from a loaded config, validating types."""
        workers = config["scan"]["workers"]
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise ConfigError("scan.workers must be a positive integer")

        output_format = config["output"]["format"]
        if output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"output.format must be one of {', '.join(OUTPUT_FORMATS)}"
            )

        directory = config["log"]["directory"]
        if not isinstance(directory, str):
            raise ConfigError("log.directory must be a string")

        return cls(
            workers=workers,
            output_format=output_format,
            log_directory=Path(directory).expanduser() if directory else None,
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load and validate settings."""
        return cls.from_config(load_config(config_path))
