"""
Loading and saving of the dashboard configuration.

The config lives in ~/.config/melodia/config.json. Environment variables
(or a .env file) override the paths and bucket, which is handy for
development against a local storage directory.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_DATA_DIR,
    CONFIG_FILENAME,
    DATABASE_FILENAME,
    MUSIC_BUCKET,
)
from shared.models import DashboardConfig, StorageProvider

logger = logging.getLogger(__name__)

load_dotenv()


class ConfigError(Exception):
    """Configuration missing or unreadable."""


def config_dir() -> Path:
    return Path(os.getenv("MELODIA_CONFIG_DIR", DEFAULT_CONFIG_DIR)).expanduser()


def config_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def default_config() -> DashboardConfig:
    """Local-storage config used when nothing has been set up yet."""
    data_dir = Path(DEFAULT_DATA_DIR).expanduser()
    return DashboardConfig(
        provider=StorageProvider.LOCAL,
        endpoint=str(data_dir / "storage"),
        bucket=MUSIC_BUCKET,
        database_path=str(data_dir / DATABASE_FILENAME),
    )


def _apply_env(config: DashboardConfig) -> DashboardConfig:
    if os.getenv("MELODIA_DB_PATH"):
        config.database_path = os.environ["MELODIA_DB_PATH"]
    if os.getenv("MELODIA_STORAGE_PATH") and config.provider == StorageProvider.LOCAL:
        config.endpoint = os.environ["MELODIA_STORAGE_PATH"]
    if os.getenv("MELODIA_BUCKET"):
        config.bucket = os.environ["MELODIA_BUCKET"]
    if os.getenv("MELODIA_PUBLIC_BASE_URL"):
        config.public_base_url = os.environ["MELODIA_PUBLIC_BASE_URL"]
    return config


def load_config(path: Optional[Path] = None, required: bool = False) -> DashboardConfig:
    """
    Load the configuration file.

    Args:
        path: Config file (default: ~/.config/melodia/config.json)
        required: Raise ConfigError instead of falling back to local defaults

    Raises:
        ConfigError: If the file is unreadable, or missing while required
    """
    path = path or config_path()
    if not path.exists():
        if required:
            raise ConfigError(f"Configuration not found at {path}. Run 'init' first.")
        logger.debug("No config at %s, using local defaults", path)
        return _apply_env(default_config())

    try:
        with open(path, 'r') as f:
            config = DashboardConfig.from_dict(json.load(f))
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ConfigError(f"Error loading config {path}: {e}") from e
    return _apply_env(config)


def save_config(config: DashboardConfig, path: Optional[Path] = None) -> Path:
    """Write the configuration, encrypting storage credentials."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        f.write(config.to_json())
    return path
