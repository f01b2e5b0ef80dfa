"""
Configuration loading for tagsync.

Settings come from a YAML file mapped onto dataclasses; values in the
environment (or a ``.env`` file) take precedence over the file.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import dacite
import yaml
from dotenv import load_dotenv

from tagsync.constants import (
    DEFAULT_API_URL,
    DEFAULT_KEYWORDS_PATH,
    DEFAULT_TIMEOUT,
)
from tagsync.util.helpers import FileSystem

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """The configuration file or environment holds an invalid value."""


class SignOutPolicy(str, Enum):
    """What happens to the cached keywords when the user signs out."""

    RETAIN = "retain"  # Keep keywords cached locally
    CLEAR = "clear"  # Remove every keyword and persist the empty set


@dataclass
class LoggingConfig:
    level: str = "INFO"
    console_level: str = "INFO"
    file_level: str = "DEBUG"
    format: str = "%(asctime)s %(levelname)s [%(filename)s:%(lineno)d] %(message)s"
    directory: str = ".logs"


@dataclass
class StoreConfig:
    path: str = field(
        default_factory=lambda: os.path.join(
            FileSystem.get_data_directory(), "keywords", "skills.enc"
        )
    )
    key_file: Optional[str] = None
    key: Optional[str] = None


@dataclass
class GatewayConfig:
    base_url: str = DEFAULT_API_URL
    keywords_path: str = DEFAULT_KEYWORDS_PATH
    timeout: float = DEFAULT_TIMEOUT
    token: Optional[str] = None


@dataclass
class ReconcilerConfig:
    sign_out_policy: SignOutPolicy = SignOutPolicy.RETAIN


@dataclass
class Settings:
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)


# Environment variable -> (section, option)
ENV_OVERRIDES = {
    "LOG_LEVEL": ("logging", "level"),
    "TAGSYNC_STORE_PATH": ("store", "path"),
    "TAGSYNC_STORE_KEY": ("store", "key"),
    "TAGSYNC_API_URL": ("gateway", "base_url"),
    "TAGSYNC_API_TOKEN": ("gateway", "token"),
    "TAGSYNC_SIGN_OUT_POLICY": ("reconciler", "sign_out_policy"),
}


def _apply_env_overrides(data: dict) -> dict:
    for env_name, (section, option) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            section_data = data.get(section) or {}
            section_data[option] = value
            data[section] = section_data
    return data


def settings_from_dict(data: dict) -> Settings:
    """
    Build Settings from a plain dictionary, validating option names and types.
    """
    try:
        settings = dacite.from_dict(
            data_class=Settings,
            data=data,
            config=dacite.Config(
                cast=[SignOutPolicy],
                type_hooks={float: float},
                strict=True,
            ),
        )
    except dacite.DaciteError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    except ValueError as e:
        # Raised by the enum cast for unknown values
        raise ConfigurationError(f"Invalid configuration value: {e}") from e

    if settings.gateway.timeout <= 0:
        raise ConfigurationError("gateway.timeout must be greater than zero")
    for option in ("level", "console_level", "file_level"):
        value = getattr(settings.logging, option).upper()
        # getLevelName maps known names to their numeric level
        if not isinstance(logging.getLevelName(value), int):
            raise ConfigurationError(f"Unknown log level for logging.{option}: {value}")
        setattr(settings.logging, option, value)
    return settings


def load_settings(
    config_path: Optional[Union[str, Path]] = None, use_env: bool = True
) -> Settings:
    """
    Load settings from a YAML file, applying environment overrides.

    Without an explicit path the default settings file is used when present,
    otherwise built-in defaults apply. An explicit path that does not exist is
    an error.
    """
    if use_env:
        load_dotenv()

    if config_path is None:
        default_path = Path(FileSystem.get_config_directory()) / "configuration.yaml"
        path = default_path if default_path.exists() else None
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

    data: dict = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing configuration file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        logger.debug(f"Loaded configuration from {path}")

    if use_env:
        data = _apply_env_overrides(data)

    return settings_from_dict(data)
