"""
Configuration sources.

Each source knows how to load a ChannelSyncSettings instance and how
to check it. The service picks a source explicitly at startup.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Protocol

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config import ChannelSyncSettings, get_settings
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigSource(Protocol):
    """Loads and validates service settings."""

    def load(self) -> ChannelSyncSettings:
        ...

    def validate(self, settings: ChannelSyncSettings) -> List[str]:
        ...


def validate_settings(settings: ChannelSyncSettings) -> List[str]:
    """
    Cross-field checks shared by every source.

    Returns:
        List of error messages, empty when the settings are usable.
    """
    errors = []

    collector = settings.collector
    if collector.retry_delay_ms >= collector.interval_ms and collector.retry_attempts:
        errors.append(
            f"collector.retry_delay_ms ({collector.retry_delay_ms}) must be "
            f"shorter than collector.interval_ms ({collector.interval_ms})"
        )

    if not settings.telemetry_api.base_url.startswith(("http://", "https://")):
        errors.append(f"telemetry_api.base_url is not an http(s) URL: {settings.telemetry_api.base_url}")

    for name in ("main_db", "feeds_db"):
        db = getattr(settings, name)
        if db.pool_min_size > db.pool_max_size:
            errors.append(f"{name}.pool_min_size is larger than {name}.pool_max_size")

    return errors


class EnvConfigSource:
    """Settings from environment variables and an optional .env file."""

    def load(self) -> ChannelSyncSettings:
        try:
            return get_settings()
        except PydanticValidationError as e:
            raise ConfigurationError(
                "Invalid environment configuration",
                errors=[err["msg"] for err in e.errors()],
            ) from e

    def validate(self, settings: ChannelSyncSettings) -> List[str]:
        return validate_settings(settings)


class YamlConfigSource:
    """
    Settings from a YAML file.

    The file mirrors the settings tree, e.g.::

        collector:
          interval_ms: 10000
        sync:
          batch_size: 500
        main_db:
          host: db.internal
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigurationError(f"Config file not found: {self.path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing YAML file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.path} must contain a mapping")
        return data

    def load(self) -> ChannelSyncSettings:
        data = self._read()
        try:
            settings = ChannelSyncSettings(**data)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {self.path}",
                errors=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            ) from e

        logger.info(f"Loaded configuration from {self.path}")
        return settings

    def validate(self, settings: ChannelSyncSettings) -> List[str]:
        return validate_settings(settings)


def load_settings(source: ConfigSource) -> ChannelSyncSettings:
    """
    Load settings from a source and reject them if validation fails.

    Raises:
        ConfigurationError: If loading fails or validation reports errors.
    """
    settings = source.load()
    errors = source.validate(settings)
    if errors:
        raise ConfigurationError("Configuration validation failed", errors=errors)
    return settings
