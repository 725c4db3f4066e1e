"""
Durable config record storage for Halcyon.

The config file is a small YAML document holding the hub address and the
credentials the setup flow acquires::

    ha:
      host: 192.168.1.10:8123
      device-id: 5b0c...
      long-lived-token: eyJ...
      webhook-id: 8a1f...

Fields are filled once and never overwritten by setup. Each fill is applied
to a full in-memory copy of the record and the whole record is written back
(truncate then write), so a crash between steps loses at most one step.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .exceptions import ConfigIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SECTION = "ha"

# Field name -> key in the YAML file
_FIELD_KEYS = {
    "host": "host",
    "long_lived_token": "long-lived-token",
    "device_id": "device-id",
    "webhook_id": "webhook-id",
}


@dataclass(frozen=True)
class ConfigRecord:
    """
    Persisted setup state.

    Attributes:
        host: Hub address (host[:port]), supplied by the operator
        device_id: Unique id of this machine, generated on first setup
        long_lived_token: Durable bearer credential issued by the hub
        webhook_id: Webhook id assigned by the hub on device registration
    """

    host: str
    device_id: Optional[str] = None
    long_lived_token: Optional[str] = None
    webhook_id: Optional[str] = None

    def to_dict(self) -> dict:
        """
        Convert to the YAML document layout.

        Absent optional fields are left out rather than written as null.

        Returns:
            Dictionary ready for yaml.safe_dump
        """
        section = {}
        for field_name, key in _FIELD_KEYS.items():
            value = getattr(self, field_name)
            if value is not None:
                section[key] = value
        return {SECTION: section}

    @classmethod
    def from_dict(cls, data: Any) -> "ConfigRecord":
        """
        Create a ConfigRecord from a parsed YAML document.

        Args:
            data: Parsed document (expects an ``ha`` mapping)

        Returns:
            ConfigRecord instance

        Raises:
            ConfigIOError: If the document does not have the expected shape
        """
        if not isinstance(data, dict) or not isinstance(data.get(SECTION), dict):
            raise ConfigIOError(f"Config must contain a '{SECTION}' mapping")

        section = data[SECTION]
        values = {}
        for field_name, key in _FIELD_KEYS.items():
            value = section.get(key)
            if value is not None and not isinstance(value, str):
                raise ConfigIOError(
                    f"Config field '{key}' must be a string, got {type(value).__name__}"
                )
            values[field_name] = value

        if not values["host"]:
            raise ConfigIOError("Config field 'host' is required")

        return cls(**values)


def with_device_id(record: ConfigRecord, device_id: str) -> ConfigRecord:
    """Return a copy of record with device_id filled if it was absent."""
    if record.device_id is not None:
        return record
    return replace(record, device_id=device_id)


def with_long_lived_token(record: ConfigRecord, token: str) -> ConfigRecord:
    """Return a copy of record with long_lived_token filled if it was absent."""
    if record.long_lived_token is not None:
        return record
    return replace(record, long_lived_token=token)


def with_webhook_id(record: ConfigRecord, webhook_id: str) -> ConfigRecord:
    """Return a copy of record with webhook_id filled if it was absent."""
    if record.webhook_id is not None:
        return record
    return replace(record, webhook_id=webhook_id)


def load(path: PathLike) -> ConfigRecord:
    """
    Load the config record from a YAML file.

    Args:
        path: Path to the config file

    Returns:
        ConfigRecord read from the file

    Raises:
        ConfigIOError: If the file cannot be read or parsed
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        logger.error(f"Invalid YAML in {config_path}: {e}")
        raise ConfigIOError(f"Invalid YAML in config file {config_path}: {e}") from e
    except (IOError, OSError) as e:
        logger.error(f"Could not read config file {config_path}: {e}")
        raise ConfigIOError(f"Could not read config file {config_path}: {e}") from e

    record = ConfigRecord.from_dict(data)
    logger.debug(f"Config loaded from {config_path}")
    return record


def save(record: ConfigRecord, path: PathLike) -> None:
    """
    Write the whole record to the config file, replacing its contents.

    Args:
        record: Record to persist
        path: Path to the config file

    Raises:
        ConfigIOError: If the file cannot be written
    """
    config_path = Path(path)
    try:
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(record.to_dict(), f, default_flow_style=False, sort_keys=False)
    except (IOError, OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to write config file {config_path}: {e}")
        raise ConfigIOError(f"Failed to write config file {config_path}: {e}") from e

    logger.debug(f"Config saved to {config_path}")


def _persist_if_changed(old: ConfigRecord, new: ConfigRecord, path: PathLike) -> ConfigRecord:
    if new is not old:
        save(new, path)
    return new


def ensure_device_id(record: ConfigRecord, path: PathLike) -> ConfigRecord:
    """
    Generate and persist a device id if the record has none.

    Args:
        record: Current record
        path: Path to the config file

    Returns:
        Record with a device id (the same object if one was already present)

    Raises:
        ConfigIOError: If persisting fails
    """
    if record.device_id is not None:
        return record

    logger.info("No device-id found in config, generating one")
    return _persist_if_changed(record, with_device_id(record, str(uuid.uuid4())), path)


def ensure_long_lived_token(record: ConfigRecord, path: PathLike, token: str) -> ConfigRecord:
    """
    Persist a long-lived token if the record has none.

    Raises:
        ConfigIOError: If persisting fails
    """
    new = with_long_lived_token(record, token)
    if new is not record:
        logger.info("Storing long-lived access token in config")
    return _persist_if_changed(record, new, path)


def ensure_webhook_id(record: ConfigRecord, path: PathLike, webhook_id: str) -> ConfigRecord:
    """
    Persist a webhook id if the record has none.

    Raises:
        ConfigIOError: If persisting fails
    """
    new = with_webhook_id(record, webhook_id)
    if new is not record:
        logger.info("Storing webhook-id in config")
    return _persist_if_changed(record, new, path)
