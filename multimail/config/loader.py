"""
Settings loaders for Multimail.

Two sources are supported:
- Files: YAML or JSON, optionally nested under a top-level `multimail` key
- Environment: MULTIMAIL_* variables for the default transport and pool

Usage:
    settings = load_settings("config/mail.yaml")
    settings = settings_from_env()
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import MailSettings

logger = logging.getLogger(__name__)

ENV_PREFIX = "MULTIMAIL_"
ROOT_KEY = "multimail"


def _read_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def parse_settings(data: Mapping[str, Any]) -> MailSettings:
    """
    Validate a raw mapping into MailSettings.

    Raises:
        ConfigurationError: If the mapping does not describe valid settings
    """
    if ROOT_KEY in data and isinstance(data[ROOT_KEY], Mapping):
        data = data[ROOT_KEY]
    try:
        return MailSettings.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid mail settings: {e}") from e


def load_settings(path: str | Path) -> MailSettings:
    """
    Load settings from a YAML (.yaml/.yml) or JSON (.json) file.

    Args:
        path: Settings file path

    Returns:
        Validated MailSettings

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Mail settings file not found: {path}")

    try:
        data = _read_file(path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot parse mail settings file {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Mail settings file {path} must contain a mapping")

    settings = parse_settings(data)
    logger.info(
        f"Loaded mail settings from {path}: "
        f"default host={settings.mail.host}, templates={len(settings.email_templates)}"
    )
    return settings


def settings_from_env(environ: Mapping[str, str] | None = None) -> MailSettings:
    """
    Build settings from MULTIMAIL_* environment variables.

    If MULTIMAIL_CONFIG_FILE is set the file is loaded instead and the
    remaining variables are ignored.

    Recognised variables:
        MULTIMAIL_HOST, MULTIMAIL_PORT, MULTIMAIL_USERNAME, MULTIMAIL_PASSWORD,
        MULTIMAIL_PROTOCOL, MULTIMAIL_DEFAULT_ENCODING, MULTIMAIL_STARTTLS,
        MULTIMAIL_FROM_ADDRESS, MULTIMAIL_POOL_CORE_SIZE, MULTIMAIL_POOL_MAX_SIZE,
        MULTIMAIL_POOL_KEEP_ALIVE, MULTIMAIL_POOL_CAPACITY
    """
    env = os.environ if environ is None else environ

    def get(name: str, default: str | None = None) -> str | None:
        return env.get(f"{ENV_PREFIX}{name}", default)

    config_file = get("CONFIG_FILE")
    if config_file:
        return load_settings(config_file)

    mail: dict[str, Any] = {
        "host": get("HOST", "localhost"),
        "username": get("USERNAME"),
        "password": get("PASSWORD"),
        "protocol": get("PROTOCOL", "smtp"),
        "default_encoding": get("DEFAULT_ENCODING", "utf-8"),
        "from_address": get("FROM_ADDRESS"),
        "properties": {},
    }
    if get("PORT"):
        mail["port"] = get("PORT")
    if get("STARTTLS"):
        mail["properties"]["starttls"] = get("STARTTLS")

    thread: dict[str, Any] = {}
    for key, name in (
        ("core_pool_size", "POOL_CORE_SIZE"),
        ("maximum_pool_size", "POOL_MAX_SIZE"),
        ("keep_alive_time", "POOL_KEEP_ALIVE"),
        ("capacity", "POOL_CAPACITY"),
    ):
        value = get(name)
        if value:
            thread[key] = value

    return parse_settings({"mail": mail, "thread": thread})
