"""
Multimail Configuration

Transport and worker pool settings, loaded from files or the environment.
"""

from .loader import load_settings, parse_settings, settings_from_env
from .schemas import (
    DEFAULT_TEMPLATE,
    MailSettings,
    TemplateSettings,
    TransportConfig,
    WorkerPoolSettings,
)

__all__ = [
    "DEFAULT_TEMPLATE",
    "MailSettings",
    "TemplateSettings",
    "TransportConfig",
    "WorkerPoolSettings",
    "load_settings",
    "parse_settings",
    "settings_from_env",
]
