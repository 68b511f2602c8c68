"""
Dependency Injection for the Multimail demo app.

Provides singleton instances of the settings, template registry,
worker pool and dispatcher, plus the per-request MailContext.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Request

from multimail.config import MailSettings, settings_from_env
from multimail.context import MailContext
from multimail.dispatch import MailDispatcher
from multimail.transports import (
    SMTPTransportClient,
    TemplateRegistry,
    reset_template_registry,
    set_template_registry,
)
from multimail.transports.registry import ClientFactory
from multimail.workers import BoundedThreadPool

logger = logging.getLogger(__name__)


@lru_cache()
def get_settings() -> MailSettings:
    """
    Get mail settings from the environment.

    Uses lru_cache for singleton pattern.
    """
    return settings_from_env()


# Global instances (initialized at startup)
_dispatcher: Optional[MailDispatcher] = None


def initialize_services(
    settings: MailSettings | None = None,
    client_factory: ClientFactory = SMTPTransportClient.from_config,
) -> MailDispatcher:
    """
    Build the registry, pool and dispatcher.

    Called from the FastAPI lifespan. A no-op when services are already
    initialized, so tests can install their own beforehand.
    """
    global _dispatcher
    if _dispatcher is not None:
        return _dispatcher

    settings = settings or get_settings()
    registry = TemplateRegistry.from_settings(settings, client_factory=client_factory)
    set_template_registry(registry)
    pool = BoundedThreadPool.from_settings(settings.thread)
    _dispatcher = MailDispatcher(registry, pool)

    logger.info(f"Mail services initialized: templates={registry.identifiers}, pool={pool!r}")
    return _dispatcher


def shutdown_services() -> None:
    """
    Stop the worker pool and drop the registry.

    Called from FastAPI lifespan.
    """
    global _dispatcher
    if _dispatcher is not None:
        _dispatcher.close()
        _dispatcher = None
    reset_template_registry()


def get_dispatcher() -> MailDispatcher:
    """FastAPI dependency returning the dispatcher."""
    if _dispatcher is None:
        raise RuntimeError("Mail services are not initialized")
    return _dispatcher


def get_mail_context(request: Request) -> MailContext:
    """FastAPI dependency creating the per-request MailContext."""
    return MailContext(
        request_id=getattr(request.state, "request_id", None),
        attributes={"method": request.method, "path": request.url.path},
    )
