"""
Multimail Transport Layer.

Core Components:
- TransportClient: Protocol for building and delivering native messages
- SMTPTransportClient: smtplib-based implementation
- TemplateRegistry: identifier -> (config, client) lookup

Usage:
    from multimail.transports import TemplateRegistry, set_template_registry

    registry = TemplateRegistry.from_settings(settings)
    set_template_registry(registry)

    entry = registry.resolve("EmailOffice365")
"""

from .protocol import OutboundAttachment, TransportClient
from .registry import (
    TemplateEntry,
    TemplateRegistry,
    get_template_registry,
    reset_template_registry,
    set_template_registry,
)
from .smtp import SMTPTransportClient

__all__ = [
    "OutboundAttachment",
    "SMTPTransportClient",
    "TemplateEntry",
    "TemplateRegistry",
    "TransportClient",
    "get_template_registry",
    "reset_template_registry",
    "set_template_registry",
]
