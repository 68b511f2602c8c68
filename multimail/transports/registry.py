"""
Template Registry for Multimail.

Maps a template identifier to a transport configuration and a
ready-to-use client. Clients are built eagerly at registration, once
per transport. The registry is sealed after startup and is then safe
for concurrent lookups from any thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from ..config.schemas import DEFAULT_TEMPLATE, TransportConfig
from ..errors import UnknownTemplateError
from .smtp import SMTPTransportClient

if TYPE_CHECKING:
    from ..config.schemas import MailSettings
    from .protocol import TransportClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[TransportConfig], "TransportClient"]


@dataclass(frozen=True, slots=True)
class TemplateEntry:
    """
    A registered transport.

    Attributes:
        identifier: Template identifier
        config: Transport configuration
        client: Client built from `config`
    """

    identifier: str
    config: TransportConfig
    client: TransportClient


class TemplateRegistry:
    """
    Registry of mail templates.

    The default template is always present. Named templates are added
    at startup, then the registry is sealed.

    Example:
        # At app startup
        registry = TemplateRegistry(default_config)
        registry.register("EmailOffice365", office_config)
        registry.seal()

        # In dispatch code
        entry = registry.resolve("EmailOffice365")
        entry.client.send(native_message)
    """

    def __init__(
        self,
        default_config: TransportConfig,
        client_factory: ClientFactory = SMTPTransportClient.from_config,
    ) -> None:
        """
        Initialize registry with the default transport.

        Args:
            default_config: Process-wide default transport settings
            client_factory: Builds a client from a transport config
        """
        if default_config is None:
            raise ValueError("A default transport config is required")
        self._client_factory = client_factory
        self._entries: dict[str, TemplateEntry] = {}
        self._sealed = False
        self._entries[DEFAULT_TEMPLATE] = self._build(DEFAULT_TEMPLATE, default_config)

    @classmethod
    def from_settings(
        cls,
        settings: MailSettings,
        client_factory: ClientFactory = SMTPTransportClient.from_config,
    ) -> TemplateRegistry:
        """
        Build and seal a registry from settings.

        The default entry comes from `settings.mail`; each entry of
        `settings.email_templates` is registered under its name.
        """
        registry = cls(settings.mail, client_factory=client_factory)
        for template in settings.email_templates:
            registry.register(template.template_name, template.mail_properties)
        registry.seal()
        return registry

    def _build(self, identifier: str, config: TransportConfig) -> TemplateEntry:
        client = self._client_factory(config)
        logger.info(
            f"Loaded mail transport client: template '{identifier}', "
            f"host '{config.host}'"
        )
        return TemplateEntry(identifier=identifier, config=config, client=client)

    def register(self, identifier: str, config: TransportConfig) -> TemplateEntry:
        """
        Register a named transport.

        Args:
            identifier: Template identifier
            config: Transport configuration

        Returns:
            The new entry

        Raises:
            ValueError: If identifier is blank or config is None
            RuntimeError: If the registry has been sealed
        """
        if self._sealed:
            raise RuntimeError("Template registry is sealed; register transports at startup")
        if not identifier or not identifier.strip():
            raise ValueError("Template identifier must not be blank")
        if config is None:
            raise ValueError(f"Template '{identifier}' has no transport config")

        if identifier in self._entries:
            logger.warning(f"Replacing existing mail template: {identifier}")
        entry = self._build(identifier, config)
        self._entries[identifier] = entry
        return entry

    def resolve(self, identifier: str) -> TemplateEntry:
        """
        Look up a template.

        Raises:
            UnknownTemplateError: If the identifier is not registered
        """
        entry = self._entries.get(identifier)
        if entry is None:
            raise UnknownTemplateError(identifier, self.identifiers)
        return entry

    @property
    def default(self) -> TemplateEntry:
        """The process-wide default transport."""
        return self._entries[DEFAULT_TEMPLATE]

    def has(self, identifier: str) -> bool:
        return identifier in self._entries

    @property
    def identifiers(self) -> list[str]:
        return list(self._entries.keys())

    def seal(self) -> None:
        """Forbid further registration."""
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TemplateRegistry(templates=[{', '.join(self._entries)}], sealed={self._sealed})"


# Global registry instance (installed at app startup, replaced in tests)
_registry: TemplateRegistry | None = None


def get_template_registry() -> TemplateRegistry:
    """
    Get the global template registry.

    Raises:
        RuntimeError: If no registry has been installed
    """
    if _registry is None:
        raise RuntimeError(
            "No template registry installed; call set_template_registry() at startup"
        )
    return _registry


def set_template_registry(registry: TemplateRegistry) -> None:
    """Install the global template registry."""
    global _registry
    _registry = registry


def reset_template_registry() -> None:
    """Remove the global template registry (for testing)."""
    global _registry
    _registry = None
