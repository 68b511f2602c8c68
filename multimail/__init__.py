"""
Multimail - send mail through several independently configured transports.

Each call site picks its transport with a declarative marker instead of
passing a transport through every signature:

- **Template Registry**: identifier -> transport config + ready client
- **Template Selector**: `use_template` binds a transport for one call
- **Mail Dispatcher**: validates, builds and sends on a bounded worker pool

Quick Start:
    >>> from multimail import (
    ...     MailContext, MailDispatcher, BoundedThreadPool, SimpleMessage,
    ...     TemplateRegistry, load_settings, set_template_registry, use_template,
    ... )
    >>>
    >>> settings = load_settings("mail.yaml")
    >>> registry = TemplateRegistry.from_settings(settings)
    >>> set_template_registry(registry)
    >>> dispatcher = MailDispatcher(registry, BoundedThreadPool.from_settings(settings.thread))
    >>>
    >>> @use_template("EmailOffice365")
    ... async def notify(ctx: MailContext) -> None:
    ...     await dispatcher.send_simple(message, ctx=ctx)
"""

__version__ = "0.1.0"
__license__ = "MIT"

from multimail.config import (
    DEFAULT_TEMPLATE,
    MailSettings,
    TemplateSettings,
    TransportConfig,
    WorkerPoolSettings,
    load_settings,
    settings_from_env,
)
from multimail.context import ActiveTransportBinding, MailContext
from multimail.dispatch import DispatchResult, MailDispatcher
from multimail.errors import (
    ConfigurationError,
    DispatchInterruptedError,
    MailError,
    MessageValidationError,
    PoolSaturationError,
    TransportError,
    UnknownTemplateError,
)
from multimail.messages import RichMessage, SimpleMessage, UploadedFile
from multimail.selector import template_scope, use_template
from multimail.transports import (
    SMTPTransportClient,
    TemplateRegistry,
    TransportClient,
    get_template_registry,
    reset_template_registry,
    set_template_registry,
)
from multimail.workers import BoundedThreadPool

__all__ = [
    "__version__",
    "__license__",
    # Configuration
    "DEFAULT_TEMPLATE",
    "MailSettings",
    "TemplateSettings",
    "TransportConfig",
    "WorkerPoolSettings",
    "load_settings",
    "settings_from_env",
    # Context and selection
    "ActiveTransportBinding",
    "MailContext",
    "template_scope",
    "use_template",
    # Messages
    "RichMessage",
    "SimpleMessage",
    "UploadedFile",
    # Transports
    "SMTPTransportClient",
    "TemplateRegistry",
    "TransportClient",
    "get_template_registry",
    "reset_template_registry",
    "set_template_registry",
    # Dispatch
    "BoundedThreadPool",
    "DispatchResult",
    "MailDispatcher",
    # Errors
    "ConfigurationError",
    "DispatchInterruptedError",
    "MailError",
    "MessageValidationError",
    "PoolSaturationError",
    "TransportError",
    "UnknownTemplateError",
]
