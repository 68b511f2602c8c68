"""
Mail Context for Multimail.

The context is created per logical call (one HTTP request, one job)
and passed explicitly down the call chain. It holds the transport
bindings published by `use_template` markers and any caller-side
request data that must travel with a send onto a worker thread.

Nothing here is global or thread-local: concurrent calls each own
their context, so their bindings can never be observed by each other.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from .config.schemas import TransportConfig
    from .transports.protocol import TransportClient
    from .transports.registry import TemplateEntry


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ActiveTransportBinding:
    """
    The transport selected for the current marked call.

    Attributes:
        identifier: Template identifier the binding was resolved from
        client: Transport client to send with
        config: Transport configuration (sender identity, host, ...)
    """

    identifier: str
    client: TransportClient
    config: TransportConfig

    @classmethod
    def from_entry(cls, entry: TemplateEntry) -> ActiveTransportBinding:
        return cls(identifier=entry.identifier, client=entry.client, config=entry.config)


@dataclass
class MailContext:
    """
    Call-scoped context passed to dispatch operations.

    Provides:
    - Unique execution ID for tracing
    - Caller request data (request id, free-form attributes)
    - The stack of transport bindings; the innermost one is active

    Example:
        ctx = MailContext(request_id="abc-123")

        @use_template("EmailOffice365")
        async def notify(ctx: MailContext) -> None:
            await dispatcher.send_simple(message, ctx=ctx)

        await notify(ctx)
    """

    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)

    request_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    _bindings: list[tuple[object, ActiveTransportBinding]] = field(default_factory=list, repr=False)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    @property
    def active_binding(self) -> ActiveTransportBinding | None:
        """Innermost binding, or None when no marked call is in progress."""
        if not self._bindings:
            return None
        return self._bindings[-1][1]

    @property
    def binding_depth(self) -> int:
        return len(self._bindings)

    def bind(self, binding: ActiveTransportBinding) -> object:
        """
        Publish a binding for a nested call.

        Returns:
            Token to pass to `unbind`
        """
        token = object()
        self._bindings.append((token, binding))
        return token

    def unbind(self, token: object) -> bool:
        """
        Remove the binding published with `token`.

        Returns:
            True if removed, False if the token was already released
        """
        for index in range(len(self._bindings) - 1, -1, -1):
            if self._bindings[index][0] is token:
                del self._bindings[index]
                return True
        return False

    def copy(self) -> MailContext:
        """
        Create an isolated copy for background execution.

        Shares immutable bindings but copies the mutable containers, so
        the worker cannot disturb the caller's binding stack.
        """
        return MailContext(
            execution_id=self.execution_id,
            started_at=self.started_at,
            request_id=self.request_id,
            attributes=copy.copy(self.attributes),
            _bindings=list(self._bindings),
        )

    def to_log_dict(self) -> dict[str, Any]:
        """Fields worth attaching to log records."""
        active = self.active_binding
        return {
            "execution_id": str(self.execution_id),
            "request_id": self.request_id,
            "template": active.identifier if active else None,
        }
