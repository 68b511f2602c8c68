"""
Transport Client Protocol for Multimail.

A transport client knows how to turn message fields into its native
message type and how to deliver that native message. Clients are built
once per configured transport and shared by every worker thread, so
`send` must be safe to call concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from ..config.schemas import TransportConfig


@dataclass(frozen=True, slots=True)
class OutboundAttachment:
    """
    An attachment ready to be added to a native message.

    Attributes:
        filename: Name shown to the recipient
        content: Raw bytes
        content_type: MIME type; guessed from the filename when None
    """

    filename: str
    content: bytes
    content_type: str | None = None


@runtime_checkable
class TransportClient(Protocol):
    """
    Outbound mail transport.

    Example implementations:
    - SMTPTransportClient (smtplib)
    - In-memory fakes for tests

    Example usage:
        client = SMTPTransportClient.from_config(config)
        native = client.build_message(
            sender="noreply@example.com",
            to="alice@example.com",
            subject="Hi",
            body="Hello",
        )
        client.send(native)
    """

    @property
    def config(self) -> TransportConfig:
        """Configuration this client was built from."""
        ...

    def build_message(
        self,
        *,
        sender: str | None,
        to: str,
        subject: str,
        body: str,
        cc: Sequence[str] | None = None,
        sent_date: datetime | None = None,
        html: bool = False,
        attachments: Sequence[OutboundAttachment] = (),
    ) -> Any:
        """
        Build a native message.

        Args:
            sender: From address
            to: Recipient address
            subject: Subject line
            body: Body text (HTML when `html` is True)
            cc: Carbon-copy addresses
            sent_date: Date header value; now when None
            html: Whether the body is HTML
            attachments: Attachments in the order they should appear

        Returns:
            Transport-native message object
        """
        ...

    def send(self, message: Any) -> None:
        """
        Deliver a native message.

        Raises:
            TransportError: If delivery fails
        """
        ...
