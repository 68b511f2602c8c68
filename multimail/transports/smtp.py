"""
SMTP Transport Client for Multimail.

Builds `email.message.EmailMessage` objects and delivers them with
smtplib. A new connection is opened for every send, so one client can
serve many worker threads at once.
"""

from __future__ import annotations

import logging
import mimetypes
import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage
from email.utils import format_datetime, make_msgid
from typing import Any, Sequence

from ..config.schemas import TransportConfig
from ..errors import TransportError
from .protocol import OutboundAttachment

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _split_mime(attachment: OutboundAttachment) -> tuple[str, str]:
    content_type = attachment.content_type
    if not content_type or "/" not in content_type:
        content_type, _ = mimetypes.guess_type(attachment.filename)
    if not content_type:
        content_type = "application/octet-stream"
    maintype, subtype = content_type.split("/", 1)
    return maintype, subtype


class SMTPTransportClient:
    """
    SMTP transport client.

    Handles:
    - Plain SMTP with optional STARTTLS (`properties: {starttls: true}`)
    - Implicit TLS (`protocol: smtps`)
    - Login when both username and password are configured

    Example:
        client = SMTPTransportClient(TransportConfig(host="smtp.example.com", port=587))
        msg = client.build_message(sender="a@example.com", to="b@example.com",
                                   subject="Hi", body="Hello")
        client.send(msg)
    """

    def __init__(self, config: TransportConfig):
        """
        Initialize SMTP client.

        Args:
            config: Transport configuration
        """
        self._config = config
        self._timeout = float(config.properties.get("timeout", 30.0))
        self._starttls = _as_bool(config.properties.get("starttls", False))
        self._local_hostname = config.properties.get("local_hostname")

    @classmethod
    def from_config(cls, config: TransportConfig) -> SMTPTransportClient:
        return cls(config)

    @property
    def config(self) -> TransportConfig:
        return self._config

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
    ) -> EmailMessage:
        """
        Build a native message.

        The Date header has whole-second precision. A naive `sent_date` is
        taken as local time and written with the local UTC offset, so the
        header reads back as an aware datetime whose wall-clock value equals
        the original truncated to the second. An aware `sent_date` reads back
        equal to the original truncated to the second. No `sent_date` means now.
        """
        msg = EmailMessage()
        if sender:
            msg["From"] = sender
        msg["To"] = to
        if cc:
            msg["Cc"] = ", ".join(cc)
        when = sent_date or datetime.now()
        if when.tzinfo is None:
            when = when.astimezone()
        msg["Date"] = format_datetime(when)
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(
            body,
            subtype="html" if html else "plain",
            charset=self._config.default_encoding,
        )
        for attachment in attachments:
            maintype, subtype = _split_mime(attachment)
            msg.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )
        return msg

    def _connect(self) -> smtplib.SMTP:
        host = self._config.host
        port = self._config.effective_port
        if self._config.protocol == "smtps":
            return smtplib.SMTP_SSL(
                host,
                port,
                local_hostname=self._local_hostname,
                timeout=self._timeout,
                context=ssl.create_default_context(),
            )
        return smtplib.SMTP(host, port, local_hostname=self._local_hostname, timeout=self._timeout)

    def send(self, message: EmailMessage) -> None:
        host = self._config.host
        try:
            with self._connect() as smtp:
                if self._starttls:
                    smtp.starttls(context=ssl.create_default_context())
                if self._config.username and self._config.password is not None:
                    smtp.login(self._config.username, self._config.password.get_secret_value())
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send via {host} failed: {e}")
            raise TransportError(f"SMTP send via {host} failed: {e}") from e

        logger.debug(f"SMTP message {message.get('Message-ID')} accepted by {host}")

    def __repr__(self) -> str:
        return (
            f"SMTPTransportClient(host={self._config.host!r}, "
            f"port={self._config.effective_port}, protocol={self._config.protocol!r})"
        )
