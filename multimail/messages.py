"""
Outbound message models for Multimail.

SimpleMessage carries plain text. RichMessage carries a body that may be
HTML plus an optional attachment read from the filesystem; an uploaded
blob can be passed alongside it at dispatch time.

Both are immutable and re-validated whenever they are passed to the
dispatcher, so an invalid message never reaches a transport.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^([A-Za-z0-9_\-\.])+@([A-Za-z0-9_\-\.])+\.([A-Za-z]{2,4})$")

SENT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def is_valid_address(value: str) -> bool:
    """Check an address against the accepted recipient pattern."""
    return bool(EMAIL_PATTERN.match(value))


class _MessageBase(BaseModel):
    model_config = ConfigDict(frozen=True, revalidate_instances="always", str_strip_whitespace=False)

    to: str = Field(..., description="Recipient address")
    cc: list[str] | None = Field(None, description="Carbon-copy addresses")
    sent_date: datetime | None = Field(None, description="Defaults to time of dispatch")
    subject: str = Field(..., description="Subject line")
    text: str = Field(..., description="Message body")

    @field_validator("to")
    @classmethod
    def _check_recipient(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("recipient address must not be blank")
        if not is_valid_address(value):
            raise ValueError("recipient address is not a valid email address")
        return value

    @field_validator("subject", "text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("cc", mode="before")
    @classmethod
    def _split_cc(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",")]
        if isinstance(value, (list, tuple)):
            return [addr for addr in value if addr] or None
        return value

    @field_validator("sent_date", mode="before")
    @classmethod
    def _parse_sent_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            try:
                return datetime.strptime(value, SENT_DATE_FORMAT)
            except ValueError:
                return value  # let pydantic try ISO 8601
        return value

    @property
    def recipients(self) -> list[str]:
        """All addressees: `to` followed by `cc`."""
        return [self.to, *(self.cc or [])]


class SimpleMessage(_MessageBase):
    """A plain-text message."""


class RichMessage(_MessageBase):
    """
    A message whose body may be HTML, with optional attachments.

    `filepath` names a file on the local filesystem; it is attached
    under its base name.
    """

    filepath: str | None = Field(None, description="Path of a file to attach")

    @field_validator("filepath")
    @classmethod
    def _blank_path_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """
    An uploaded binary blob to attach to a RichMessage.

    Attributes:
        filename: Original file name, including suffix
        content: Raw bytes
        content_type: MIME type reported by the uploader (optional)
    """

    filename: str | None
    content: bytes
    content_type: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.content

    @property
    def size(self) -> int:
        return len(self.content)
