"""
Configuration Schemas for Multimail.

Pydantic models describing the outbound transports and the worker pool.

Security:
    Passwords use SecretStr to prevent accidental logging of
    credentials. Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

DEFAULT_TEMPLATE = "default"

TimeUnit = Literal["nanoseconds", "microseconds", "milliseconds", "seconds", "minutes", "hours", "days"]

_UNIT_SECONDS: dict[str, float] = {
    "nanoseconds": 1e-9,
    "microseconds": 1e-6,
    "milliseconds": 1e-3,
    "seconds": 1.0,
    "minutes": 60.0,
    "hours": 3600.0,
    "days": 86400.0,
}


class TransportConfig(BaseModel):
    """
    One outbound mail transport.

    Immutable once loaded. `username` doubles as the sender address
    unless `from_address` is set.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1, description="SMTP server host")
    port: int | None = Field(None, ge=1, le=65535, description="SMTP server port")
    username: str | None = Field(None, description="Login user and default sender")
    password: SecretStr | None = Field(None, description="Login password")
    protocol: Literal["smtp", "smtps"] = Field("smtp", description="smtps = implicit TLS")
    default_encoding: str = Field("utf-8", description="Charset for message bodies")
    properties: dict[str, Any] = Field(default_factory=dict, description="Extra transport properties")
    from_address: str | None = Field(None, description="Sender override")

    @property
    def sender(self) -> str | None:
        """Address used in the From header."""
        return self.from_address or self.username

    @property
    def effective_port(self) -> int:
        """Configured port, or the protocol default."""
        if self.port is not None:
            return self.port
        return 465 if self.protocol == "smtps" else 25


class TemplateSettings(BaseModel):
    """A named transport, selectable with `use_template(template_name)`."""

    template_name: str = Field(..., min_length=1)
    mail_properties: TransportConfig


class WorkerPoolSettings(BaseModel):
    """Sizing for the bounded mail worker pool."""

    core_pool_size: int = Field(5, ge=0)
    maximum_pool_size: int = Field(50, ge=1)
    keep_alive_time: float = Field(10.0, ge=0)
    time_unit: TimeUnit = "seconds"
    capacity: int = Field(200, ge=1, description="Maximum number of queued jobs")

    @model_validator(mode="after")
    def _check_sizes(self) -> WorkerPoolSettings:
        if self.maximum_pool_size < self.core_pool_size:
            raise ValueError(
                f"maximum_pool_size ({self.maximum_pool_size}) must be >= "
                f"core_pool_size ({self.core_pool_size})"
            )
        return self

    @property
    def keep_alive_seconds(self) -> float:
        return self.keep_alive_time * _UNIT_SECONDS[self.time_unit]


class MailSettings(BaseModel):
    """
    Complete mail configuration.

    Example (YAML):
        multimail:
          mail:
            host: smtp.example.com
            port: 587
            username: noreply@example.com
            password: secret
            properties:
              starttls: true
          email_templates:
            - template_name: EmailOffice365
              mail_properties:
                host: smtp.office365.com
                port: 587
                username: office@example.com
          thread:
            core_pool_size: 5
            maximum_pool_size: 50
    """

    mail: TransportConfig
    email_templates: list[TemplateSettings] = Field(default_factory=list)
    thread: WorkerPoolSettings = Field(default_factory=WorkerPoolSettings)

    @field_validator("email_templates")
    @classmethod
    def _unique_names(cls, templates: list[TemplateSettings]) -> list[TemplateSettings]:
        seen: set[str] = set()
        for template in templates:
            if template.template_name in seen:
                raise ValueError(f"Duplicate template_name: {template.template_name}")
            seen.add(template.template_name)
        return templates
