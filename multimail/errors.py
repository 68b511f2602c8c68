"""
Error taxonomy for Multimail.

Every failure surfaced by the dispatch path is one of these types.
None of them is retried automatically; retry is the caller's decision.
"""

from __future__ import annotations

from typing import Any


class MailError(Exception):
    """Base class for all Multimail errors."""


class ConfigurationError(MailError):
    """Raised when mail settings cannot be loaded or are inconsistent."""


class MessageValidationError(MailError):
    """
    Raised when a message is malformed or missing required fields.

    Raised before any transport interaction takes place.

    Attributes:
        errors: Field-level error details (pydantic-style dicts)
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc: Any, model_name: str) -> MessageValidationError:
        """Build from a pydantic ``ValidationError``."""
        errors = [
            {
                "loc": list(err.get("loc", ())),
                "msg": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        fields = ", ".join(".".join(str(p) for p in e["loc"]) or "<root>" for e in errors)
        return cls(f"Invalid {model_name}: {fields}", errors)


class UnknownTemplateError(MailError, LookupError):
    """
    Raised when a template identifier is not present in the registry.

    Attributes:
        identifier: The identifier that was looked up
        available: Identifiers that are registered
    """

    def __init__(self, identifier: str, available: list[str] | None = None):
        self.identifier = identifier
        self.available = available or []
        listed = ", ".join(self.available) or "(none)"
        super().__init__(
            f"No mail template registered for identifier: {identifier}. "
            f"Available: {listed}"
        )


class TransportError(MailError):
    """
    Raised when the underlying send operation fails.

    Covers network, authentication and protocol failures. The original
    exception is chained as ``__cause__``.

    Attributes:
        template: Template identifier of the transport that failed
    """

    def __init__(self, message: str, template: str | None = None):
        self.template = template
        super().__init__(message)


class PoolSaturationError(MailError):
    """
    Raised when the worker pool rejects a submission.

    The pool is at its maximum thread count and its queue is full.
    Nothing was queued and nothing was sent.
    """

    def __init__(self, maximum_pool_size: int, queue_capacity: int):
        self.maximum_pool_size = maximum_pool_size
        self.queue_capacity = queue_capacity
        super().__init__(
            f"Mail worker pool saturated: {maximum_pool_size} threads busy "
            f"and {queue_capacity} queued jobs"
        )


class DispatchInterruptedError(MailError):
    """
    Raised when the wait for a submitted send is abandoned.

    The outcome of the send is unknown: the transport call may already
    be in flight and cannot be recalled.
    """

    def __init__(self, message: str, template: str | None = None):
        self.template = template
        super().__init__(message)
