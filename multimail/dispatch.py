"""
Mail Dispatcher for Multimail.

Validates a message, resolves the transport bound on the caller's
MailContext (or the default one), builds the native message, and hands
the blocking send to the bounded worker pool. The caller awaits the
worker's result; transport failures come back as TransportError.

The worker runs inside a snapshot of the caller's contextvars, so the
log context (request id, template, execution id) follows the send onto
the worker thread.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from .context import ActiveTransportBinding, MailContext
from .errors import (
    DispatchInterruptedError,
    MessageValidationError,
    PoolSaturationError,
    TransportError,
)
from .messages import RichMessage, SimpleMessage, UploadedFile
from .observability import log_context
from .transports.protocol import OutboundAttachment

if TYPE_CHECKING:
    from .transports.registry import TemplateRegistry
    from .workers import BoundedThreadPool

logger = logging.getLogger(__name__)

M = TypeVar("M", SimpleMessage, RichMessage)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """
    Outcome of a successful dispatch.

    Attributes:
        template: Template identifier of the transport used
        recipients: To and Cc addresses
        execution_id: Execution ID of the dispatching context
        duration_ms: Time from submission to completion
        attachment_count: Number of attachments sent
    """

    template: str
    recipients: tuple[str, ...]
    execution_id: UUID
    duration_ms: float
    attachment_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "template": self.template,
            "recipients": list(self.recipients),
            "execution_id": str(self.execution_id),
            "duration_ms": self.duration_ms,
            "attachment_count": self.attachment_count,
        }


def _validate(model: type[M], message: Any) -> M:
    """Validate `message` (model instance or mapping) as `model`."""
    try:
        if isinstance(message, BaseModel) and not isinstance(message, model):
            message = message.model_dump()
        return model.model_validate(message)
    except ValidationError as e:
        raise MessageValidationError.from_pydantic(e, model.__name__) from e


class MailDispatcher:
    """
    Sends messages through the transport selected for the current call.

    Example:
        dispatcher = MailDispatcher(registry, pool)

        # Default transport
        await dispatcher.send_simple(SimpleMessage(to="a@example.com", subject="Hi", text="..."))

        # Transport chosen by a marker
        @use_template("EmailOffice365")
        async def notify(ctx: MailContext) -> None:
            await dispatcher.send_rich(message, attachment=upload, ctx=ctx)
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        pool: BoundedThreadPool,
        *,
        timeout: float | None = None,
    ):
        """
        Initialize dispatcher.

        Args:
            registry: Template registry (provides the default transport)
            pool: Worker pool that runs the blocking sends
            timeout: Default maximum wait per send, None waits indefinitely
        """
        self._registry = registry
        self._pool = pool
        self._timeout = timeout

    @property
    def registry(self) -> TemplateRegistry:
        return self._registry

    @property
    def pool(self) -> BoundedThreadPool:
        return self._pool

    # ==================== Public operations ====================

    async def send_simple(
        self,
        message: SimpleMessage | Mapping[str, Any],
        ctx: MailContext | None = None,
        *,
        timeout: float | None = None,
    ) -> DispatchResult:
        """
        Send a plain-text message.

        Args:
            message: SimpleMessage or an equivalent mapping
            ctx: Call context carrying the active transport binding
            timeout: Maximum wait, overriding the dispatcher default

        Raises:
            MessageValidationError: Invalid message, nothing was sent
            PoolSaturationError: Worker pool rejected the job, nothing was sent
            TransportError: The transport failed to deliver
            DispatchInterruptedError: Wait timed out, outcome unknown
            asyncio.CancelledError: Caller was cancelled, outcome unknown
        """
        simple = _validate(SimpleMessage, message)
        binding = self.resolve_transport(ctx)
        native = binding.client.build_message(
            sender=binding.config.sender,
            to=simple.to,
            cc=simple.cc,
            subject=simple.subject,
            body=simple.text,
            sent_date=simple.sent_date,
            html=False,
        )
        return await self._dispatch(binding, native, simple.recipients, ctx, "simple", 0, timeout)

    async def send_rich(
        self,
        message: RichMessage | Mapping[str, Any],
        attachment: UploadedFile | None = None,
        ctx: MailContext | None = None,
        *,
        timeout: float | None = None,
    ) -> DispatchResult:
        """
        Send a message with an HTML-capable body and attachments.

        The uploaded blob (when non-empty) is attached under its file
        name and the file at `message.filepath` under its base name;
        both are attached when both are given.

        Raises:
            Same as `send_simple`.
        """
        rich = _validate(RichMessage, message)
        # Filesystem access stays off the event loop
        loop = asyncio.get_running_loop()
        attachments = await loop.run_in_executor(None, self._collect_attachments, rich, attachment)
        binding = self.resolve_transport(ctx)
        native = binding.client.build_message(
            sender=binding.config.sender,
            to=rich.to,
            cc=rich.cc,
            subject=rich.subject,
            body=rich.text,
            sent_date=rich.sent_date,
            html=True,
            attachments=attachments,
        )
        return await self._dispatch(
            binding, native, rich.recipients, ctx, "rich", len(attachments), timeout
        )

    def resolve_transport(self, ctx: MailContext | None) -> ActiveTransportBinding:
        """Innermost binding on `ctx`, else the registry default."""
        binding = ctx.active_binding if ctx is not None else None
        if binding is None:
            return ActiveTransportBinding.from_entry(self._registry.default)
        return binding

    def close(self) -> None:
        """Shut the worker pool down, waiting for in-flight sends."""
        self._pool.shutdown(wait=True)

    # ==================== Internals ====================

    @staticmethod
    def _collect_attachments(
        message: RichMessage,
        upload: UploadedFile | None,
    ) -> list[OutboundAttachment]:
        attachments: list[OutboundAttachment] = []

        if upload is not None and not upload.is_empty:
            if not upload.filename or not upload.filename.strip():
                raise MessageValidationError(
                    "The attachment file name (including file suffix) cannot be empty",
                    [{"loc": ["attachment", "filename"], "msg": "missing file name", "type": "missing"}],
                )
            attachments.append(
                OutboundAttachment(
                    filename=upload.filename,
                    content=upload.content,
                    content_type=upload.content_type,
                )
            )

        if message.filepath:
            path = Path(message.filepath)
            if not path.is_file():
                raise MessageValidationError(
                    f"Attachment file not found: {path}",
                    [{"loc": ["filepath"], "msg": "file not found", "type": "value_error"}],
                )
            attachments.append(OutboundAttachment(filename=path.name, content=path.read_bytes()))

        return attachments

    @staticmethod
    def _deliver(binding: ActiveTransportBinding, native: Any, worker_ctx: MailContext, kind: str) -> None:
        """Runs on a worker thread."""
        thread = threading.current_thread()
        logger.info(
            f"Sending {kind} message on thread '{thread.name}' ({thread.ident}) "
            f"via template '{binding.identifier}', execution_id={str(worker_ctx.execution_id)[:8]}..."
        )
        try:
            binding.client.send(native)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(
                f"Transport '{binding.identifier}' failed: {e}",
                template=binding.identifier,
            ) from e

    async def _dispatch(
        self,
        binding: ActiveTransportBinding,
        native: Any,
        recipients: list[str],
        ctx: MailContext | None,
        kind: str,
        attachment_count: int,
        timeout: float | None,
    ) -> DispatchResult:
        timeout = timeout if timeout is not None else self._timeout
        worker_ctx = ctx.copy() if ctx is not None else MailContext()
        template = binding.identifier

        fields: dict[str, Any] = {"execution_id": str(worker_ctx.execution_id), "template": template}
        if worker_ctx.request_id:
            fields["request_id"] = worker_ctx.request_id
        with log_context(**fields):
            snapshot = contextvars.copy_context()

        logger.info(f"Dispatching {kind} message via template '{template}' to {recipients}")
        start = time.perf_counter()

        try:
            future = self._pool.submit(snapshot.run, self._deliver, binding, native, worker_ctx, kind)
        except PoolSaturationError:
            logger.error(f"Rejected {kind} message via template '{template}': worker pool saturated")
            raise

        waiter = asyncio.wrap_future(future)
        try:
            if timeout is None:
                await waiter
            else:
                await asyncio.wait_for(waiter, timeout)
        except asyncio.CancelledError:
            future.cancel()
            logger.warning(
                f"Wait for {kind} message via template '{template}' was cancelled; "
                f"delivery outcome unknown"
            )
            raise
        except TimeoutError as e:
            future.cancel()
            logger.error(
                f"Gave up waiting for {kind} message via template '{template}' "
                f"after {timeout}s; delivery outcome unknown"
            )
            raise DispatchInterruptedError(
                f"Timed out after {timeout}s waiting for template '{template}'; outcome unknown",
                template=template,
            ) from e
        except TransportError as e:
            if e.template is None:
                e.template = template
            logger.error(f"Failed to send {kind} message via template '{template}': {e}", exc_info=True)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Sent {kind} message via template '{template}' in {duration_ms:.1f}ms")
        return DispatchResult(
            template=template,
            recipients=tuple(recipients),
            execution_id=worker_ctx.execution_id,
            duration_ms=duration_ms,
            attachment_count=attachment_count,
        )
