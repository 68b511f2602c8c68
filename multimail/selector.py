"""
Template Selection for Multimail.

`use_template` marks a function, method or class with the template its
mail should go through. Each marked call receives a scoped copy of the
MailContext it was given, with the selected transport bound on the
copy. The caller's context is never mutated, so concurrent marked calls
sharing one context cannot see each other's transport.

Precedence:
    A marker on the method beats a marker on its class. A nested marked call
    copies the already scoped context and binds on top; the innermost wins.

Example:
    @use_template("EmailMarketing")
    class Campaigns:
        async def weekly(self, ctx: MailContext) -> None:
            ...                     # sends via EmailMarketing

        @use_template("EmailOffice365")
        async def urgent(self, ctx: MailContext) -> None:
            ...                     # sends via EmailOffice365
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

from .context import ActiveTransportBinding, MailContext
from .errors import UnknownTemplateError
from .transports.registry import get_template_registry

if TYPE_CHECKING:
    from .transports.registry import TemplateRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

SELECTOR_ATTR = "__mail_template_selector__"
UNIT_TEMPLATE_ATTR = "__mail_template__"


def resolve_template(call_template: str | None, unit_template: str | None) -> str | None:
    """
    Pick the effective template identifier.

    A call-level marker wins over the enclosing unit's marker. Returns
    None when neither is present.
    """
    if call_template:
        return call_template
    if unit_template:
        return unit_template
    return None


@contextmanager
def template_scope(
    ctx: MailContext,
    identifier: str,
    registry: TemplateRegistry | None = None,
) -> Iterator[ActiveTransportBinding | None]:
    """
    Bind a template's transport on `ctx` for the body of the block.

    Unknown identifiers are logged and nothing is bound, so dispatch
    inside the block uses the default transport.

    Yields:
        The published binding, or None for an unknown identifier
    """
    registry = registry or get_template_registry()

    entry = None
    try:
        entry = registry.resolve(identifier)
    except UnknownTemplateError as e:
        logger.warning(f"{e}. Falling back to the default transport")

    if entry is None:
        yield None
        return

    binding = ActiveTransportBinding.from_entry(entry)
    token = ctx.bind(binding)
    try:
        yield binding
    finally:
        ctx.unbind(token)


def _find_context(name: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> MailContext:
    ctx = kwargs.get("ctx")
    if isinstance(ctx, MailContext):
        return ctx
    for value in (*args, *kwargs.values()):
        if isinstance(value, MailContext):
            return value
    raise TypeError(f"{name} is marked with use_template but was called without a MailContext")


def _replace_context(
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    ctx: MailContext,
    scoped: MailContext,
) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """Swap every occurrence of `ctx` in the call arguments for `scoped`."""
    new_args = tuple(scoped if value is ctx else value for value in args)
    new_kwargs = {key: (scoped if value is ctx else value) for key, value in kwargs.items()}
    return new_args, new_kwargs


class _Selector:
    """Marker state attached to a wrapped callable."""

    __slots__ = ("func", "call_template", "unit_template", "registry")

    def __init__(
        self,
        func: Callable[..., Any],
        call_template: str | None,
        unit_template: str | None,
        registry: TemplateRegistry | None,
    ):
        self.func = func
        self.call_template = call_template
        self.unit_template = unit_template
        self.registry = registry

    @property
    def template(self) -> str | None:
        return resolve_template(self.call_template, self.unit_template)


def _wrap(selector: _Selector) -> Callable[..., Any]:
    func = selector.func
    name = getattr(func, "__qualname__", repr(func))

    def _enter(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[str, MailContext]:
        identifier = selector.template
        ctx = _find_context(name, args, kwargs)
        logger.info(f"Mail template '{identifier}' selected for {name}")
        return identifier, ctx

    def _failed(identifier: str, start: float, exc: BaseException) -> None:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.error(
            f"{name} failed under mail template '{identifier}' "
            f"after {duration_ms:.1f}ms: {exc}",
            exc_info=True,
        )

    def _completed(identifier: str, start: float) -> None:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{name} completed under mail template '{identifier}' in {duration_ms:.1f}ms")

    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            identifier, ctx = _enter(args, kwargs)
            scoped = ctx.copy()
            call_args, call_kwargs = _replace_context(args, kwargs, ctx, scoped)
            start = time.perf_counter()
            with template_scope(scoped, identifier, selector.registry):
                try:
                    result = await func(*call_args, **call_kwargs)
                except Exception as e:
                    _failed(identifier, start, e)
                    raise
            _completed(identifier, start)
            return result

        wrapper: Callable[..., Any] = async_wrapper
    else:

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            identifier, ctx = _enter(args, kwargs)
            scoped = ctx.copy()
            call_args, call_kwargs = _replace_context(args, kwargs, ctx, scoped)
            start = time.perf_counter()
            with template_scope(scoped, identifier, selector.registry):
                try:
                    result = func(*call_args, **call_kwargs)
                except Exception as e:
                    _failed(identifier, start, e)
                    raise
            _completed(identifier, start)
            return result

        wrapper = sync_wrapper

    setattr(wrapper, SELECTOR_ATTR, selector)
    return wrapper


def _mark_method(attr: Any, identifier: str, registry: TemplateRegistry | None) -> Any:
    """Apply a class-level marker to one class attribute."""
    if isinstance(attr, (staticmethod, classmethod)):
        marked = _mark_method(attr.__func__, identifier, registry)
        return type(attr)(marked) if marked is not attr.__func__ else attr

    if not inspect.isfunction(attr):
        return attr

    existing: _Selector | None = getattr(attr, SELECTOR_ATTR, None)
    if existing is not None:
        return _wrap(
            _Selector(
                existing.func,
                call_template=existing.call_template,
                unit_template=identifier,
                registry=existing.registry or registry,
            )
        )
    return _wrap(_Selector(attr, call_template=None, unit_template=identifier, registry=registry))


def use_template(
    identifier: str,
    *,
    registry: TemplateRegistry | None = None,
) -> Callable[[T], T]:
    """
    Mark a callable or class with the mail template it sends through.

    Args:
        identifier: Template identifier registered in the TemplateRegistry
        registry: Registry to resolve from (global registry when None)

    The marked callable must receive a MailContext, either as `ctx=`
    or as any argument of that type. The callable sees a scoped copy
    of that context in its place.
    """
    if not identifier or not identifier.strip():
        raise ValueError("use_template requires a non-blank template identifier")

    def decorator(target: T) -> T:
        if inspect.isclass(target):
            setattr(target, UNIT_TEMPLATE_ATTR, identifier)
            for attr_name, attr in list(vars(target).items()):
                if attr_name.startswith("_"):
                    continue
                marked = _mark_method(attr, identifier, registry)
                if marked is not attr:
                    setattr(target, attr_name, marked)
            return target

        if not callable(target):
            raise TypeError(f"use_template cannot decorate {target!r}")

        existing: _Selector | None = getattr(target, SELECTOR_ATTR, None)
        if existing is not None:
            # Re-marking a wrapped callable replaces its call-level marker.
            selector = _Selector(existing.func, identifier, existing.unit_template, registry)
        else:
            selector = _Selector(target, identifier, None, registry)
        return _wrap(selector)  # type: ignore[return-value]

    return decorator


def marked_template(func: Callable[..., Any]) -> str | None:
    """Effective template identifier of a marked callable, or None."""
    selector: _Selector | None = getattr(func, SELECTOR_ATTR, None)
    return selector.template if selector else None
