"""
Tests for Multimail template selection.

Covers the `use_template` marker, `template_scope`, precedence between
call-level and class-level markers, and binding cleanup.
"""

import asyncio

import pytest

from multimail.context import MailContext
from multimail.selector import marked_template, resolve_template, template_scope, use_template


def active(ctx: MailContext):
    binding = ctx.active_binding
    return binding.identifier if binding else None


# =============================================================================
# resolve_template Tests
# =============================================================================


class TestResolveTemplate:
    """Tests for precedence resolution."""

    def test_call_level_wins(self):
        assert resolve_template("EmailOffice365", "EmailMarketing") == "EmailOffice365"

    def test_unit_level_used_when_no_call_level(self):
        assert resolve_template(None, "EmailMarketing") == "EmailMarketing"

    def test_neither(self):
        assert resolve_template(None, None) is None


# =============================================================================
# template_scope Tests
# =============================================================================


class TestTemplateScope:
    """Tests for the template_scope context manager."""

    def test_binds_for_block(self, registry):
        ctx = MailContext()

        with template_scope(ctx, "EmailOffice365") as binding:
            assert binding.identifier == "EmailOffice365"
            assert active(ctx) == "EmailOffice365"

        assert ctx.active_binding is None

    def test_unbinds_on_exception(self, registry):
        ctx = MailContext()

        with pytest.raises(ValueError):
            with template_scope(ctx, "EmailOffice365"):
                raise ValueError("boom")

        assert ctx.active_binding is None
        assert ctx.binding_depth == 0

    def test_unknown_identifier_falls_back(self, registry, caplog):
        ctx = MailContext()

        with caplog.at_level("WARNING"):
            with template_scope(ctx, "EmailNowhere") as binding:
                assert binding is None
                assert ctx.active_binding is None

        assert "EmailNowhere" in caplog.text
        assert "Falling back to the default transport" in caplog.text

    def test_explicit_registry(self, registry):
        ctx = MailContext()

        with template_scope(ctx, "EmailMarketing", registry=registry):
            assert active(ctx) == "EmailMarketing"


# =============================================================================
# Function Marker Tests
# =============================================================================


class TestFunctionMarker:
    """Tests for use_template on plain functions."""

    @pytest.mark.asyncio
    async def test_binding_visible_inside_call(self, registry):
        @use_template("EmailOffice365")
        async def handler(ctx: MailContext):
            return active(ctx)

        ctx = MailContext()
        assert await handler(ctx) == "EmailOffice365"
        assert ctx.active_binding is None

    def test_sync_function(self, registry):
        @use_template("EmailMarketing")
        def handler(ctx: MailContext):
            return active(ctx)

        ctx = MailContext()
        assert handler(ctx=ctx) == "EmailMarketing"
        assert ctx.active_binding is None

    @pytest.mark.asyncio
    async def test_context_found_among_positional_args(self, registry):
        @use_template("EmailOffice365")
        async def handler(name: str, ctx: MailContext):
            return f"{name}:{active(ctx)}"

        assert await handler("x", MailContext()) == "x:EmailOffice365"

    @pytest.mark.asyncio
    async def test_missing_context_raises_type_error(self, registry):
        @use_template("EmailOffice365")
        async def handler(name: str):
            return name

        with pytest.raises(TypeError, match="without a MailContext"):
            await handler("x")

    @pytest.mark.asyncio
    async def test_error_reraised_and_binding_removed(self, registry, caplog):
        @use_template("EmailOffice365")
        async def handler(ctx: MailContext):
            raise RuntimeError("smtp down")

        ctx = MailContext()
        with caplog.at_level("ERROR"):
            with pytest.raises(RuntimeError, match="smtp down"):
                await handler(ctx)

        assert ctx.active_binding is None
        assert "failed under mail template 'EmailOffice365'" in caplog.text

    @pytest.mark.asyncio
    async def test_nested_innermost_wins(self, registry):
        seen = []

        @use_template("EmailMarketing")
        async def inner(ctx: MailContext):
            seen.append(active(ctx))

        @use_template("EmailOffice365")
        async def outer(ctx: MailContext):
            seen.append(active(ctx))
            await inner(ctx)
            seen.append(active(ctx))

        ctx = MailContext()
        await outer(ctx)

        assert seen == ["EmailOffice365", "EmailMarketing", "EmailOffice365"]
        assert ctx.active_binding is None

    @pytest.mark.asyncio
    async def test_unknown_identifier_uses_default(self, registry):
        @use_template("EmailNowhere")
        async def handler(ctx: MailContext):
            return ctx.active_binding

        assert await handler(MailContext()) is None

    def test_blank_identifier_rejected(self):
        with pytest.raises(ValueError):
            use_template("  ")

    def test_preserves_metadata(self, registry):
        @use_template("EmailOffice365")
        async def send_report(ctx: MailContext):
            """Send the report."""

        assert send_report.__name__ == "send_report"
        assert send_report.__doc__ == "Send the report."
        assert marked_template(send_report) == "EmailOffice365"

    def test_unmarked_function(self):
        def plain(ctx):
            return None

        assert marked_template(plain) is None

    def test_remarking_replaces_call_level(self, registry):
        @use_template("EmailMarketing")
        @use_template("EmailOffice365")
        def handler(ctx: MailContext):
            return active(ctx)

        assert marked_template(handler) == "EmailMarketing"
        assert handler(MailContext()) == "EmailMarketing"


# =============================================================================
# Class Marker Tests
# =============================================================================


@use_template("EmailMarketing")
class Campaigns:
    """Unit marked with EmailMarketing; one method overrides it."""

    async def weekly(self, ctx: MailContext):
        return active(ctx)

    @use_template("EmailOffice365")
    async def urgent(self, ctx: MailContext):
        return active(ctx)

    @staticmethod
    def static_send(ctx: MailContext):
        return active(ctx)

    def _private(self, ctx: MailContext):
        return active(ctx)


class TestClassMarker:
    """Tests for use_template on classes."""

    @pytest.mark.asyncio
    async def test_class_marker_applies_to_methods(self, registry):
        assert await Campaigns().weekly(MailContext()) == "EmailMarketing"

    @pytest.mark.asyncio
    async def test_method_marker_beats_class_marker(self, registry):
        assert await Campaigns().urgent(MailContext()) == "EmailOffice365"
        assert marked_template(Campaigns.urgent) == "EmailOffice365"

    def test_staticmethod_marked(self, registry):
        assert Campaigns.static_send(MailContext()) == "EmailMarketing"

    def test_private_methods_untouched(self, registry):
        assert Campaigns()._private(MailContext()) is None

    def test_class_attribute_set(self):
        assert Campaigns.__mail_template__ == "EmailMarketing"


# =============================================================================
# Isolation Tests
# =============================================================================


class TestIsolation:
    """Bindings never leak between concurrent calls or after a call."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_observe_each_other(self, registry):
        @use_template("EmailOffice365")
        async def office(ctx: MailContext):
            await asyncio.sleep(0.01)
            return active(ctx)

        @use_template("EmailMarketing")
        async def marketing(ctx: MailContext):
            await asyncio.sleep(0.01)
            return active(ctx)

        async def unmarked(ctx: MailContext):
            await asyncio.sleep(0.01)
            return active(ctx)

        calls = []
        for i in range(30):
            fn = (office, marketing, unmarked)[i % 3]
            calls.append(fn(MailContext()))

        results = await asyncio.gather(*calls)

        for i, result in enumerate(results):
            assert result == ("EmailOffice365", "EmailMarketing", None)[i % 3]

    @pytest.mark.asyncio
    async def test_no_leak_into_next_call(self, registry):
        @use_template("EmailOffice365")
        async def marked(ctx: MailContext):
            return active(ctx)

        ctx = MailContext()
        await marked(ctx)

        assert ctx.active_binding is None
        assert ctx.binding_depth == 0

    @pytest.mark.asyncio
    async def test_shared_context_across_concurrent_calls(self, registry):
        @use_template("EmailMarketing")
        async def marketing(ctx: MailContext):
            await asyncio.sleep(0.01)
            return active(ctx)

        @use_template("EmailOffice365")
        async def office(ctx: MailContext):
            await asyncio.sleep(0.05)
            return active(ctx)

        ctx = MailContext()
        results = await asyncio.gather(marketing(ctx), office(ctx))

        assert results == ["EmailMarketing", "EmailOffice365"]
        assert ctx.binding_depth == 0

    def test_marked_call_receives_scoped_copy(self, registry):
        received = []

        @use_template("EmailOffice365")
        def handler(label: str, ctx: MailContext):
            received.append(ctx)
            return ctx.execution_id

        ctx = MailContext(request_id="req-1")

        assert handler("x", ctx=ctx) == ctx.execution_id
        assert received[0] is not ctx
        assert received[0].request_id == "req-1"
        assert ctx.active_binding is None
