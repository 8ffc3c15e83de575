from __future__ import annotations

from pathlib import Path

import click
import pytest

from appbatch.config import AppBatchConfig
from appbatch.context import AppBatchContext, pass_context


@pytest.mark.unit
class TestAppBatchContext:
    """Tests for AppBatchContext class."""

    def test_default_initialization(self) -> None:
        """Test AppBatchContext starts with no config and INFO verbosity."""
        ctx = AppBatchContext()

        assert ctx.config_path is None
        assert ctx.verbose == 0
        assert ctx.color is True
        assert ctx.config is None

    def test_attributes_can_be_set(self) -> None:
        """Test context attributes hold the values assigned by the CLI group."""
        ctx = AppBatchContext()
        config = AppBatchConfig(batch_size=2)

        ctx.config_path = Path("/etc/appbatch.toml")
        ctx.verbose = -1
        ctx.color = False
        ctx.config = config

        assert ctx.config_path == Path("/etc/appbatch.toml")
        assert ctx.verbose == -1
        assert ctx.color is False
        assert ctx.config is config

    def test_slots_prevents_arbitrary_attributes(self) -> None:
        """Test __slots__ prevents setting undefined attributes."""
        ctx = AppBatchContext()

        with pytest.raises(AttributeError):
            ctx.dry_run = True  # type: ignore[attr-defined]


@pytest.mark.unit
class TestPassContextDecorator:
    """Tests for pass_context decorator."""

    def test_injects_existing_context(self) -> None:
        """Test the existing AppBatchContext is passed to the command."""

        @click.command()
        @pass_context
        def command(ctx: AppBatchContext) -> AppBatchContext:
            return ctx

        click_ctx = click.Context(click.Command("test"))
        appbatch_ctx = AppBatchContext()
        click_ctx.obj = appbatch_ctx

        assert click_ctx.invoke(command) is appbatch_ctx

    def test_creates_context_when_missing(self) -> None:
        """Test a default context is created when none exists."""

        @click.command()
        @pass_context
        def command(ctx: AppBatchContext) -> AppBatchContext:
            return ctx

        click_ctx = click.Context(click.Command("test"))

        result = click_ctx.invoke(command)

        assert isinstance(result, AppBatchContext)
        assert result.config is None
