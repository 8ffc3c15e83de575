from __future__ import annotations

import sys
import json
from typing import Generator
from unittest.mock import patch

import pytest
from rich.table import Table
from rich.console import Console

from appbatch.utils.console import (
    APPBATCH_THEME,
    _get_console,
    _should_use_color,
    colorize_state,
    colorize_update_type,
    print_error,
    print_json,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)


@pytest.fixture(autouse=True)
def reset_console() -> Generator[None, None, None]:
    """Reset console singleton before and after each test."""
    reconfigure_console()
    yield
    reconfigure_console()


@pytest.mark.unit
class TestThemeConfiguration:
    """Tests for the Rich theme."""

    @pytest.mark.parametrize("style_name", ["ok", "error", "warning", "muted"])
    def test_theme_has_style(self, style_name: str) -> None:
        """Test the theme defines every style the helpers use."""
        assert style_name in APPBATCH_THEME.styles


@pytest.mark.unit
class TestShouldUseColor:
    """Tests for color detection."""

    def test_no_color_env_disables_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test NO_COLOR wins over a TTY."""
        monkeypatch.setenv("NO_COLOR", "1")
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert _should_use_color() is False

    def test_ci_env_disables_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test CI environments get plain output."""
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("CI", "true")
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert _should_use_color() is False

    def test_tty_enables_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an interactive terminal gets colors."""
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("CI", raising=False)
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert _should_use_color() is True


@pytest.mark.unit
class TestGetConsole:
    """Tests for console singleton lifecycle."""

    def test_singleton_returns_same_instance(self) -> None:
        """Test repeated calls share one console."""
        assert _get_console() is _get_console()

    def test_reconfigure_creates_new_instance(self) -> None:
        """Test reconfigure_console drops the cached console."""
        first = _get_console()
        reconfigure_console()
        assert _get_console() is not first


@pytest.mark.unit
class TestStatusMessages:
    """Tests for print_success, print_error and print_warning."""

    def test_print_success(self) -> None:
        """Test success messages use the [OK] prefix and success style."""
        with patch.object(Console, "print") as mock_print:
            print_success("2 batch(es) finished")

        mock_print.assert_called_once_with("[OK] 2 batch(es) finished", style="ok")

    def test_print_error(self) -> None:
        """Test error messages use the [ERROR] prefix."""
        with patch.object(Console, "print") as mock_print:
            print_error("Missing API credentials")

        mock_print.assert_called_once_with(
            "[ERROR] Missing API credentials", style="error"
        )

    def test_print_warning_custom_prefix(self) -> None:
        """Test the prefix can be overridden."""
        with patch.object(Console, "print") as mock_print:
            print_warning("Run cancelled", prefix="!")

        mock_print.assert_called_once_with("! Run cancelled", style="warning")


@pytest.mark.unit
class TestPrintTable:
    """Tests for print_table structured output."""

    def test_prints_table(self) -> None:
        """Test rows are rendered as a Rich Table with the given columns."""
        data = [
            {"Batch": "1/2", "State": "completed"},
            {"Batch": "2/2", "State": "timed_out"},
        ]

        with patch.object(Console, "print") as mock_print:
            print_table(data, title="Batch Outcomes")

        table = mock_print.call_args[0][0]
        assert isinstance(table, Table)
        assert table.title == "Batch Outcomes"
        assert [c.header for c in table.columns] == ["Batch", "State"]
        assert table.row_count == 2

    def test_empty_data_prints_nothing(self) -> None:
        """Test an empty list prints nothing."""
        with patch.object(Console, "print") as mock_print:
            print_table([])

        mock_print.assert_not_called()

    def test_custom_headers_and_styles(self) -> None:
        """Test explicit headers select and order columns."""
        data = [{"a": 1, "b": 2, "c": 3}]

        with patch.object(Console, "print") as mock_print:
            print_table(
                data,
                headers=["c", "a"],
                column_styles={"c": {"justify": "right", "style": "dim"}},
            )

        table = mock_print.call_args[0][0]
        assert [c.header for c in table.columns] == ["c", "a"]
        assert table.columns[0].justify == "right"


@pytest.mark.unit
class TestPrintJson:
    """Tests for print_json machine-readable output."""

    def test_prints_plain_json(self, capsys: pytest.CaptureFixture) -> None:
        """Test output is valid, unstyled JSON on stdout."""
        print_json({"total": 1, "payload": {"packages": []}})

        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"total": 1, "payload": {"packages": []}}


@pytest.mark.unit
class TestColorize:
    """Tests for markup helpers."""

    @pytest.mark.parametrize(
        "update_type,color",
        [("major", "red"), ("minor", "yellow"), ("patch", "green"), ("new", "cyan")],
    )
    def test_colorize_update_type(self, update_type: str, color: str) -> None:
        """Test known update types are wrapped in their theme style."""
        style = f"change.{update_type}"
        assert colorize_update_type(update_type) == f"[{style}]{update_type}[/{style}]"
        assert APPBATCH_THEME.styles[style].color.name == color

    def test_colorize_update_type_unknown(self) -> None:
        """Test unknown update types are returned unchanged."""
        assert colorize_update_type("unknown") == "unknown"

    @pytest.mark.parametrize(
        "state,color",
        [
            ("completed", "green"),
            ("dry_run", "cyan"),
            ("timed_out", "yellow"),
            ("cancelled", "yellow"),
            ("submit_failed", "red"),
            ("unexpected_state", "red"),
        ],
    )
    def test_colorize_state(self, state: str, color: str) -> None:
        """Test terminal batch states are color-coded through the theme."""
        style = f"state.{state}"
        assert colorize_state(state) == f"[{style}]{state}[/{style}]"
        assert APPBATCH_THEME.styles[style].color.name == color

    def test_colorize_state_non_terminal(self) -> None:
        """Test non-terminal states are left plain."""
        assert colorize_state("pending") == "pending"
