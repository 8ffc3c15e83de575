"""
Utility helpers for appbatch.

This package provides reusable utilities used across appbatch, including:

- Console output helpers (Rich-based)
- Logging configuration and retrieval
- Async HTTP client utilities
- Version comparison helpers

Only symbols listed in ``__all__`` are considered part of the public API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from appbatch.utils.logger import (
    disable_logging,
    get_logger,
    get_report_logger,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Console utilities
# ---------------------------------------------------------------------------

from appbatch.utils.console import (
    colorize_state,
    colorize_update_type,
    print_error,
    print_json,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)

# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

from appbatch.utils.http import HTTPClient, decode_json_object

# ---------------------------------------------------------------------------
# Version utilities
# ---------------------------------------------------------------------------

from appbatch.utils.version_utils import compare_versions, get_update_type

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Console
    "print_error",
    "print_json",
    "print_table",
    "print_success",
    "print_warning",
    "reconfigure_console",
    "colorize_state",
    "colorize_update_type",
    # Logging
    "get_logger",
    "get_report_logger",
    "setup_logging",
    "disable_logging",
    # HTTP
    "HTTPClient",
    "decode_json_object",
    # Version utilities
    "compare_versions",
    "get_update_type",
]
