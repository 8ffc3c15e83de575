"""
Shared context object for appbatch CLI commands.

This module defines the global Click context used to share configuration
and runtime options across CLI subcommands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from appbatch.config import AppBatchConfig


class AppBatchContext:
    """Global context object for appbatch CLI commands.

    An instance of this class is created once per CLI invocation and
    passed to commands using Click's context mechanism.

    Attributes:
        config_path: Path to the appbatch configuration file, if any.
        verbose: Verbosity level (-1=WARNING, 0=INFO, 1+=DEBUG).
        color: Whether colored terminal output is enabled.
        config: Loaded configuration (before command-line overrides).
    """

    __slots__ = ("config_path", "verbose", "color", "config")

    def __init__(self) -> None:
        self.config_path: Optional[Path] = None
        self.verbose: int = 0
        self.color: bool = True
        self.config: Optional[AppBatchConfig] = None


#: Click decorator for injecting :class:`AppBatchContext` into commands.
pass_context = click.make_pass_decorator(AppBatchContext, ensure=True)
