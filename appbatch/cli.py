"""
Command-line entry point for appbatch.

The ``appbatch`` group sets up logging, console colors and the configuration
file, then hands an :class:`~appbatch.context.AppBatchContext` to the
``plan`` and ``run`` subcommands.
"""

from __future__ import annotations

import os
import sys
import logging
from pathlib import Path
from typing import Optional

import click

from appbatch.config import load_config
from appbatch.__version__ import __version__
from appbatch.context import AppBatchContext
from appbatch.commands.plan import plan
from appbatch.commands.run import run
from appbatch.exceptions import AppBatchError, ConfigError
from appbatch.utils.logger import get_logger, setup_logging
from appbatch.utils.console import print_error, print_warning, reconfigure_console
from appbatch.constants import EXIT_CANCELLED, EXIT_ERROR, EXIT_OK

logger = get_logger("cli")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="APPBATCH_CONFIG",
    help="appbatch.toml or pyproject.toml to read settings from.",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Debug output: HTTP requests and catalog queries (-vv adds logger names).",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Only report warnings and errors.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    envvar="APPBATCH_LOG_FILE",
    help="Also write the run report to this file.",
)
@click.option(
    "--color/--no-color",
    default=True,
    envvar="APPBATCH_COLOR",
    help="Colored terminal output.",
)
@click.version_option(
    version=__version__,
    prog_name="appbatch",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    quiet: bool,
    log_file: Optional[Path],
    color: bool,
) -> None:
    """appbatch: batch application upgrades through the CI/CD API.

    \b
    Commands:
      appbatch plan    Show which applications would be upgraded
      appbatch run     Upgrade applications in batches

    \b
    Examples:
      appbatch plan --instance https://dev12345.service-now.com
      appbatch run --dry-run
      appbatch -v run --batch-size 10

    Credentials are read from SN_CICD_API_USER and SN_CICD_API_PWD.
    """
    _apply_color(color)
    verbosity = -1 if quiet else verbose
    level = _log_level(verbosity)
    setup_logging(level=level, verbose=verbosity > 1, log_file=log_file)

    try:
        loaded = load_config(config)
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(EXIT_ERROR) from exc

    appbatch_ctx = AppBatchContext()
    appbatch_ctx.config_path = config or loaded.source_path
    appbatch_ctx.verbose = verbosity
    appbatch_ctx.color = color
    appbatch_ctx.config = loaded
    ctx.obj = appbatch_ctx

    logger.debug(
        "appbatch %s | log level %s | color %s | config %s",
        __version__,
        logging.getLevelName(level),
        color,
        appbatch_ctx.config_path or "<defaults>",
    )
    logger.debug("Configuration: %s", loaded.to_log_dict())


def _apply_color(enabled: bool) -> None:
    """Export the color choice as NO_COLOR so rich and the log formatter agree."""
    if enabled:
        os.environ.pop("NO_COLOR", None)
    else:
        os.environ["NO_COLOR"] = "1"
    reconfigure_console()


def _log_level(verbosity: int) -> int:
    """-1 (quiet) WARNING, 0 INFO (the run report), 1+ DEBUG."""
    if verbosity < 0:
        return logging.WARNING
    return logging.DEBUG if verbosity > 0 else logging.INFO


cli.add_command(plan)
cli.add_command(run)


def main() -> int:
    """Console-script entry point.

    Returns:
        0 on success, 1 on errors or a batch that did not complete, 2 on
        usage errors, 130 when cancelled.
    """
    try:
        rv = cli(standalone_mode=False)
    except SystemExit as exc:
        if exc.code is None:
            return EXIT_OK
        return exc.code if isinstance(exc.code, int) else EXIT_ERROR
    except (click.exceptions.Abort, KeyboardInterrupt):
        print_warning("Operation cancelled by user")
        return EXIT_CANCELLED
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except AppBatchError as exc:
        print_error(str(exc))
        logger.debug("Details: %s", exc.details or "<none>", exc_info=True)
        return EXIT_ERROR
    except Exception as exc:
        print_error(f"Unexpected error: {exc}")
        logger.exception("Unhandled exception in CLI")
        return EXIT_ERROR
    return rv if isinstance(rv, int) else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
