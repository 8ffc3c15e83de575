"""
Executable module for appbatch.

Running:
    python -m appbatch

is equivalent to:
    appbatch

Execution is forwarded to the CLI entrypoint defined in `appbatch.cli`.
"""

from __future__ import annotations

import sys


def _print_startup_error(exc: ImportError) -> None:
    """Explain on stderr why the CLI could not be loaded."""
    sys.stderr.write("appbatch CLI could not be loaded.\n")
    sys.stderr.write(f"Python version : {sys.version}\n")
    try:
        from appbatch.__version__ import __version__

        sys.stderr.write(f"appbatch version: {__version__}\n")
    except ImportError:
        sys.stderr.write("appbatch version: <unknown>\n")
    sys.stderr.write("\n")
    sys.stderr.write(f"ImportError: {exc}\n")


def main() -> int:
    """
    Main entrypoint when executing `python -m appbatch`.

    Returns:
        Exit code returned by the CLI, or 1 if it cannot be imported.
    """
    try:
        # Import lazily so dependencies are only loaded during CLI use
        from appbatch.cli import main as cli_main
    except ImportError as exc:
        _print_startup_error(exc)
        return 1

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
