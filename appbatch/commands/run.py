"""Run command implementation for appbatch.

Discovers upgrade candidates, splits them into batches and drives every
batch through the CI/CD batch install service, one at a time:

1. **CandidateResolver**: best compatible upgrade per installed application
2. **make_batches**: ordered, fixed-size batches
3. **BatchOrchestrator**: submit, poll until terminal, fetch results

The detailed run report is written to the log; a summary table of batch
outcomes is printed at the end. ``SIGINT``/``SIGTERM`` cancel the run at
the next batch or poll-cycle boundary.

Typical usage::

    # Upgrade everything that is upgradeable
    $ appbatch run --instance https://dev12345.service-now.com

    # See the payloads that would be submitted
    $ appbatch run --dry-run --catalog-file catalog.json --compatibility washingtondc
"""

from __future__ import annotations

import sys
import signal
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from appbatch.config import AppBatchConfig
from appbatch.constants import EXIT_CANCELLED, EXIT_ERROR, EXIT_OK
from appbatch.models import RunReport
from appbatch.exceptions import AppBatchError
from appbatch.context import AppBatchContext, pass_context
from appbatch.commands.common import discovery_options, effective_config, open_session
from appbatch.core import BatchOrchestrator, CancellationToken, CandidateResolver
from appbatch.utils import (
    colorize_state,
    get_logger,
    print_error,
    print_success,
    print_table,
    print_warning,
)

logger = get_logger("commands.run")


@click.command()
@discovery_options
@click.option(
    "--dry-run/--no-dry-run",
    default=None,
    help="Report the planned payloads without submitting anything.",
)
@pass_context
def run(
    ctx: AppBatchContext,
    catalog_file: Optional[Path],
    **overrides: Any,
) -> None:
    """Upgrade applications in batches through the CI/CD API.

    Exits 0 when every batch completed (or was dry-run), 1 when any batch
    did not complete or the run could not start, and 130 when cancelled.
    """
    try:
        config = effective_config(ctx, **overrides)
        report = asyncio.run(_run_async(config, catalog_file=catalog_file))
    except AppBatchError as e:
        print_error(f"{e}")
        logger.debug("Run failed: %s", e.details or "<none>", exc_info=True)
        sys.exit(EXIT_ERROR)

    _display_outcomes(report)
    sys.exit(_exit_code(report))


async def _run_async(
    config: AppBatchConfig,
    *,
    catalog_file: Optional[Path],
) -> RunReport:
    """Open a session and run one orchestration pass."""
    token = CancellationToken()
    _install_signal_handlers(token)

    async with open_session(
        config,
        catalog_file=catalog_file,
        require_instance=not config.dry_run,
    ) as session:
        resolver = CandidateResolver(session.catalog, session.config)
        orchestrator = BatchOrchestrator(
            session.config,
            resolver,
            session.client,
            token=token,
        )
        return await orchestrator.run()


def _install_signal_handlers(token: CancellationToken) -> None:
    """Cancel ``token`` on SIGINT/SIGTERM where the loop supports it."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows loops and non-main threads
            logger.debug("Signal handler for %s not installed", sig.name)


def _exit_code(report: RunReport) -> int:
    if report.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK if report.succeeded else EXIT_ERROR


def _display_outcomes(report: RunReport) -> None:
    """Print one row per batch with its terminal state."""
    if not report.outcomes:
        print_success("No application needs an upgrade")
        return

    data: List[Dict[str, Any]] = []
    for outcome in report.outcomes:
        data.append(
            {
                "Batch": f"{outcome.batch.index}/{outcome.batch.total}",
                "Apps": len(outcome.batch.candidates),
                "State": colorize_state(outcome.state.value),
                "Polls": outcome.cycles,
                "Progress ID": outcome.handle.progress_id if outcome.handle else "-",
                "Error": outcome.error or "",
            }
        )

    print_table(
        data,
        title="Batch Outcomes",
        column_styles={
            "Apps": {"justify": "right"},
            "Polls": {"justify": "right"},
            "Progress ID": {"style": "dim"},
        },
    )

    if report.cancelled:
        print_warning("Run cancelled; remaining batches were not submitted")
    elif report.succeeded:
        print_success(f"{len(report.outcomes)} batch(es) finished")
    else:
        print_error(
            f"{len(report.failed)} of {len(report.outcomes)} batch(es) did not complete"
        )
