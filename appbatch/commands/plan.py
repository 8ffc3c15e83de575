"""Plan command implementation for appbatch.

Runs candidate discovery only: installed applications are matched against
the catalog and the best compatible upgrade is picked for each, exactly as
``appbatch run`` would, but nothing is submitted.

Typical usage::

    # Show the upgrade plan as a table
    $ appbatch plan --instance https://dev12345.service-now.com

    # Plan offline from a catalog snapshot
    $ appbatch plan --catalog-file catalog.json --compatibility washingtondc

    # Machine-readable output
    $ appbatch plan --format json
"""

from __future__ import annotations

import sys
import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from appbatch.constants import BATCH_NAME_PREFIX, EXIT_ERROR, EXIT_OK, LOG_DATE_FORMAT
from appbatch.config import AppBatchConfig
from appbatch.core import CandidateResolver
from appbatch.exceptions import AppBatchError
from appbatch.models import ResolutionResult
from appbatch.context import AppBatchContext, pass_context
from appbatch.commands.common import discovery_options, effective_config, open_session
from appbatch.utils import (
    colorize_update_type,
    get_logger,
    get_update_type,
    print_error,
    print_json,
    print_success,
    print_table,
    print_warning,
)

logger = get_logger("commands.plan")


@click.command()
@discovery_options
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format.",
)
@pass_context
def plan(
    ctx: AppBatchContext,
    output_format: str,
    catalog_file: Optional[Path],
    **overrides: Any,
) -> None:
    """Show which applications would be upgraded, without submitting.

    Exits 0 when discovery succeeded (even with nothing to upgrade) and 1
    on configuration, credential or network errors.
    """
    try:
        config = effective_config(ctx, **overrides)
        result = asyncio.run(
            _plan_async(config, catalog_file=catalog_file)
        )
    except AppBatchError as e:
        print_error(f"{e}")
        logger.debug("Plan failed: %s", e.details or "<none>", exc_info=True)
        sys.exit(EXIT_ERROR)

    if output_format.lower() == "json":
        print_json(result.to_json(_plan_name()))
    else:
        _display_plan(result)
    sys.exit(EXIT_OK)


async def _plan_async(
    config: AppBatchConfig,
    *,
    catalog_file: Optional[Path],
) -> ResolutionResult:
    """Open a session and resolve candidates once."""
    async with open_session(
        config,
        catalog_file=catalog_file,
        require_instance=False,
    ) as session:
        resolver = CandidateResolver(session.catalog, session.config)
        return await resolver.resolve()


def _plan_name() -> str:
    return f"{BATCH_NAME_PREFIX} - {datetime.now().strftime(LOG_DATE_FORMAT)}"


def _display_plan(result: ResolutionResult) -> None:
    """Render the resolved candidates as a rich table."""
    if not result:
        print_success("No application needs an upgrade")
        return

    data: List[Dict[str, Any]] = []
    for candidate in result.candidates:
        update_type = get_update_type(
            candidate.current_version, candidate.requested_version
        )
        data.append(
            {
                "Application": candidate.display_name,
                "Current": candidate.current_version,
                "Target": f"[green]{candidate.requested_version}[/green]",
                "Change": colorize_update_type(update_type),
                "Demo data": "yes" if candidate.load_demo_data else "no",
                "ID": candidate.id,
            }
        )

    print_table(
        data,
        title="Upgrade Plan",
        caption=f"Discovery took {result.elapsed_ms} ms",
        column_styles={
            "Application": {"style": "bold", "no_wrap": True},
            "ID": {"style": "dim"},
        },
    )

    if result.limit_reached:
        print_warning(
            f"Limit of {result.limit} application(s) reached; "
            "more upgrades are available"
        )
    print_success(f"{len(result)} application(s) would be upgraded")
