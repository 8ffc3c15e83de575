"""Shared plumbing for the ``plan`` and ``run`` commands.

Both commands accept the same discovery options, build the effective
configuration the same way and need the same collaborators: a catalog to
discover candidates from and a CI/CD client to submit them to.
"""

from __future__ import annotations

from pathlib import Path
from dataclasses import dataclass
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, TypeVar, Union

import click

from appbatch.config import AppBatchConfig
from appbatch.context import AppBatchContext
from appbatch.exceptions import ConfigError
from appbatch.core.job_client import InstallJobClient
from appbatch.core.catalog import Catalog, InMemoryCatalog, TableAPICatalog
from appbatch.credentials import (
    CredentialSource,
    EnvironmentCredentialSource,
    load_credentials,
)
from appbatch.utils import HTTPClient, get_logger

logger = get_logger("commands")

F = TypeVar("F", bound=Callable[..., Any])


def discovery_options(func: F) -> F:
    """Attach the options shared by every discovery-based command."""
    options = [
        click.option(
            "--instance",
            "instance_url",
            envvar="APPBATCH_INSTANCE_URL",
            help="Instance base URL, e.g. https://dev12345.service-now.com.",
        ),
        click.option(
            "--compatibility",
            "compatibility_tag",
            envvar="APPBATCH_COMPATIBILITY",
            help="Build family to match (defaults to the instance glide.buildname).",
        ),
        click.option(
            "--catalog-file",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Read the catalog from a JSON snapshot instead of the instance.",
        ),
        click.option(
            "--batch-size",
            type=click.IntRange(min=1),
            envvar="APPBATCH_BATCH_SIZE",
            help="Applications per install job.",
        ),
        click.option(
            "--poll-interval",
            type=click.FloatRange(min=0),
            envvar="APPBATCH_POLL_INTERVAL",
            help="Seconds between progress checks.",
        ),
        click.option(
            "--max-poll-cycles",
            type=click.IntRange(min=1),
            envvar="APPBATCH_MAX_POLL_CYCLES",
            help="Progress checks per batch before giving up.",
        ),
        click.option(
            "--app-limit",
            type=click.IntRange(min=0),
            envvar="APPBATCH_APP_LIMIT",
            help="Maximum number of applications to upgrade.",
        ),
        click.option(
            "--include-system-apps/--exclude-system-apps",
            default=None,
            help="Include system applications (names starting with '@').",
        ),
        click.option(
            "--preserve-demo-data/--no-preserve-demo-data",
            default=None,
            help="Carry over each application's current demo-data state.",
        ),
        click.option(
            "--load-demo-data/--no-load-demo-data",
            "load_demo_data_default",
            default=None,
            help="Demo-data flag used when not preserving state.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def effective_config(ctx: AppBatchContext, **overrides: Any) -> AppBatchConfig:
    """Apply command-line overrides on top of the loaded configuration.

    Raises:
        ConfigError: An override is out of range.
    """
    base = ctx.config or AppBatchConfig()
    return base.with_overrides(**overrides)


@dataclass
class Session:
    """Collaborators for one command invocation."""

    config: AppBatchConfig
    catalog: Catalog
    client: InstallJobClient


@asynccontextmanager
async def open_session(
    config: AppBatchConfig,
    *,
    catalog_file: Optional[Path] = None,
    require_instance: bool = True,
    credential_source: Optional[CredentialSource] = None,
) -> AsyncIterator[Session]:
    """Build the catalog and job client for a command.

    The compatibility tag is taken from the configuration or, when empty and
    the catalog is the live instance, from its ``glide.buildname`` property.
    An empty tag would match every row, so it is rejected.

    Args:
        config: Effective configuration.
        catalog_file: Optional JSON catalog snapshot.
        require_instance: Fail when no instance URL is configured.
        credential_source: Where to look up credentials; environment by default.

    Raises:
        ConfigError: Missing instance URL or compatibility tag.
    """
    if not config.instance_url and (require_instance or catalog_file is None):
        raise ConfigError(
            "No instance URL configured; use --instance or instance_url",
            option="instance_url",
        )

    source = credential_source or EnvironmentCredentialSource()
    credentials = load_credentials(source, config.user_property, config.password_property)
    keys = (config.user_property, config.password_property)

    async with HTTPClient(
        timeout=config.http_timeout,
        max_retries=config.http_retries,
    ) as http:
        catalog: Union[InMemoryCatalog, TableAPICatalog]
        if catalog_file is not None:
            logger.info("Using catalog snapshot %s", catalog_file)
            catalog = InMemoryCatalog.from_file(catalog_file)
        else:
            catalog = TableAPICatalog(
                http, config.base_url, credentials, credential_keys=keys
            )

        if not config.compatibility_tag and isinstance(catalog, TableAPICatalog):
            build_name = await catalog.fetch_build_name()
            logger.info("Using instance build name %r as compatibility tag", build_name)
            config = config.with_overrides(compatibility_tag=build_name or None)

        if not config.compatibility_tag:
            raise ConfigError(
                "Compatibility tag is empty; every application would match. "
                "Use --compatibility or compatibility_tag",
                option="compatibility_tag",
            )

        client = InstallJobClient(http, config.base_url, credentials, credential_keys=keys)
        yield Session(config=config, catalog=catalog, client=client)
