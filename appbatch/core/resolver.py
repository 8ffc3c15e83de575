"""Upgrade candidate resolution for appbatch.

For every distinct installed application the resolver picks the highest
compatible version that is strictly newer than the installed one.

Rules:

1. **First row per name**: catalog rows arrive ordered by name then
   version; a row whose name equals the previously processed row's name is
   skipped, so each application is resolved once.
2. **Strictly newer**: versions are ordered with
   :func:`~appbatch.utils.version_utils.compare_versions`; an application
   with nothing newer than its installed version is skipped.
3. **Demo data**: with ``preserve_demo_data`` off every candidate gets
   ``load_demo_data_default``; with it on, the application's current
   demo-data state is carried over.
4. **Limit**: at most ``app_limit`` candidates are kept. Finding one more
   qualifying application stops the pass and marks the limit as reached.

Typical usage::

    resolver = CandidateResolver(catalog, config)
    result = await resolver.resolve()
    for candidate in result.candidates:
        print(candidate.summary_line())
"""

from __future__ import annotations

import time
from typing import Iterable, Optional

from appbatch.config import AppBatchConfig
from appbatch.core.catalog import Catalog
from appbatch.models.candidate import ResolutionResult, VersionCandidate
from appbatch.models.record import PackageRecord
from appbatch.utils.logger import get_logger
from appbatch.utils.version_utils import compare_versions

logger = get_logger("resolver")


class CandidateResolver:
    """Resolve upgrade candidates from a catalog.

    Args:
        catalog: Source of installed applications and available versions.
        config: Run configuration (compatibility tag, limit, demo-data policy).
    """

    def __init__(self, catalog: Catalog, config: AppBatchConfig) -> None:
        self.catalog = catalog
        self.config = config

    async def resolve(self) -> ResolutionResult:
        """List installed applications and resolve their candidates."""
        rows = await self.catalog.list_installed(
            self.config.compatibility_tag,
            self.config.include_system_apps,
        )
        logger.debug("Catalog returned %d installed row(s)", len(rows))
        return await self.resolve_rows(rows)

    async def resolve_rows(self, rows: Iterable[PackageRecord]) -> ResolutionResult:
        """Resolve candidates from pre-ordered catalog ``rows``."""
        limit = self.config.app_limit
        result = ResolutionResult(limit=limit)
        started = time.monotonic()
        previous_name: Optional[str] = None

        for row in rows:
            if previous_name is not None and row.name == previous_name:
                logger.debug("Skipping duplicate row for %s (%s)", row.name, row.id)
                continue
            previous_name = row.name

            versions = await self.catalog.list_versions(
                row.id,
                self.config.compatibility_tag,
                row.version,
            )
            best = select_best_version(row.version, versions)
            if best is None:
                logger.debug("No newer compatible version for %s %s", row.name, row.version)
                continue

            if len(result.candidates) >= limit:
                result.limit_reached = True
                logger.debug("Candidate limit of %d reached at %s", limit, row.name)
                break

            result.candidates.append(
                VersionCandidate(
                    id=row.id,
                    display_name=row.name,
                    current_version=row.version,
                    requested_version=best,
                    load_demo_data=self._load_demo_data(row),
                )
            )

        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        return result

    def _load_demo_data(self, row: PackageRecord) -> bool:
        if not self.config.preserve_demo_data:
            return self.config.load_demo_data_default
        return row.demo_data_loaded


def select_best_version(installed: str, versions: Iterable[str]) -> Optional[str]:
    """Return the highest of ``versions`` strictly newer than ``installed``.

    Returns:
        The best version, or ``None`` when nothing is newer.
    """
    best = installed
    found = False
    for version in versions:
        if compare_versions(version, best) == 1:
            best = version
            found = True
    return best if found else None
