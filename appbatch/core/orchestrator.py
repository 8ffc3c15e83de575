"""Batch upgrade orchestration for appbatch.

Drives one run end to end: resolve candidates, split them into batches,
then for each batch submit an install job and poll it until it reaches a
terminal state. Batches run strictly one after another.

Per-batch state machine::

    PENDING ──submit ok──▶ SUBMITTED ──▶ POLLING ──success──▶ COMPLETED
       │                                    │ ├──unknown status──▶ UNEXPECTED_STATE
       └──submit error──▶ SUBMIT_FAILED     │ ├──budget spent────▶ TIMED_OUT
                                            │ └──cancel──────────▶ CANCELLED
    (dry run) PENDING ──▶ DRY_RUN

A failed batch never aborts the run; the next batch always starts. The only
run-fatal condition is missing credentials, detected before the first
submission. A poll that fails (transport error or malformed body) is logged
and retried after one interval; it still uses up its cycle.

Typical usage::

    orchestrator = BatchOrchestrator(config, resolver, client)
    report = await orchestrator.run()
    print(len(report.completed), "batch(es) completed")
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Callable, Dict, Optional

from appbatch.config import AppBatchConfig
from appbatch.core.batcher import make_batches
from appbatch.core.cancellation import CancellationToken
from appbatch.core.job_client import InstallJobClient, format_results
from appbatch.core.resolver import CandidateResolver
from appbatch.exceptions import AppBatchError, AuthMissingError
from appbatch.utils.logger import get_report_logger
from appbatch.constants import BATCH_NAME_PREFIX, LOG_DATE_FORMAT
from appbatch.models.candidate import ResolutionResult
from appbatch.models.job import Batch, BatchOutcome, BatchState, RunReport

logger = get_report_logger("orchestrator")


class BatchOrchestrator:
    """Run candidate discovery and sequential batch installs.

    Args:
        config: Run configuration.
        resolver: Candidate resolver (called once per run).
        client: CI/CD install job client.
        token: Cancellation token checked before each submission and
            between poll cycles. A fresh token is created when omitted.
        clock: Returns the current time for job names.
    """

    def __init__(
        self,
        config: AppBatchConfig,
        resolver: CandidateResolver,
        client: InstallJobClient,
        *,
        token: Optional[CancellationToken] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.client = client
        self.token = token or CancellationToken()
        self.clock = clock

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> RunReport:
        """Execute one full pass.

        Returns:
            A :class:`RunReport`; empty when no candidate was found.

        Raises:
            AuthMissingError: Credentials are missing (not raised in dry run).
        """
        resolution = await self.resolver.resolve()
        report = RunReport(resolution=resolution)
        self._report_discovery(resolution)

        if not resolution:
            return report

        if not self.config.dry_run:
            self.client.require_credentials()

        batches = make_batches(resolution.candidates, self.config.batch_size)
        logger.info("Total apps requiring upgrade: %d", len(resolution))
        logger.info("Total batches: %d", len(batches))

        for batch in batches:
            if self.token.cancelled:
                logger.warning("%s skipped: run cancelled (%s)", batch.label, self.token.reason)
                report.outcomes.append(BatchOutcome(batch=batch, state=BatchState.CANCELLED))
                continue
            report.outcomes.append(await self.process_batch(batch))

        report.cancelled = self.token.cancelled
        self._report_summary(report)
        return report

    # ------------------------------------------------------------------
    # Single batch
    # ------------------------------------------------------------------

    async def process_batch(self, batch: Batch) -> BatchOutcome:
        """Drive one batch to a terminal state."""
        outcome = BatchOutcome(batch=batch)
        label = batch.label

        logger.info("====== %s START ======", label)
        for candidate in batch.candidates:
            logger.info("  • %s", candidate.summary_line())

        name = self._job_name()

        if self.config.dry_run:
            payload = json.dumps(batch.to_payload(name))
            logger.info("DRY RUN - Would POST: %s", payload)
            outcome.state = BatchState.DRY_RUN
            logger.info("====== %s END (DRY RUN) ======", label)
            return outcome

        try:
            logger.info("Triggering CI/CD batch install...")
            handle = await self.client.submit(batch, name)
        except AuthMissingError:
            raise
        except AppBatchError as exc:
            logger.error("Failed to trigger %s: %s", label, exc)
            outcome.state = BatchState.SUBMIT_FAILED
            outcome.error = str(exc)
            logger.info("====== %s END (FAILED TO TRIGGER) ======", label)
            return outcome

        outcome.handle = handle
        outcome.state = BatchState.SUBMITTED
        logger.info(
            "Triggered. Progress ID: %s%s",
            handle.progress_id,
            f" | Results ID: {handle.results_id}" if handle.results_id else "",
        )

        await self._poll_until_terminal(outcome)

        if outcome.state is BatchState.COMPLETED:
            logger.info("%s completed successfully.", label)
            await self._report_results(outcome)
        elif outcome.state is BatchState.TIMED_OUT:
            logger.warning("%s timed out before completion.", label)
        elif outcome.state is BatchState.CANCELLED:
            logger.warning("%s polling cancelled (%s).", label, self.token.reason)

        logger.info("====== %s END ======", label)
        return outcome

    async def _poll_until_terminal(self, outcome: BatchOutcome) -> None:
        """Poll the job of ``outcome`` until success, failure or budget exhaustion."""
        assert outcome.handle is not None
        outcome.state = BatchState.POLLING
        max_cycles = self.config.max_poll_cycles

        for cycle in range(1, max_cycles + 1):
            outcome.cycles = cycle
            try:
                snapshot = await self.client.poll(outcome.handle.progress_id)
            except AuthMissingError:
                raise
            except AppBatchError as exc:
                logger.warning("Progress check error (attempt %d): %s", cycle, exc)
                if await self._wait_after(cycle):
                    outcome.state = BatchState.CANCELLED
                    return
                continue

            outcome.last_snapshot = snapshot
            logger.info("%s", snapshot.describe(cycle, max_cycles))

            if snapshot.is_successful:
                outcome.state = BatchState.COMPLETED
                return

            if not snapshot.is_known:
                logger.warning(
                    "%s returned unexpected terminal status: %s (%s)",
                    outcome.batch.label,
                    snapshot.status,
                    snapshot.status_label,
                )
                outcome.state = BatchState.UNEXPECTED_STATE
                outcome.error = snapshot.error or f"unexpected status {snapshot.status}"
                return

            if await self._wait_after(cycle):
                outcome.state = BatchState.CANCELLED
                return

        outcome.state = BatchState.TIMED_OUT
        outcome.error = f"not completed after {max_cycles} poll cycle(s)"

    async def _wait_after(self, cycle: int) -> bool:
        """Wait one poll interval unless ``cycle`` was the last one.

        Returns:
            True if the run was cancelled.
        """
        if cycle >= self.config.max_poll_cycles:
            return self.token.cancelled
        return await self.token.wait(self.config.poll_interval)

    async def _report_results(self, outcome: BatchOutcome) -> None:
        """Fetch and log detailed results; failures only produce a warning."""
        assert outcome.handle is not None
        if not outcome.handle.results_id:
            return

        try:
            results = await self.client.fetch_results(outcome.handle.results_id)
        except AuthMissingError:
            raise
        except AppBatchError as exc:
            logger.warning("Could not fetch results for %s: %s", outcome.batch.label, exc)
            return

        outcome.results = results
        if results:
            logger.info("Batch results: %s", format_results(results))
        else:
            logger.info("No detailed results returned.")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _job_name(self) -> str:
        return f"{BATCH_NAME_PREFIX} - {self.clock().strftime(LOG_DATE_FORMAT)}"

    def _report_discovery(self, resolution: ResolutionResult) -> None:
        # a limit of 0 can block every candidate, so warn before the empty case
        if resolution.limit_reached:
            logger.warning(
                "ATTENTION - LIMIT OF %d HAS BEEN REACHED", resolution.limit
            )

        if not resolution:
            logger.info(
                "No application has been found (elapsed %d ms)", resolution.elapsed_ms
            )
            return

        logger.info(
            "A total of %d application(s) will be upgraded (elapsed %d ms)",
            len(resolution),
            resolution.elapsed_ms,
        )
        logger.info(
            "Upgradeable applications:\n%s",
            json.dumps(resolution.to_json(self._job_name())["payload"], indent=2),
        )

    def _report_summary(self, report: RunReport) -> None:
        counts: Dict[str, int] = {}
        for outcome in report.outcomes:
            counts[outcome.state.value] = counts.get(outcome.state.value, 0) + 1
        summary = ", ".join(f"{state}={count}" for state, count in sorted(counts.items()))
        if report.succeeded:
            logger.info("Run finished: %s", summary)
        else:
            logger.warning("Run finished with problems: %s", summary)
