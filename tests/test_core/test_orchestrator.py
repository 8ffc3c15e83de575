from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from appbatch.config import AppBatchConfig
from appbatch.core.cancellation import CancellationToken
from appbatch.core.job_client import InstallJobClient
from appbatch.core.orchestrator import BatchOrchestrator
from appbatch.credentials import Credentials
from appbatch.exceptions import AuthMissingError, MalformedResponseError, NetworkError
from appbatch.models.candidate import ResolutionResult, VersionCandidate
from appbatch.models.job import Batch, BatchState, JobHandle, ProgressSnapshot
from appbatch.utils.http import HTTPClient


def candidates(count: int) -> List[VersionCandidate]:
    return [
        VersionCandidate(
            id=f"a{i}",
            display_name=f"x_app{i:02d}",
            current_version="1.0",
            requested_version="1.1",
        )
        for i in range(1, count + 1)
    ]


def make_resolver(count: int, *, limit_reached: bool = False) -> MagicMock:
    resolver = MagicMock()
    resolver.resolve = AsyncMock(
        return_value=ResolutionResult(
            candidates=candidates(count),
            limit=count,
            limit_reached=limit_reached,
            elapsed_ms=5,
        )
    )
    return resolver


def make_client(
    statuses: Optional[Iterable[Any]] = None,
    *,
    results: Optional[Dict[str, Any]] = None,
) -> MagicMock:
    """Build a job client whose polls return ``statuses`` in order.

    Items may be status strings or exceptions to raise.
    """
    client = MagicMock()
    client.require_credentials = MagicMock()
    counter = {"submit": 0}

    async def submit(batch: Any, name: str) -> JobHandle:
        counter["submit"] += 1
        return JobHandle(progress_id=f"p{counter['submit']}", results_id=f"r{counter['submit']}")

    sequence = list(statuses) if statuses is not None else None

    async def poll(progress_id: str) -> ProgressSnapshot:
        if sequence is None:
            return ProgressSnapshot(status="2", status_label="Successful")
        item = sequence.pop(0)
        if isinstance(item, Exception):
            raise item
        return ProgressSnapshot(status=item, status_label=f"label-{item}")

    client.submit = AsyncMock(side_effect=submit)
    client.poll = AsyncMock(side_effect=poll)
    client.fetch_results = AsyncMock(return_value=results or {"result": {"ok": True}})
    return client


def make_config(**overrides: Any) -> AppBatchConfig:
    values: Dict[str, Any] = {
        "compatibility_tag": "utah",
        "batch_size": 5,
        "poll_interval": 0,
        "max_poll_cycles": 72,
    }
    values.update(overrides)
    return AppBatchConfig(**values)


def fixed_clock() -> datetime:
    return datetime(2024, 5, 1, 12, 30, 0)


@pytest.fixture(autouse=True)
def capture_appbatch_logs(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture):
    """Route appbatch records to caplog even if the CLI configured logging."""
    monkeypatch.setattr(logging.getLogger("appbatch"), "propagate", True)
    caplog.set_level(logging.DEBUG, logger="appbatch")
    yield caplog


def messages(caplog: pytest.LogCaptureFixture) -> List[str]:
    return [r.getMessage() for r in caplog.records if r.name.startswith("appbatch")]


@pytest.mark.unit
class TestRunFlow:
    """Tests for the overall run loop."""

    @pytest.mark.asyncio
    async def test_no_candidates_is_clean_exit(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test an empty discovery skips credentials and batching."""
        client = make_client()
        orchestrator = BatchOrchestrator(make_config(), make_resolver(0), client)

        report = await orchestrator.run()

        assert report.outcomes == []
        assert report.succeeded is True
        client.require_credentials.assert_not_called()
        client.submit.assert_not_awaited()
        assert any("No application has been found" in m for m in messages(caplog))

    @pytest.mark.asyncio
    async def test_twelve_candidates_three_batches_in_order(self) -> None:
        """Test 12 candidates in batches of 5 are submitted as 3 ordered jobs."""
        client = make_client()
        orchestrator = BatchOrchestrator(make_config(), make_resolver(12), client)

        report = await orchestrator.run()

        sizes = [len(call.args[0].candidates) for call in client.submit.await_args_list]
        indexes = [call.args[0].index for call in client.submit.await_args_list]
        assert sizes == [5, 5, 2]
        assert indexes == [1, 2, 3]
        assert [o.state for o in report.outcomes] == [BatchState.COMPLETED] * 3
        assert report.succeeded is True

    @pytest.mark.asyncio
    async def test_batches_continue_after_failures(self) -> None:
        """Test every batch is processed even when earlier ones fail."""
        client = make_client(statuses=["3", "2", "2"])
        orchestrator = BatchOrchestrator(
            make_config(batch_size=5), make_resolver(12), client
        )

        report = await orchestrator.run()

        assert [o.state for o in report.outcomes] == [
            BatchState.UNEXPECTED_STATE,
            BatchState.COMPLETED,
            BatchState.COMPLETED,
        ]
        assert client.submit.await_count == 3
        assert report.succeeded is False

    @pytest.mark.asyncio
    async def test_missing_credentials_fatal_before_submit(self) -> None:
        """Test missing credentials abort the run before any submission."""
        client = make_client()
        client.require_credentials.side_effect = AuthMissingError("missing")
        orchestrator = BatchOrchestrator(make_config(), make_resolver(3), client)

        with pytest.raises(AuthMissingError):
            await orchestrator.run()

        client.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_name_uses_clock(self) -> None:
        """Test the submitted job name carries the run timestamp."""
        client = make_client()
        orchestrator = BatchOrchestrator(
            make_config(), make_resolver(1), client, clock=fixed_clock
        )

        await orchestrator.run()

        name = client.submit.await_args.args[1]
        assert name == "Batch Applications Update via CI/CD - 2024-05-01 12:30:00"

    @pytest.mark.asyncio
    async def test_log_lines_are_prefixed(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test orchestration lines carry the batch upgrade prefix."""
        orchestrator = BatchOrchestrator(make_config(), make_resolver(2), make_client())

        await orchestrator.run()

        lines = [
            r.getMessage() for r in caplog.records if r.name == "appbatch.orchestrator"
        ]
        assert lines
        assert all(line.startswith("[BATCH UPGRADE] ") for line in lines)
        assert any("====== Batch 1/1 (2 app(s)) START ======" in line for line in lines)
        assert any("====== Batch 1/1 (2 app(s)) END ======" in line for line in lines)

    @pytest.mark.asyncio
    async def test_limit_warning_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a reached limit is reported before batching."""
        orchestrator = BatchOrchestrator(
            make_config(), make_resolver(2, limit_reached=True), make_client()
        )

        await orchestrator.run()

        assert any(
            "ATTENTION - LIMIT OF 2 HAS BEEN REACHED" in m for m in messages(caplog)
        )

    @pytest.mark.asyncio
    async def test_zero_limit_warns_before_empty_result(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a limit of 0 that blocked every candidate is still reported."""
        client = make_client()
        orchestrator = BatchOrchestrator(
            make_config(app_limit=0), make_resolver(0, limit_reached=True), client
        )

        report = await orchestrator.run()

        lines = messages(caplog)
        limit_at = next(
            i for i, m in enumerate(lines) if "ATTENTION - LIMIT OF 0 HAS BEEN REACHED" in m
        )
        empty_at = next(i for i, m in enumerate(lines) if "No application has been found" in m)
        assert limit_at < empty_at
        assert report.outcomes == []
        client.submit.assert_not_awaited()


@pytest.mark.unit
class TestSubmission:
    """Tests for the submit step."""

    @pytest.mark.asyncio
    async def test_submit_failure_marks_batch_and_continues(self) -> None:
        """Test a failed submission is SUBMIT_FAILED and the next batch starts."""
        client = make_client()
        handle = JobHandle(progress_id="p2")
        client.submit = AsyncMock(
            side_effect=[NetworkError("HTTP 500", status_code=500), handle]
        )
        orchestrator = BatchOrchestrator(
            make_config(batch_size=2), make_resolver(4), client
        )

        report = await orchestrator.run()

        first, second = report.outcomes
        assert first.state is BatchState.SUBMIT_FAILED
        assert "HTTP 500" in (first.error or "")
        assert first.handle is None
        assert second.state is BatchState.COMPLETED
        assert client.poll.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_submit_response_is_submit_failed(self) -> None:
        """Test a submission without progress id fails only that batch."""
        client = make_client()
        client.submit = AsyncMock(side_effect=MalformedResponseError("no progress id"))
        orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)

        report = await orchestrator.run()

        assert report.outcomes[0].state is BatchState.SUBMIT_FAILED
        client.poll.assert_not_awaited()


@pytest.mark.unit
class TestPolling:
    """Tests for the polling loop."""

    @pytest.mark.asyncio
    async def test_completes_after_progress(self) -> None:
        """Test statuses [0, 1, 1, 2] complete after 4 cycles and fetch results."""
        client = make_client(statuses=["0", "1", "1", "2"], results={"result": {"n": 1}})
        orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)

        report = await orchestrator.run()

        outcome = report.outcomes[0]
        assert outcome.state is BatchState.COMPLETED
        assert outcome.cycles == 4
        assert client.poll.await_count == 4
        client.fetch_results.assert_awaited_once_with("r1")
        assert outcome.results == {"result": {"n": 1}}

    @pytest.mark.asyncio
    async def test_success_label_completes(self) -> None:
        """Test a 'Successful' label completes regardless of status code."""
        client = make_client()
        client.poll = AsyncMock(
            return_value=ProgressSnapshot(status="1", status_label="SUCCESSFUL")
        )
        orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)

        report = await orchestrator.run()

        assert report.outcomes[0].state is BatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_times_out_after_exact_cycles(self) -> None:
        """Test max_poll_cycles=3 with status 1 times out after exactly 3 polls."""
        client = make_client(statuses=["1"] * 10)
        token = CancellationToken()
        waits: List[float] = []
        original_wait = token.wait

        async def recording_wait(timeout: float) -> bool:
            waits.append(timeout)
            return await original_wait(timeout)

        token.wait = recording_wait  # type: ignore[method-assign]
        orchestrator = BatchOrchestrator(
            make_config(max_poll_cycles=3, poll_interval=0.001),
            make_resolver(1),
            client,
            token=token,
        )

        report = await orchestrator.run()

        outcome = report.outcomes[0]
        assert outcome.state is BatchState.TIMED_OUT
        assert outcome.cycles == 3
        assert client.poll.await_count == 3
        assert len(waits) == 2
        client.fetch_results.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_status_stops_polling(self) -> None:
        """Test a status outside 0/1/2 ends the batch immediately."""
        client = make_client(statuses=["1", "3", "2"])
        orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)

        report = await orchestrator.run()

        outcome = report.outcomes[0]
        assert outcome.state is BatchState.UNEXPECTED_STATE
        assert outcome.cycles == 2
        assert "unexpected status 3" in (outcome.error or "")
        client.fetch_results.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_poll_error_consumes_cycle_and_continues(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a failed poll is logged and polling resumes next cycle."""
        client = make_client(
            statuses=[NetworkError("timeout"), MalformedResponseError("bad"), "2"]
        )
        orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)

        report = await orchestrator.run()

        outcome = report.outcomes[0]
        assert outcome.state is BatchState.COMPLETED
        assert outcome.cycles == 3
        assert any("Progress check error (attempt 1)" in m for m in messages(caplog))

    @pytest.mark.asyncio
    async def test_poll_errors_can_time_out(self) -> None:
        """Test a batch whose every poll fails times out."""
        client = make_client(statuses=[NetworkError("down")] * 2)
        orchestrator = BatchOrchestrator(
            make_config(max_poll_cycles=2), make_resolver(1), client
        )

        report = await orchestrator.run()

        assert report.outcomes[0].state is BatchState.TIMED_OUT
        assert report.outcomes[0].last_snapshot is None

    @pytest.mark.asyncio
    async def test_results_failure_keeps_completed(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a results fetch error only produces a warning."""
        client = make_client()
        client.fetch_results = AsyncMock(side_effect=NetworkError("results down"))
        orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)

        report = await orchestrator.run()

        assert report.outcomes[0].state is BatchState.COMPLETED
        assert report.succeeded is True
        assert any("Could not fetch results" in m for m in messages(caplog))


@pytest.mark.unit
class TestDryRun:
    """Tests for dry-run mode."""

    @pytest.mark.asyncio
    async def test_no_remote_calls(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test dry run makes zero submit, poll and results calls."""
        client = make_client()
        orchestrator = BatchOrchestrator(
            make_config(dry_run=True, batch_size=2), make_resolver(3), client
        )

        report = await orchestrator.run()

        client.submit.assert_not_awaited()
        client.poll.assert_not_awaited()
        client.fetch_results.assert_not_awaited()
        client.require_credentials.assert_not_called()
        assert [o.state for o in report.outcomes] == [BatchState.DRY_RUN] * 2
        assert report.succeeded is True

        payload_lines = [m for m in messages(caplog) if "DRY RUN - Would POST: " in m]
        assert len(payload_lines) == 2
        payload = json.loads(payload_lines[0].split("Would POST: ", 1)[1])
        assert [p["id"] for p in payload["packages"]] == ["a1", "a2"]


@pytest.mark.unit
class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_run_skips_batches(self) -> None:
        """Test a cancelled token marks every batch CANCELLED without submitting."""
        client = make_client()
        token = CancellationToken()
        token.cancel("received SIGTERM")
        orchestrator = BatchOrchestrator(
            make_config(batch_size=1), make_resolver(2), client, token=token
        )

        report = await orchestrator.run()

        client.submit.assert_not_awaited()
        assert [o.state for o in report.outcomes] == [BatchState.CANCELLED] * 2
        assert report.cancelled is True
        assert report.succeeded is False

    @pytest.mark.asyncio
    async def test_cancel_during_wait(self) -> None:
        """Test cancelling between cycles stops polling and later batches."""
        token = CancellationToken()
        client = make_client(statuses=["1", "1", "1"])
        original_poll = client.poll.side_effect

        async def poll_then_cancel(progress_id: str) -> ProgressSnapshot:
            snapshot = await original_poll(progress_id)
            token.cancel("received SIGINT")
            return snapshot

        client.poll = AsyncMock(side_effect=poll_then_cancel)
        orchestrator = BatchOrchestrator(
            make_config(batch_size=1, poll_interval=3600),
            make_resolver(2),
            client,
            token=token,
        )

        report = await orchestrator.run()

        assert [o.state for o in report.outcomes] == [
            BatchState.CANCELLED,
            BatchState.CANCELLED,
        ]
        assert client.poll.await_count == 1
        assert client.submit.await_count == 1
        assert report.cancelled is True


def install_response() -> httpx.Response:
    return httpx.Response(
        200,
        json={"result": {"links": {"progress": {"id": "p1"}, "results": {"id": "r1"}}}},
    )


def progress_response(status: str, label: str) -> httpx.Response:
    return httpx.Response(200, json={"result": {"status": status, "status_label": label}})


def single_batch() -> Batch:
    return Batch(index=1, total=1, candidates=tuple(candidates(1)))


@pytest.mark.unit
class TestDroppedConnections:
    """Tests for connection drops reaching the orchestrator over HTTP."""

    @pytest.mark.asyncio
    async def test_disconnect_during_poll_is_retried(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a server disconnect on one poll uses a cycle and polling resumes."""
        polls: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return install_response()
            if request.url.path.startswith("/api/sn_cicd/progress/"):
                polls.append(1)
                if len(polls) == 1:
                    raise httpx.RemoteProtocolError("Server disconnected", request=request)
                return progress_response("2", "Successful")
            return httpx.Response(200, json={"result": {}})

        async with HTTPClient(transport=httpx.MockTransport(handler)) as http:
            client = InstallJobClient(http, "https://dev.example.test", Credentials("u", "p"))
            orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)
            outcome = await orchestrator.process_batch(single_batch())

        assert outcome.state is BatchState.COMPLETED
        assert outcome.cycles == 2
        assert any("Progress check error (attempt 1)" in m for m in messages(caplog))

    @pytest.mark.asyncio
    async def test_disconnect_during_submit_fails_only_the_batch(self) -> None:
        """Test a server disconnect on submission yields SUBMIT_FAILED."""
        calls: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            raise httpx.RemoteProtocolError("Server disconnected", request=request)

        async with HTTPClient(transport=httpx.MockTransport(handler)) as http:
            client = InstallJobClient(http, "https://dev.example.test", Credentials("u", "p"))
            orchestrator = BatchOrchestrator(make_config(), make_resolver(1), client)
            outcome = await orchestrator.process_batch(single_batch())

        assert outcome.state is BatchState.SUBMIT_FAILED
        assert outcome.handle is None
        assert calls == ["POST"]
