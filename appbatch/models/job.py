"""
Batch and install-job models for appbatch.

These records describe one orchestration pass: the batches submitted to
the CI/CD service, the handle returned for each submission, the progress
snapshots fetched while polling, and the terminal outcome of every batch.
Response bodies are validated here so that malformed data is turned into
:class:`~appbatch.exceptions.MalformedResponseError` at the boundary.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from appbatch.constants import KNOWN_STATUSES, STATUS_SUCCESSFUL, SUCCESS_LABEL
from appbatch.exceptions import MalformedResponseError
from appbatch.models.candidate import ResolutionResult, VersionCandidate


class BatchState(str, Enum):
    """Lifecycle state of one batch."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    SUBMIT_FAILED = "submit_failed"
    UNEXPECTED_STATE = "unexpected_state"
    DRY_RUN = "dry_run"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchState.PENDING, BatchState.SUBMITTED, BatchState.POLLING)


@dataclass(frozen=True)
class Batch:
    """An ordered group of candidates submitted as one install job.

    Attributes:
        index: 1-based position of the batch in the run.
        total: Number of batches in the run.
        candidates: Candidates in discovery order.
    """

    index: int
    total: int
    candidates: Tuple[VersionCandidate, ...]

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``"Batch 2/3 (5 app(s))"``."""
        return f"Batch {self.index}/{self.total} ({len(self.candidates)} app(s))"

    def to_payload(self, name: str) -> Dict[str, Any]:
        """Return the batch install request body."""
        return {
            "packages": [c.to_payload() for c in self.candidates],
            "name": name,
        }


@dataclass(frozen=True)
class JobHandle:
    """Identifiers returned by a successful batch submission."""

    progress_id: str
    results_id: Optional[str] = None

    @classmethod
    def from_response(
        cls,
        data: Mapping[str, Any],
        *,
        url: Optional[str] = None,
        raw: Optional[str] = None,
    ) -> "JobHandle":
        """Extract the handle from a batch install response.

        Expected shape: ``{"result": {"links": {"progress": {"id": ...},
        "results": {"id": ...}}}}``; ``results`` is optional.

        Raises:
            MalformedResponseError: No progress identifier in the response.
        """
        links = _dig(data, "result", "links")
        progress_id = _dig(links, "progress", "id")
        if not progress_id:
            raise MalformedResponseError(
                "Invalid CI/CD install response: missing progress id",
                url=url,
                response_body=raw,
            )

        results_id = _dig(links, "results", "id")
        return cls(
            progress_id=str(progress_id),
            results_id=str(results_id) if results_id else None,
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    """One progress reading of a running install job.

    Attributes:
        status: Status code as a string (``"0"`` pending, ``"1"`` running,
            ``"2"`` successful; anything else is unexpected).
        status_label: Human status label.
        percent_complete: Reported completion percentage.
        status_message: Optional progress message.
        error: Optional error text.
    """

    status: str
    status_label: str = ""
    percent_complete: Optional[float] = None
    status_message: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return (
            self.status == STATUS_SUCCESSFUL
            or self.status_label.lower() == SUCCESS_LABEL
        )

    @property
    def is_known(self) -> bool:
        """True for pending, running and successful statuses."""
        return self.status in KNOWN_STATUSES

    def describe(self, cycle: int, max_cycles: int) -> str:
        """Render the progress log line for poll ``cycle``."""
        percent = "?" if self.percent_complete is None else f"{self.percent_complete:g}"
        text = (
            f"Progress {cycle}/{max_cycles} | status={self.status} "
            f"({self.status_label}) | percent={percent}"
        )
        if self.status_message:
            text += f' | msg="{self.status_message}"'
        if self.error:
            text += f' | error="{self.error}"'
        return text

    @classmethod
    def from_response(
        cls,
        data: Mapping[str, Any],
        *,
        url: Optional[str] = None,
        raw: Optional[str] = None,
    ) -> "ProgressSnapshot":
        """Build a snapshot from a progress response.

        Raises:
            MalformedResponseError: The ``result`` payload is missing.
        """
        result = data.get("result")
        if not isinstance(result, Mapping) or not result:
            raise MalformedResponseError(
                "Invalid progress response: missing result",
                url=url,
                response_body=raw,
            )

        return cls(
            status=str(result.get("status", "")),
            status_label=str(result.get("status_label") or ""),
            percent_complete=_to_float(result.get("percent_complete")),
            status_message=result.get("status_message") or None,
            error=result.get("error") or None,
        )


@dataclass
class BatchOutcome:
    """Terminal record of one batch.

    Attributes:
        batch: The batch processed.
        state: Terminal state reached.
        handle: Job handle, when the submission succeeded.
        cycles: Poll cycles consumed.
        last_snapshot: Last successfully fetched progress snapshot.
        results: Detailed batch results (any JSON value), when fetched.
        error: Failure description for failed batches.
    """

    batch: Batch
    state: BatchState = BatchState.PENDING
    handle: Optional[JobHandle] = None
    cycles: int = 0
    last_snapshot: Optional[ProgressSnapshot] = None
    results: Any = None
    error: Optional[str] = None


@dataclass
class RunReport:
    """Everything one orchestration pass did."""

    resolution: ResolutionResult
    outcomes: List[BatchOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def completed(self) -> List[BatchOutcome]:
        return [o for o in self.outcomes if o.state is BatchState.COMPLETED]

    @property
    def failed(self) -> List[BatchOutcome]:
        """Batches that ended in anything other than completion or dry run."""
        return [
            o
            for o in self.outcomes
            if o.state not in (BatchState.COMPLETED, BatchState.DRY_RUN)
        ]

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and not self.failed


def _dig(data: Any, *keys: str) -> Any:
    """Walk nested mappings, returning ``None`` on any missing level."""
    current = data
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
