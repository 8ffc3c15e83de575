"""
Unified data model exports for appbatch.

Example:
    >>> from appbatch.models import PackageRecord, VersionCandidate, Batch
"""

from __future__ import annotations

from appbatch.models.record import AppVersionRecord, PackageRecord
from appbatch.models.candidate import ResolutionResult, VersionCandidate
from appbatch.models.job import (
    Batch,
    BatchOutcome,
    BatchState,
    JobHandle,
    ProgressSnapshot,
    RunReport,
)

__all__ = [
    "PackageRecord",
    "AppVersionRecord",
    "VersionCandidate",
    "ResolutionResult",
    "Batch",
    "BatchState",
    "BatchOutcome",
    "JobHandle",
    "ProgressSnapshot",
    "RunReport",
]
