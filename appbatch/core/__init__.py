"""
Core functionality exports for appbatch.

    from appbatch.core import BatchOrchestrator, CandidateResolver
"""

from __future__ import annotations

from appbatch.core.batcher import chunk, make_batches
from appbatch.core.cancellation import CancellationToken
from appbatch.core.catalog import Catalog, InMemoryCatalog, TableAPICatalog
from appbatch.core.job_client import InstallJobClient
from appbatch.core.orchestrator import BatchOrchestrator
from appbatch.core.resolver import CandidateResolver, select_best_version

__all__ = [
    "chunk",
    "make_batches",
    "CancellationToken",
    "Catalog",
    "InMemoryCatalog",
    "TableAPICatalog",
    "InstallJobClient",
    "BatchOrchestrator",
    "CandidateResolver",
    "select_best_version",
]
