"""
appbatch: batch application upgrades through the CI/CD install API.

appbatch discovers store applications and plugins with a newer compatible
version, groups them into fixed-size batches, submits each batch to the
asynchronous CI/CD batch-install service and polls it to completion before
moving on to the next batch.

Features include:
    • Best-candidate version resolution per application
    • Demo-data carry-over policy and candidate limits
    • Sequential, cancellable batch execution with bounded polling
    • Dry-run planning with a machine-readable summary
"""

from __future__ import annotations

from appbatch.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "appbatch Contributors"
__license__ = "Apache-2.0"
__description__ = "Batch upgrades of store applications via the CI/CD API."

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "__version__",
]
