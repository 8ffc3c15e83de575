"""
Centralized constants for appbatch.

This module defines immutable configuration values used across appbatch,
including CI/CD and Table API endpoints, orchestration defaults, network
settings and logging formats. All values are intended to be treated as
read-only.
"""

from typing import Final, FrozenSet

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "appbatch/{version}"

#: Prefix for every orchestration log line.
LOG_PREFIX: Final[str] = "[BATCH UPGRADE]"

# ---------------------------------------------------------------------------
# CI/CD endpoints (relative to the instance URL)
# ---------------------------------------------------------------------------

#: Batch install submission.
CICD_BATCH_INSTALL_PATH: Final[str] = "/api/sn_cicd/app/batch/install"

#: Progress lookup for a submitted job.
CICD_PROGRESS_PATH: Final[str] = "/api/sn_cicd/progress/{progress_id}"

#: Detailed batch results.
CICD_BATCH_RESULTS_PATH: Final[str] = "/api/sn_cicd/app/batch/results/{results_id}"

#: Human-readable job name prefix; a timestamp is appended per submission.
BATCH_NAME_PREFIX: Final[str] = "Batch Applications Update via CI/CD"

# ---------------------------------------------------------------------------
# Table API (catalog)
# ---------------------------------------------------------------------------

#: Generic Table API endpoint.
TABLE_API_PATH: Final[str] = "/api/now/table/{table}"

#: Installed store applications.
STORE_APP_TABLE: Final[str] = "sys_store_app"

#: Available application versions.
APP_VERSION_TABLE: Final[str] = "sys_app_version"

#: System properties.
SYS_PROPERTIES_TABLE: Final[str] = "sys_properties"

#: Property holding the instance build family (compatibility tag).
BUILD_NAME_PROPERTY: Final[str] = "glide.buildname"

#: Rows requested per Table API page.
TABLE_PAGE_SIZE: Final[int] = 500

#: Demo-data state meaning "demo data was loaded".
DEMO_DATA_LOADED: Final[str] = "demo_data_loaded"

#: Name prefix of system applications.
SYSTEM_APP_PREFIX: Final[str] = "@"

# ---------------------------------------------------------------------------
# Progress status codes
# ---------------------------------------------------------------------------

STATUS_PENDING: Final[str] = "0"
STATUS_RUNNING: Final[str] = "1"
STATUS_SUCCESSFUL: Final[str] = "2"

#: Status codes that are expected while a job is alive or done.
KNOWN_STATUSES: Final[FrozenSet[str]] = frozenset(
    {STATUS_PENDING, STATUS_RUNNING, STATUS_SUCCESSFUL}
)

#: Status label reported on success (compared case-insensitively).
SUCCESS_LABEL: Final[str] = "successful"

# ---------------------------------------------------------------------------
# Orchestration defaults
# ---------------------------------------------------------------------------

DEFAULT_BATCH_SIZE: Final[int] = 5

#: Seconds between progress polls (5 minutes).
DEFAULT_POLL_INTERVAL: Final[float] = 300.0

#: Poll cycles per batch (6 hours at the default interval).
DEFAULT_MAX_POLL_CYCLES: Final[int] = 72

DEFAULT_DRY_RUN: Final[bool] = False
DEFAULT_LOAD_DEMO_DATA: Final[bool] = False
DEFAULT_PRESERVE_DEMO_DATA: Final[bool] = False
DEFAULT_APP_LIMIT: Final[int] = 5
DEFAULT_INCLUDE_SYSTEM_APPS: Final[bool] = True

#: Credential property keys.
DEFAULT_USER_PROPERTY: Final[str] = "sn.cicd.api.user"
DEFAULT_PASSWORD_PROPERTY: Final[str] = "sn.cicd.api.pwd"

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[int] = 30

#: Retries for idempotent requests. Submissions are never retried.
DEFAULT_MAX_RETRIES: Final[int] = 0

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for log lines and batch names.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format.
LOG_DEFAULT_FORMAT: Final[str] = "%(asctime)s %(levelname)s: %(message)s"

#: Verbose log format including logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ---------------------------------------------------------------------------
# CLI exit codes
# ---------------------------------------------------------------------------

EXIT_OK: Final[int] = 0

#: Configuration, credential or network error, or a batch that did not complete.
EXIT_ERROR: Final[int] = 1

#: Run stopped by SIGINT/SIGTERM or Ctrl+C.
EXIT_CANCELLED: Final[int] = 130
