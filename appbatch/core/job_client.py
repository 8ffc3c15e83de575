"""CI/CD batch install client for appbatch.

Wraps the three CI/CD endpoints a batch goes through:

- ``POST /api/sn_cicd/app/batch/install``: submit a batch, returns a
  :class:`~appbatch.models.job.JobHandle`
- ``GET /api/sn_cicd/progress/{id}``: poll, returns a
  :class:`~appbatch.models.job.ProgressSnapshot`
- ``GET /api/sn_cicd/app/batch/results/{id}``: detailed results, best effort

Every call checks for credentials first and raises
:class:`~appbatch.exceptions.AuthMissingError` without touching the network
when they are absent.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from appbatch.credentials import Credentials, require_credentials
from appbatch.models.job import Batch, JobHandle, ProgressSnapshot
from appbatch.utils.http import HTTPClient, decode_json_object
from appbatch.utils.logger import get_logger
from appbatch.constants import (
    CICD_BATCH_INSTALL_PATH,
    CICD_BATCH_RESULTS_PATH,
    CICD_PROGRESS_PATH,
)

logger = get_logger("job_client")


class InstallJobClient:
    """Client for the CI/CD batch install service.

    Args:
        http: Shared HTTP client.
        base_url: Instance URL without trailing slash.
        credentials: API credentials, or ``None`` if they could not be found.
        credential_keys: Property keys reported when credentials are missing.

    Example::

        async with HTTPClient() as http:
            client = InstallJobClient(http, "https://dev.example.com", creds)
            handle = await client.submit(batch, name="nightly upgrade")
            snapshot = await client.poll(handle.progress_id)
    """

    def __init__(
        self,
        http: HTTPClient,
        base_url: str,
        credentials: Optional[Credentials],
        *,
        credential_keys: Sequence[str] = (),
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.credential_keys = tuple(credential_keys)

    def require_credentials(self) -> Credentials:
        """Return the credentials or raise :class:`AuthMissingError`."""
        return require_credentials(self.credentials, self.credential_keys)

    async def submit(self, batch: Batch, name: str) -> JobHandle:
        """Submit ``batch`` as one install job.

        Raises:
            AuthMissingError: No credentials.
            NetworkError: Transport failure or non-success HTTP status.
            MalformedResponseError: Body is not JSON or has no progress id.
        """
        auth = self.require_credentials().as_auth()
        url = self.base_url + CICD_BATCH_INSTALL_PATH

        response = await self.http.post(url, json=batch.to_payload(name), auth=auth)
        data = decode_json_object(response, url)
        return JobHandle.from_response(data, url=url, raw=response.text)

    async def poll(self, progress_id: str) -> ProgressSnapshot:
        """Fetch the current progress of a job.

        Raises:
            AuthMissingError: No credentials.
            NetworkError: Transport failure or non-success HTTP status.
            MalformedResponseError: Body is not JSON or has no result.
        """
        auth = self.require_credentials().as_auth()
        url = self.base_url + CICD_PROGRESS_PATH.format(progress_id=progress_id)

        response = await self.http.get(url, auth=auth)
        data = decode_json_object(response, url)
        return ProgressSnapshot.from_response(data, url=url, raw=response.text)

    async def fetch_results(self, results_id: Optional[str]) -> Any:
        """Fetch detailed batch results as whatever JSON the endpoint returns.

        Results only feed the report, so a body that is not JSON yields
        ``None`` instead of an error.

        Raises:
            AuthMissingError: No credentials.
            NetworkError: Transport failure or non-success HTTP status.
        """
        if not results_id:
            return None

        auth = self.require_credentials().as_auth()
        url = self.base_url + CICD_BATCH_RESULTS_PATH.format(results_id=results_id)

        response = await self.http.get(url, auth=auth)
        try:
            return response.json()
        except ValueError:
            logger.warning("Failed to parse batch results body: %s", response.text[:500])
            return None


def format_results(results: Any) -> str:
    """Render batch results compactly for a single log line."""
    return json.dumps(results, separators=(",", ":"), sort_keys=True)
