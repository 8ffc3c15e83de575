"""
Async HTTP transport for appbatch.

One :class:`HTTPClient` is shared by the catalog and the CI/CD job client.
Credentials are passed per request by their owners. Only idempotent
methods are retried, on timeouts, connection failures and 5xx responses;
the batch install POST is sent once because a retried submission could start
the same installation twice.
"""

from __future__ import annotations

import random
import asyncio
from typing import Any, Dict, Optional, cast

import httpx

from appbatch.utils.logger import get_logger
from appbatch.__version__ import __version__
from appbatch.exceptions import MalformedResponseError, NetworkError
from appbatch.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")

_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Dropped or reset connections, including http2 "server disconnected".
_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


class HTTPClient:
    """Shared ``httpx.AsyncClient`` wrapper speaking JSON.

    Args:
        timeout: Request timeout in seconds.
        max_retries: Extra attempts for idempotent requests.
        verify_ssl: Whether to verify TLS certificates.
        user_agent: User-Agent header; ``appbatch/<version>`` by default.
        transport: httpx transport override (``httpx.MockTransport`` in tests).

    Example:
        >>> async with HTTPClient(max_retries=2) as http:
        ...     body = await http.get_json(url, auth=credentials.as_auth())
    """

    def __init__(
        self,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HTTPClient":
        self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    def _open(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and return a successful response.

        Raises:
            NetworkError: A 4xx response or a non-transient transport error
                (immediately), or transient failures that outlasted every
                allowed attempt.
        """
        client = self._open()
        method = method.upper()
        attempts = 1 + (self.max_retries if method in _IDEMPOTENT_METHODS else 0)

        cause: Optional[Exception] = None
        failed_response: Optional[httpx.Response] = None

        for attempt in range(1, attempts + 1):
            try:
                response = await client.request(method, url, **kwargs)
            except _TRANSIENT_ERRORS as exc:
                cause, failed_response = exc, None
                logger.warning(
                    "%s %s failed (%d/%d): %s",
                    method, url, attempt, attempts, type(exc).__name__,
                )
            except httpx.HTTPError as exc:
                # Proxy, protocol scheme and redirect failures do not heal on retry.
                raise NetworkError(
                    f"{method} {url} failed: {type(exc).__name__}: {exc}", url=url
                ) from exc
            else:
                if response.status_code < 400:
                    return response
                if response.status_code < 500:
                    raise _status_error(method, url, response)
                cause, failed_response = None, response
                logger.warning(
                    "%s %s returned HTTP %d (%d/%d)",
                    method, url, response.status_code, attempt, attempts,
                )

            if attempt < attempts:
                delay = 2 ** (attempt - 1) + random.uniform(0.0, 0.3)
                logger.debug("Retrying in %.2fs", delay)
                await asyncio.sleep(delay)

        raise NetworkError(
            f"{method} {url} failed after {attempts} attempt(s)",
            url=url,
            status_code=failed_response.status_code if failed_response else None,
            response_body=failed_response.text if failed_response else None,
        ) from cause

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """POST once; submissions are never retried."""
        return await self.request("POST", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        return decode_json_object(await self.get(url, **kwargs), url)


def _status_error(method: str, url: str, response: httpx.Response) -> NetworkError:
    if response.status_code == 404:
        message = f"Resource not found: {url}"
    else:
        message = f"HTTP {response.status_code} error for {method} {url}"
    return NetworkError(
        message,
        url=url,
        status_code=response.status_code,
        response_body=response.text,
    )


def decode_json_object(response: httpx.Response, url: str) -> Dict[str, Any]:
    """Decode a response body that must be a JSON object.

    Raises:
        MalformedResponseError: Body is not JSON or not an object.
    """
    try:
        data = response.json()
    except ValueError as exc:
        raise MalformedResponseError(
            f"Invalid JSON response from {url}",
            url=url,
            status_code=response.status_code,
            response_body=response.text,
        ) from exc

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected JSON object from {url}",
            url=url,
            status_code=response.status_code,
            response_body=response.text,
        )

    return cast(Dict[str, Any], data)
