"""
Exception hierarchy for appbatch.

Everything raised on purpose derives from :class:`AppBatchError`, whose
``details`` mapping carries the structured context (config path, URL, HTTP
status, credential keys) that the CLI prints and debug logging records.

Batch-level outcomes such as a poll timeout or an unexpected remote status
are not exceptions; they are recorded as
:class:`~appbatch.models.job.BatchState` values by the orchestrator.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence

#: Longest response excerpt kept in ``details``.
MAX_DETAIL_LENGTH = 200


def _compact(**values: Any) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _excerpt(text: Optional[str]) -> Optional[str]:
    if text is None or len(text) <= MAX_DETAIL_LENGTH:
        return text
    return text[:MAX_DETAIL_LENGTH] + "..."


class AppBatchError(Exception):
    """Base class for appbatch errors.

    Args:
        message: Human-readable error message.
        details: Structured context, rendered as ``key=value`` pairs.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.details: MutableMapping[str, Any] = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


class ConfigError(AppBatchError):
    """Configuration is missing, unreadable or out of range.

    Also raised at run time for an empty compatibility tag or a missing
    instance URL.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        super().__init__(message, _compact(path=config_path, option=option))
        self.config_path = config_path
        self.option = option


class AuthMissingError(AppBatchError):
    """API credentials are absent.

    Fatal to the whole run and raised before any network call. ``keys``
    names the credential properties that were looked up.
    """

    __slots__ = ("keys",)

    def __init__(
        self,
        message: str,
        *,
        keys: Optional[Sequence[str]] = None,
    ) -> None:
        self.keys = tuple(keys or ())
        super().__init__(message, _compact(keys=", ".join(self.keys) or None))


class NetworkError(AppBatchError):
    """An HTTP request failed or was answered with an error status.

    ``response_body`` keeps the whole body; ``details`` only an excerpt.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            _compact(url=url, status_code=status_code, response=_excerpt(response_body)),
        )
        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class MalformedResponseError(NetworkError):
    """A response body could not be decoded or lacks required fields."""

    __slots__ = ()
