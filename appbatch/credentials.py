"""
Credential lookup for appbatch.

Credentials are addressed by property keys (``sn.cicd.api.user`` and
``sn.cicd.api.pwd`` by default). :class:`EnvironmentCredentialSource`
resolves a key to an environment variable by upper-casing it and replacing
dots and dashes with underscores, so ``sn.cicd.api.user`` is read from
``SN_CICD_API_USER``.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, Sequence

import httpx

from appbatch.exceptions import AuthMissingError


@dataclass(frozen=True)
class Credentials:
    """Username/password pair for HTTP Basic authentication."""

    username: str
    password: str = field(repr=False)

    def as_auth(self) -> httpx.BasicAuth:
        """Return an httpx auth object for these credentials."""
        return httpx.BasicAuth(self.username, self.password)


class CredentialSource(Protocol):
    """Anything that can look up a secret value by property key."""

    def get(self, key: str) -> Optional[str]: ...


class EnvironmentCredentialSource:
    """Look up credential properties in environment variables.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = os.environ if environ is None else environ

    @staticmethod
    def variable_name(key: str) -> str:
        """Return the environment variable holding property ``key``."""
        return re.sub(r"[.\-]", "_", key).upper()

    def get(self, key: str) -> Optional[str]:
        value = self._environ.get(self.variable_name(key), "")
        return value or None


def load_credentials(
    source: CredentialSource,
    user_key: str,
    password_key: str,
) -> Optional[Credentials]:
    """Resolve the API credentials.

    Returns:
        :class:`Credentials`, or ``None`` when either half is missing.
        Callers raise :class:`~appbatch.exceptions.AuthMissingError`
        before any network call in that case.
    """
    username = source.get(user_key)
    password = source.get(password_key)
    if not username or not password:
        return None
    return Credentials(username=username, password=password)


def require_credentials(
    credentials: Optional[Credentials],
    keys: Sequence[str] = (),
) -> Credentials:
    """Return ``credentials`` or fail before any network I/O.

    Raises:
        AuthMissingError: ``credentials`` is ``None``.
    """
    if credentials is None:
        raise AuthMissingError(
            "Missing API credentials; set the user and password properties",
            keys=keys,
        )
    return credentials
