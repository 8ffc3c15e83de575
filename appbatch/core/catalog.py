"""Catalog access for appbatch.

The catalog answers two questions during discovery:

1. Which installed applications flagged with an update are compatible with
   the instance build family? (ordered by name, then version)
2. Which other versions of a given application are compatible?

:class:`TableAPICatalog` asks a live instance through the Table API using
the same encoded queries the CI/CD tooling relies on.
:class:`InMemoryCatalog` answers from a JSON snapshot, which makes offline
planning and tests possible.

Snapshot format::

    {
      "apps": [
        {"id": "a1", "name": "x_acme_app", "version": "1.0.0",
         "demo_data": "demo_data_loaded", "compatibilities": ["washingtondc"]}
      ],
      "versions": [
        {"source_app_id": "a1", "version": "1.2.0",
         "compatibilities": ["washingtondc"]}
      ]
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from appbatch.credentials import Credentials, require_credentials
from appbatch.exceptions import ConfigError, MalformedResponseError
from appbatch.models.record import AppVersionRecord, PackageRecord
from appbatch.utils.http import HTTPClient
from appbatch.utils.logger import get_logger
from appbatch.constants import (
    APP_VERSION_TABLE,
    BUILD_NAME_PROPERTY,
    STORE_APP_TABLE,
    SYS_PROPERTIES_TABLE,
    SYSTEM_APP_PREFIX,
    TABLE_API_PATH,
    TABLE_PAGE_SIZE,
)

logger = get_logger("catalog")

__all__ = ["Catalog", "TableAPICatalog", "InMemoryCatalog"]


class Catalog(Protocol):
    """Read access to installed applications and their available versions."""

    async def list_installed(
        self,
        compatibility_tag: str,
        include_system: bool,
    ) -> List[PackageRecord]:
        """Return update-flagged, compatible installed apps ordered by name, version."""
        ...

    async def list_versions(
        self,
        app_id: str,
        compatibility_tag: str,
        exclude_version: str,
    ) -> List[str]:
        """Return compatible versions of ``app_id`` other than ``exclude_version``."""
        ...


# ---------------------------------------------------------------------------
# Table API
# ---------------------------------------------------------------------------


class TableAPICatalog:
    """Catalog backed by the instance Table API.

    Args:
        http: Shared HTTP client.
        base_url: Instance URL without trailing slash.
        credentials: API credentials; absence fails before any request.
        credential_keys: Property keys reported when credentials are missing.
        page_size: Rows requested per page.
    """

    def __init__(
        self,
        http: HTTPClient,
        base_url: str,
        credentials: Optional[Credentials],
        *,
        credential_keys: Sequence[str] = (),
        page_size: int = TABLE_PAGE_SIZE,
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.credential_keys = tuple(credential_keys)
        self.page_size = page_size

    async def list_installed(
        self,
        compatibility_tag: str,
        include_system: bool,
    ) -> List[PackageRecord]:
        query = f"update_available=true^compatibilitiesLIKE{compatibility_tag}"
        if not include_system:
            query += f"^nameNOT LIKE{SYSTEM_APP_PREFIX}"
        query += "^ORDERBYname^ORDERBYversion"

        rows = await self._query(
            STORE_APP_TABLE,
            query,
            fields=("sys_id", "name", "version", "demo_data", "compatibilities"),
        )
        return [PackageRecord.from_row(row) for row in rows]

    async def list_versions(
        self,
        app_id: str,
        compatibility_tag: str,
        exclude_version: str,
    ) -> List[str]:
        query = (
            f"source_app_id={app_id}"
            f"^compatibilitiesLIKE{compatibility_tag}"
            f"^version!={exclude_version}"
            "^ORDERBYDESCversion"
        )
        rows = await self._query(APP_VERSION_TABLE, query, fields=("version",))
        return [str(row["version"]) for row in rows if row.get("version")]

    async def fetch_build_name(self) -> str:
        """Return the instance build family (``glide.buildname``), or ``""``."""
        rows = await self._query(
            SYS_PROPERTIES_TABLE,
            f"name={BUILD_NAME_PROPERTY}",
            fields=("value",),
            limit=1,
        )
        return str(rows[0].get("value") or "") if rows else ""

    async def _query(
        self,
        table: str,
        query: str,
        *,
        fields: Iterable[str],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Run an encoded query, following pages until a short page is returned."""
        auth = require_credentials(self.credentials, self.credential_keys).as_auth()
        url = self.base_url + TABLE_API_PATH.format(table=table)
        page_size = min(limit, self.page_size) if limit else self.page_size

        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            params = {
                "sysparm_query": query,
                "sysparm_fields": ",".join(fields),
                "sysparm_limit": str(page_size),
                "sysparm_offset": str(offset),
                "sysparm_exclude_reference_link": "true",
            }
            data = await self.http.get_json(url, params=params, auth=auth)
            page = data.get("result")
            if not isinstance(page, list):
                raise MalformedResponseError(
                    f"Table API response for {table} has no result list",
                    url=url,
                    response_body=json.dumps(data)[:1000],
                )

            rows.extend(row for row in page if isinstance(row, dict))
            logger.debug("%s: fetched %d row(s) at offset %d", table, len(page), offset)

            if len(page) < page_size or (limit is not None and len(rows) >= limit):
                break
            offset += page_size

        return rows[:limit] if limit is not None else rows


# ---------------------------------------------------------------------------
# In-memory snapshot
# ---------------------------------------------------------------------------


class InMemoryCatalog:
    """Catalog answering from in-memory records.

    Args:
        apps: Installed application records, in any order.
        versions: Available version records.
    """

    def __init__(
        self,
        apps: Iterable[PackageRecord],
        versions: Iterable[AppVersionRecord] = (),
    ) -> None:
        self.apps = list(apps)
        self.versions = list(versions)

    @classmethod
    def from_file(cls, path: Path) -> "InMemoryCatalog":
        """Load a JSON catalog snapshot.

        Raises:
            ConfigError: The file cannot be read or has the wrong shape.
        """
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(
                f"Cannot load catalog snapshot {path}: {exc}",
                config_path=str(path),
            ) from exc

        if not isinstance(raw, dict) or not isinstance(raw.get("apps", []), list):
            raise ConfigError(
                "Catalog snapshot must be an object with an 'apps' list",
                config_path=str(path),
            )

        return cls(
            apps=[PackageRecord.from_row(row) for row in raw.get("apps", [])],
            versions=[AppVersionRecord.from_row(row) for row in raw.get("versions", [])],
        )

    async def list_installed(
        self,
        compatibility_tag: str,
        include_system: bool,
    ) -> List[PackageRecord]:
        selected = [
            app
            for app in self.apps
            if app.update_available
            and app.is_compatible(compatibility_tag)
            and (include_system or not app.is_system)
        ]
        return sorted(selected, key=lambda app: (app.name, app.version))

    async def list_versions(
        self,
        app_id: str,
        compatibility_tag: str,
        exclude_version: str,
    ) -> List[str]:
        return [
            v.version
            for v in self.versions
            if v.source_app_id == app_id
            and v.version != exclude_version
            and v.is_compatible(compatibility_tag)
        ]
