"""
Catalog record models for appbatch.

Immutable snapshots of the rows a catalog returns during one discovery
pass: installed store applications and their available versions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Mapping, Union

from appbatch.constants import DEMO_DATA_LOADED, SYSTEM_APP_PREFIX


def _parse_tags(raw: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Normalize a compatibility field into a set of tags.

    The Table API returns a comma separated string; snapshot files may
    use a JSON list.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        parts: Iterable[str] = raw.split(",")
    else:
        parts = raw
    return frozenset(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True)
class PackageRecord:
    """An installed store application as seen in the catalog.

    Attributes:
        id: Unique record identifier (``sys_id``).
        name: Application name; system applications start with ``@``.
        version: Installed version.
        demo_data: Raw demo-data state, ``"demo_data_loaded"`` when loaded.
        compatibilities: Compatibility tags (instance build families).
        update_available: Whether the catalog flags a newer version.
    """

    id: str
    name: str
    version: str
    demo_data: str = ""
    compatibilities: FrozenSet[str] = field(default_factory=frozenset)
    update_available: bool = True

    @property
    def demo_data_loaded(self) -> bool:
        """True when demo data is currently loaded for this application."""
        return self.demo_data == DEMO_DATA_LOADED

    @property
    def is_system(self) -> bool:
        """True for system applications (names starting with ``@``)."""
        return self.name.startswith(SYSTEM_APP_PREFIX)

    def is_compatible(self, tag: str) -> bool:
        """Return True when the record matches compatibility ``tag``."""
        return any(tag in entry for entry in self.compatibilities)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PackageRecord":
        """Build a record from a catalog row.

        Accepts Table API rows (``sys_id``) and snapshot rows (``id``).
        """
        update_available = row.get("update_available", True)
        if isinstance(update_available, str):
            update_available = update_available.lower() == "true"

        return cls(
            id=str(row.get("sys_id") or row.get("id") or ""),
            name=str(row.get("name") or ""),
            version=str(row.get("version") or ""),
            demo_data=str(row.get("demo_data") or ""),
            compatibilities=_parse_tags(row.get("compatibilities")),
            update_available=bool(update_available),
        )


@dataclass(frozen=True)
class AppVersionRecord:
    """An available version of a store application.

    Attributes:
        source_app_id: Identifier of the installed application record.
        version: Available version string.
        compatibilities: Compatibility tags of this version.
    """

    source_app_id: str
    version: str
    compatibilities: FrozenSet[str] = field(default_factory=frozenset)

    def is_compatible(self, tag: str) -> bool:
        """Return True when this version matches compatibility ``tag``."""
        return any(tag in entry for entry in self.compatibilities)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AppVersionRecord":
        """Build a version record from a catalog row."""
        return cls(
            source_app_id=str(row.get("source_app_id") or ""),
            version=str(row.get("version") or ""),
            compatibilities=_parse_tags(row.get("compatibilities")),
        )
