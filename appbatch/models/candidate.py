"""
Upgrade candidate models for appbatch.

A :class:`VersionCandidate` is one application selected for upgrade with
its resolved target version. :class:`ResolutionResult` is the outcome of a
discovery pass and renders the machine-readable summary printed before any
installation starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class VersionCandidate:
    """An application selected for upgrade.

    Attributes:
        id: Identifier of the installed application record.
        display_name: Application name.
        current_version: Installed version.
        requested_version: Resolved target version (strictly newer).
        load_demo_data: Whether the install should load demo data.
        type: Package type sent to the install service.
    """

    id: str
    display_name: str
    current_version: str
    requested_version: str
    load_demo_data: bool = False
    type: str = "application"

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire representation used by the batch install API."""
        return {
            "id": self.id,
            "load_demo_data": self.load_demo_data,
            "displayName": self.display_name,
            "type": self.type,
            "requested_version": self.requested_version,
            "current_version": self.current_version,
        }

    def summary_line(self) -> str:
        """Return a one-line summary used in batch logs."""
        return (
            f"{self.display_name} | {self.current_version} → "
            f"{self.requested_version} | load_demo_data="
            f"{str(self.load_demo_data).lower()} | id={self.id}"
        )


@dataclass
class ResolutionResult:
    """Outcome of one candidate discovery pass.

    Attributes:
        candidates: Candidates in discovery order, at most ``limit`` of them.
        limit: Configured candidate limit.
        limit_reached: True when more candidates existed than ``limit``.
        elapsed_ms: Wall time spent resolving, in milliseconds.
    """

    candidates: List[VersionCandidate] = field(default_factory=list)
    limit: int = 0
    limit_reached: bool = False
    elapsed_ms: int = 0

    def __len__(self) -> int:
        return len(self.candidates)

    def __bool__(self) -> bool:
        return bool(self.candidates)

    def to_json(self, name: str) -> Dict[str, Any]:
        """Return the machine-readable discovery summary.

        Args:
            name: Planned job name included in the payload preview.
        """
        return {
            "total": len(self.candidates),
            "limit": self.limit,
            "limit_reached": self.limit_reached,
            "elapsed_ms": self.elapsed_ms,
            "payload": {
                "packages": [c.to_payload() for c in self.candidates],
                "name": name,
            },
        }
