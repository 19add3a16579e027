"""Stored record types and CPE bookkeeping for Red Hat OVAL advisories."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .models import Severity, Status


class CpeSet:
    """A set of unique CPE names."""

    def __init__(self, cpes: Iterable[str] = ()) -> None:
        self._cpes: set[str] = set()
        self.update(cpes)

    def add(self, cpe: str) -> None:
        self._cpes.add(cpe)

    def update(self, cpes: Iterable[str]) -> None:
        """Add CPE names, trimming whitespace and skipping blank ones."""
        for cpe in cpes:
            cpe = cpe.strip()
            if cpe:
                self._cpes.add(cpe)

    def to_list(self) -> CpeList:
        return CpeList(sorted(self._cpes))

    def __contains__(self, cpe: object) -> bool:
        return cpe in self._cpes

    def __len__(self) -> int:
        return len(self._cpes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._cpes)


class CpeList(list):
    """A sorted list of CPE names whose positions serve as compact indices."""

    def index_of(self, cpe: str) -> int:
        try:
            return self.index(cpe)
        except ValueError:
            return -1

    def indices(self, cpes: Iterable[str]) -> list[int]:
        return sorted(self.index_of(cpe) for cpe in cpes)


@dataclass
class CveEntry:
    id: str = ""
    # Severity may differ by platform even for the same CVE.
    severity: Severity = Severity.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id:
            data["ID"] = self.id
        if self.severity:
            data["Severity"] = int(self.severity)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CveEntry:
        return cls(id=data.get("ID", ""), severity=Severity(data.get("Severity", 0)))


@dataclass
class Entry:
    """Advisory information unique per platform.

    CPE names are kept in memory only; the stored form carries their indices.
    """

    fixed_version: str = ""
    cves: list[CveEntry] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    affected_cpe_list: list[str] = field(default_factory=list)
    affected_cpe_indices: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.fixed_version:
            data["FixedVersion"] = self.fixed_version
        data["Cves"] = [cve.to_dict() for cve in self.cves] or None
        if self.arches:
            data["Arches"] = list(self.arches)
        if self.affected_cpe_indices:
            data["Affected"] = list(self.affected_cpe_indices)
        if self.status:
            data["Status"] = int(self.status)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Entry:
        return cls(
            fixed_version=data.get("FixedVersion", ""),
            cves=[CveEntry.from_dict(c) for c in data.get("Cves") or []],
            arches=list(data.get("Arches") or []),
            status=Status(data.get("Status", 0)),
            affected_cpe_indices=list(data.get("Affected") or []),
        )


@dataclass
class OvalAdvisory:
    entries: list[Entry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if not self.entries:
            return {}
        return {"Entries": [entry.to_dict() for entry in self.entries]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OvalAdvisory:
        return cls(entries=[Entry.from_dict(e) for e in data.get("Entries") or []])