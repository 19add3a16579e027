"""Advisories from the Ubuntu CVE tracker."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import Advisory, DataSource, Severity, SourceID, VulnerabilityDetail
from .store import Store, StoreError, walk_json_files

logger = logging.getLogger(__name__)

_UBUNTU_DIR = "ubuntu"
_PLATFORM_FORMAT = "ubuntu {}"
_TARGET_STATUSES = ("needed", "deferred", "released")

UBUNTU_RELEASES = {
    "precise": "12.04",
    "quantal": "12.10",
    "raring": "13.04",
    "saucy": "13.10",
    "trusty": "14.04",
    "utopic": "14.10",
    "vivid": "15.04",
    "wily": "15.10",
    "xenial": "16.04",
    "yakkety": "16.10",
    "zesty": "17.04",
    "artful": "17.10",
    "bionic": "18.04",
    "cosmic": "18.10",
    "disco": "19.04",
    "eoan": "19.10",
    "focal": "20.04",
    "groovy": "20.10",
    "hirsute": "21.04",
    "impish": "21.10",
    "jammy": "22.04",
    "kinetic": "22.10",
    "lunar": "23.04",
    "mantic": "23.10",
    "noble": "24.04",
    # ESM releases
    "precise/esm": "12.04-ESM",
    "trusty/esm": "14.04-ESM",
    "esm-infra/xenial": "16.04-ESM",
}

_SOURCE = DataSource(
    id=SourceID.UBUNTU,
    name="Ubuntu CVE Tracker",
    url="https://git.launchpad.net/ubuntu-cve-tracker",
)


def _field(obj: dict[str, Any], name: str) -> Any:
    # Field names match case-insensitively, exact match first.
    if name in obj:
        return obj[name]
    lowered = name.lower()
    return next((v for k, v in obj.items() if k.lower() == lowered), None)


def _str(obj: dict[str, Any], name: str) -> str:
    value = _field(obj, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"failed to decode Ubuntu JSON: {name} is not a string")
    return value


def _dict(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"failed to decode Ubuntu JSON: {name} is not an object")
    return value


@dataclass
class _PatchStatus:
    status: str = ""
    note: str = ""


@dataclass
class UbuntuCVE:
    """One CVE record of the Ubuntu CVE tracker."""

    description: str = ""
    candidate: str = ""
    priority: str = ""
    patches: dict[str, dict[str, _PatchStatus]] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    public_date: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> UbuntuCVE:
        if not isinstance(data, dict):
            raise ValueError("failed to decode Ubuntu JSON: not an object")
        patches: dict[str, dict[str, _PatchStatus]] = {}
        for pkg_name, patch in _dict(_field(data, "Patches"), "Patches").items():
            releases = {}
            for release, status in _dict(patch, "Patches").items():
                status = _dict(status, "Status")
                releases[release] = _PatchStatus(_str(status, "Status"), _str(status, "Note"))
            patches[pkg_name] = releases

        references = _field(data, "References") or []
        if not isinstance(references, list) or not all(isinstance(r, str) for r in references):
            raise ValueError("failed to decode Ubuntu JSON: References must be a list of strings")

        return cls(
            description=_str(data, "description"),
            candidate=_str(data, "Candidate"),
            priority=_str(data, "Priority"),
            patches=patches,
            references=list(references),
            public_date=_str(data, "PublicDate"),
        )


def severity_from_priority(priority: str) -> Severity:
    """Convert an Ubuntu priority into a severity."""
    return {
        "untriaged": Severity.UNKNOWN,
        "negligible": Severity.LOW,
        "low": Severity.LOW,
        "medium": Severity.MEDIUM,
        "high": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(priority, Severity.UNKNOWN)


def default_put(store: Store, cve: Any) -> None:
    """Store the advisories and details of one Ubuntu CVE record."""
    if not isinstance(cve, UbuntuCVE):
        raise TypeError("unknown type")

    for pkg_name, patch in cve.patches.items():
        for release, status in patch.items():
            if status.status not in _TARGET_STATUSES:
                continue
            os_version = UBUNTU_RELEASES.get(release)
            if os_version is None:
                continue
            platform_name = _PLATFORM_FORMAT.format(os_version)
            store.put_data_source(platform_name, _SOURCE)

            advisory = Advisory()
            if status.status == "released":
                advisory.fixed_version = status.note
            store.put_advisory_detail(cve.candidate, pkg_name, [platform_name], advisory)

            detail = VulnerabilityDetail(
                severity=severity_from_priority(cve.priority),
                references=list(cve.references),
                description=cve.description,
            )
            store.put_vulnerability_detail(cve.candidate, SourceID.UBUNTU, detail)
            store.put_vulnerability_id(cve.candidate)


class UbuntuSource:
    """Loads Ubuntu CVE tracker records into a store and answers lookups."""

    def __init__(self, store: Store,
                 put: Callable[[Store, Any], None] | None = None) -> None:
        self.store = store
        self.put = put or default_put

    def name(self) -> SourceID:
        return SourceID.UBUNTU

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory) / "vuln-list" / _UBUNTU_DIR
        cves = []
        for path, text in walk_json_files(root):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"failed to decode Ubuntu JSON: {path}: {exc}") from exc
            cves.append(UbuntuCVE.from_dict(data))

        logger.info("Saving Ubuntu DB")
        with self.store.batch_update() as store:
            for cve in cves:
                self.put(store, cve)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        bucket = _PLATFORM_FORMAT.format(release)
        try:
            return self.store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get Ubuntu advisories: {exc}") from exc