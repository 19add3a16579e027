"""Advisories from SUSE and openSUSE CVRF documents."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any

from .models import Advisory, DataSource, Severity, SourceID, VulnerabilityDetail
from .store import Store, StoreError, walk_json_files

logger = logging.getLogger(__name__)

_OPENSUSE_LEAP_FORMAT = "openSUSE Leap {}"
_OPENSUSE_TUMBLEWEED = "openSUSE Tumbleweed"
_SUSE_LINUX_FORMAT = "SUSE Linux Enterprise {}"
_SUSE_LINUX_MICRO_FORMAT = "SUSE Linux Enterprise Micro {}"

_SOURCE = DataSource(
    id=SourceID.SUSE_CVRF,
    name="SUSE CVRF",
    url="https://ftp.suse.com/pub/projects/security/cvrf/",
)

_VERSION_RE = re.compile(
    r"v?([0-9]+(\.[0-9]+)*?)"
    r"(-([0-9]+[0-9A-Za-z\-~]*(\.[0-9A-Za-z\-~]+)*)"
    r"|(-?([A-Za-z\-~]+[0-9A-Za-z\-~]*(\.[0-9A-Za-z\-~]+)*)))?"
    r"(\+([0-9A-Za-z\-~]+(\.[0-9A-Za-z\-~]+)*))?"
)
_INT_RE = re.compile(r"[+-]?[0-9]+")


class Distribution(IntEnum):
    SUSE_ENTERPRISE_LINUX = 0
    SUSE_ENTERPRISE_LINUX_MICRO = 1
    OPENSUSE = 2
    OPENSUSE_TUMBLEWEED = 3


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
        raise ValueError(f"failed to decode SUSE CVRF JSON: {name} is not a string")
    return value


def _obj(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"failed to decode SUSE CVRF JSON: {name} is not an object")
    return value


def _objects(obj: dict[str, Any], name: str) -> list[dict[str, Any]]:
    value = _field(obj, name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"failed to decode SUSE CVRF JSON: {name} is not a list")
    return [_obj(item, name) for item in value]


@dataclass
class _Note:
    text: str = ""
    title: str = ""
    type: str = ""


@dataclass
class _Relationship:
    product_reference: str = ""
    relates_to_product_reference: str = ""
    relation_type: str = ""


@dataclass
class _Reference:
    url: str = ""
    description: str = ""


@dataclass
class _Threat:
    type: str = ""
    severity: str = ""


@dataclass
class _Vulnerability:
    cve: str = ""
    description: str = ""
    threats: list[_Threat] = field(default_factory=list)


@dataclass
class SuseCvrf:
    """One SUSE CVRF document."""

    title: str = ""
    tracking_id: str = ""
    notes: list[_Note] = field(default_factory=list)
    relationships: list[_Relationship] = field(default_factory=list)
    references: list[_Reference] = field(default_factory=list)
    vulnerabilities: list[_Vulnerability] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> SuseCvrf:
        if not isinstance(data, dict):
            raise ValueError("failed to decode SUSE CVRF JSON: not an object")
        tracking = _obj(_field(data, "Tracking"), "Tracking")
        product_tree = _obj(_field(data, "ProductTree"), "ProductTree")
        return cls(
            title=_str(data, "Title"),
            tracking_id=_str(tracking, "ID"),
            notes=[_Note(_str(n, "Text"), _str(n, "Title"), _str(n, "Type"))
                   for n in _objects(data, "Notes")],
            relationships=[
                _Relationship(
                    _str(r, "ProductReference"),
                    _str(r, "RelatesToProductReference"),
                    _str(r, "RelationType"),
                )
                for r in _objects(product_tree, "Relationships")
            ],
            references=[_Reference(_str(r, "URL"), _str(r, "Description"))
                        for r in _objects(data, "References")],
            vulnerabilities=[
                _Vulnerability(
                    cve=_str(v, "CVE"),
                    description=_str(v, "Description"),
                    threats=[_Threat(_str(t, "Type"), _str(t, "Severity"))
                             for t in _objects(v, "Threats")],
                )
                for v in _objects(data, "Vulnerabilities")
            ],
        )


@dataclass
class AffectedPackage:
    """A package fixed by a CVRF document on one OS version."""

    name: str = ""
    fixed_version: str = ""
    os_ver: str = ""


def split_pkg_name(pkg_name: str) -> tuple[str, str]:
    """Split "name-version-release" into the name and "version-release"."""
    index = pkg_name.rfind("-")
    if index == -1:
        return "", ""
    version = pkg_name[index:]
    pkg_name = pkg_name[:index]

    index = pkg_name.rfind("-")
    if index == -1:
        return "", ""
    return pkg_name[:index], pkg_name[index + 1:] + version


def _valid_version(text: str) -> bool:
    return _VERSION_RE.fullmatch(text) is not None


def get_os_version(platform_name: str) -> str:
    """Map a CVRF product name to a platform bucket name, or "" if unsupported."""
    if "SUSE Manager" in platform_name:
        return ""
    if platform_name.startswith("openSUSE Tumbleweed"):
        # A rolling release has no version.
        return _OPENSUSE_TUMBLEWEED
    if platform_name.startswith("openSUSE Leap"):
        parts = platform_name.split(" ")
        if len(parts) < 3 or not _valid_version(parts[2]):
            logger.info("invalid version: %s", platform_name)
            return ""
        return _OPENSUSE_LEAP_FORMAT.format(parts[2])
    if platform_name.startswith("SUSE Linux Enterprise Micro"):
        parts = platform_name.split(" ")
        if len(parts) < 5 or not _valid_version(parts[4]):
            logger.info("invalid version: %s", platform_name)
            return ""
        return _SUSE_LINUX_MICRO_FORMAT.format(parts[4])
    if "SUSE Linux Enterprise" in platform_name:
        if platform_name.startswith("SUSE Linux Enterprise Storage"):
            return ""

        words = platform_name.replace("-", " ").split()
        numbers: list[str] = []
        for word in reversed(words[1:]):
            candidate = word.removeprefix("SP")
            if not _INT_RE.fullmatch(candidate):
                continue
            numbers.append(str(int(candidate)))
            if len(numbers) == 2:
                break
        if not numbers:
            logger.info("failed to detect version: %s", platform_name)
            return ""
        if len(numbers) == 1:
            return _SUSE_LINUX_FORMAT.format(numbers[0])
        return _SUSE_LINUX_FORMAT.format(f"{numbers[1]}.{numbers[0]}")

    return ""


def get_affected_packages(relationships: list[_Relationship]) -> list[AffectedPackage]:
    """Packages of the relationships that relate to a supported platform."""
    packages = []
    for relationship in relationships:
        os_ver = get_os_version(relationship.relates_to_product_reference)
        if not os_ver:
            continue
        name, version = split_pkg_name(relationship.product_reference)
        packages.append(AffectedPackage(name=name, fixed_version=version, os_ver=os_ver))
    return packages


def severity_from_threat(severity: str) -> Severity:
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity, Severity.UNKNOWN)


def _detail(notes: list[_Note]) -> str:
    return next((n.text for n in notes if n.type == "General" and n.title == "Details"), "")


class SuseCvrfSource:
    """Loads SUSE or openSUSE CVRF documents into a store and answers lookups."""

    def __init__(self, store: Store,
                 dist: Distribution = Distribution.SUSE_ENTERPRISE_LINUX) -> None:
        self.store = store
        self.dist = Distribution(dist)

    def name(self) -> str:
        if self.dist == Distribution.OPENSUSE:
            return "opensuse-cvrf"
        if self.dist == Distribution.OPENSUSE_TUMBLEWEED:
            return "opensuse-tumbleweed-cvrf"
        return SourceID.SUSE_CVRF

    def update(self, directory: str | os.PathLike[str]) -> None:
        logger.info("Saving SUSE CVRF")
        root = Path(directory) / "vuln-list" / "cvrf" / "suse"
        if self.dist in (Distribution.SUSE_ENTERPRISE_LINUX,
                         Distribution.SUSE_ENTERPRISE_LINUX_MICRO):
            root = root / "suse"
        elif self.dist in (Distribution.OPENSUSE, Distribution.OPENSUSE_TUMBLEWEED):
            root = root / "opensuse"
        else:
            raise ValueError("unknown distribution")

        if not root.is_dir():
            raise FileNotFoundError(f"no such file or directory: {root}")

        cvrfs = []
        for path, text in walk_json_files(root):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"failed to decode SUSE CVRF JSON: {path}: {exc}") from exc
            cvrfs.append(SuseCvrf.from_dict(data))

        with self.store.batch_update() as store:
            for cvrf in cvrfs:
                self._commit(store, cvrf)

    @staticmethod
    def _commit(store: Store, cvrf: SuseCvrf) -> None:
        affected = get_affected_packages(cvrf.relationships)
        if not affected:
            return

        for pkg in affected:
            store.put_data_source(pkg.os_ver, _SOURCE)
            store.put_advisory_detail(cvrf.tracking_id, pkg.name, [pkg.os_ver],
                                      Advisory(fixed_version=pkg.fixed_version))

        severity = max(
            (severity_from_threat(t.severity)
             for v in cvrf.vulnerabilities for t in v.threats),
            default=Severity.UNKNOWN,
        )
        detail = VulnerabilityDetail(
            references=[ref.url for ref in cvrf.references],
            title=cvrf.title,
            description=_detail(cvrf.notes),
            severity=severity,
        )
        store.put_vulnerability_detail(cvrf.tracking_id, SourceID.SUSE_CVRF, detail)
        store.put_vulnerability_id(cvrf.tracking_id)

    def get(self, version: str, pkg_name: str) -> list[Advisory]:
        """Advisories for a package on the given release of this distribution."""
        if self.dist == Distribution.SUSE_ENTERPRISE_LINUX_MICRO:
            bucket = _SUSE_LINUX_MICRO_FORMAT.format(version)
        elif self.dist == Distribution.SUSE_ENTERPRISE_LINUX:
            bucket = _SUSE_LINUX_FORMAT.format(version)
        elif self.dist == Distribution.OPENSUSE:
            bucket = _OPENSUSE_LEAP_FORMAT.format(version)
        elif self.dist == Distribution.OPENSUSE_TUMBLEWEED:
            bucket = _OPENSUSE_TUMBLEWEED
        else:
            raise ValueError("unknown distribution")
        try:
            return self.store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get SUSE advisories: {exc}") from exc