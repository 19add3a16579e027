"""Advisories from Rocky Linux updateinfo errata."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import Advisories, Advisory, DataSource, Severity, SourceID, VulnerabilityDetail
from .store import Store, StoreError, walk_json_files

logger = logging.getLogger(__name__)

_ROCKY_DIR = "rocky"
_PLATFORM_FORMAT = "rocky {}"

_TARGET_REPOS = ("BaseOS", "AppStream", "extras")
_TARGET_ARCHES = ("x86_64", "aarch64")

_SOURCE = DataSource(
    id=SourceID.ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"failed to decode Rocky erratum: {key} is not a string")
    return value


def _list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"failed to decode Rocky erratum: {key} is not a list")
    return value


def _obj(value: Any, key: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"failed to decode Rocky erratum: {key} is not an object")
    return value


@dataclass
class Package:
    """An affected package named in an erratum."""

    name: str = ""
    epoch: str = ""
    version: str = ""
    release: str = ""
    arch: str = ""
    filename: str = ""


@dataclass
class _Reference:
    href: str = ""
    id: str = ""
    title: str = ""
    type: str = ""


@dataclass
class Erratum:
    """A Rocky Linux security advisory (RLSA)."""

    id: str = ""
    title: str = ""
    severity: str = ""
    description: str = ""
    packages: list[Package] = field(default_factory=list)
    references: list[_Reference] = field(default_factory=list)
    cve_ids: list[str] = field(default_factory=list)
    issued_date: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Erratum:
        if not isinstance(data, dict):
            raise ValueError("failed to decode Rocky erratum: not an object")
        packages = []
        for item in _list(data, "packages"):
            pkg = _obj(item, "packages")
            packages.append(Package(
                name=_str(pkg, "name"),
                epoch=_str(pkg, "epoch"),
                version=_str(pkg, "version"),
                release=_str(pkg, "release"),
                arch=_str(pkg, "arch"),
                filename=_str(pkg, "filename"),
            ))
        references = []
        for item in _list(data, "references"):
            ref = _obj(item, "references")
            references.append(_Reference(
                href=_str(ref, "href"),
                id=_str(ref, "id"),
                title=_str(ref, "title"),
                type=_str(ref, "type"),
            ))
        cve_ids = _list(data, "cveids")
        if not all(isinstance(c, str) for c in cve_ids):
            raise ValueError("failed to decode Rocky erratum: cveids must hold strings")
        issued = _obj(data.get("issued"), "issued")
        return cls(
            id=_str(data, "id"),
            title=_str(data, "title"),
            severity=_str(data, "severity"),
            description=_str(data, "description"),
            packages=packages,
            references=references,
            cve_ids=list(cve_ids),
            issued_date=_str(issued, "date"),
        )


@dataclass
class PutInput:
    """Everything stored for one CVE on one platform."""

    platform_name: str = ""
    cve_id: str = ""
    vuln: VulnerabilityDetail = field(default_factory=VulnerabilityDetail)
    advisories: dict[str, Advisories] = field(default_factory=dict)
    erratum: Erratum | None = None


def construct_version(epoch: str, version: str, release: str) -> str:
    """Build an "epoch:version-release" string, leaving out a zero epoch."""
    result = f"{epoch}:" if epoch not in ("", "0") else ""
    result += version
    if release:
        result += f"-{release}"
    return result


def generalize_severity(severity: str) -> Severity:
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity.lower(), Severity.UNKNOWN)


def fixed_version(prev_version: str, new_version: str, arch: str) -> str:
    """Only x86_64 and noarch packages update the legacy top-level fixed version."""
    if arch in ("x86_64", "noarch"):
        return new_version
    return prev_version


class RockySource:
    """Loads Rocky Linux errata into a store and answers lookups."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def name(self) -> SourceID:
        return SourceID.ROCKY

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory) / "vuln-list" / _ROCKY_DIR
        self._put(self._parse(root))

    def _parse(self, root: Path) -> dict[str, list[Erratum]]:
        errata: dict[str, list[Erratum]] = {}
        for path, text in walk_json_files(root):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"failed to decode Rocky erratum: {path}: {exc}") from exc
            erratum = Erratum.from_dict(data)

            dirs = path.relative_to(root).parts
            if len(dirs) != 5:
                logger.warning("Invalid path: %s", path)
                continue

            # Errata live in directories named by minor version, e.g. 8.5.
            major = dirs[0].split(".", 1)[0]
            repo, arch = dirs[1], dirs[2]
            if repo not in _TARGET_REPOS:
                logger.warning("Unsupported Rocky repo: %s", repo)
                continue
            if arch not in _TARGET_ARCHES:
                logger.warning("Unsupported Rocky arch: %s", arch)
                continue
            errata.setdefault(major, []).append(erratum)
        return errata

    def _put(self, errata_by_version: dict[str, list[Erratum]]) -> None:
        with self.store.batch_update() as store:
            for major, errata in errata_by_version.items():
                platform_name = _PLATFORM_FORMAT.format(major)
                store.put_data_source(platform_name, _SOURCE)
                self._commit(store, platform_name, errata)

    def _commit(self, store: Store, platform_name: str, errata: list[Erratum]) -> None:
        saved: dict[str, PutInput] = {}
        for erratum in errata:
            for cve_id in erratum.cve_ids:
                put_input = saved.get(cve_id) or PutInput()
                for pkg in erratum.packages:
                    # Modular packages are skipped: their errata are incomplete upstream.
                    if ".module+el" in pkg.release:
                        continue
                    entry = Advisory(
                        fixed_version=construct_version(pkg.epoch, pkg.version, pkg.release),
                        arches=[pkg.arch],
                        vendor_ids=[erratum.id],
                    )
                    advisories = put_input.advisories.get(pkg.name)
                    if advisories is None:
                        # Non-x86_64 arches store 0.0.0 so older readers avoid false positives.
                        put_input.advisories[pkg.name] = Advisories(
                            fixed_version=fixed_version("0.0.0", entry.fixed_version, pkg.arch),
                            entries=[entry],
                        )
                        continue

                    advisories.fixed_version = fixed_version(
                        advisories.fixed_version, entry.fixed_version, pkg.arch)
                    old = next((e for e in advisories.entries
                                if e.fixed_version == entry.fixed_version), None)
                    if old is None:
                        advisories.entries.append(entry)
                        continue
                    if pkg.arch not in old.arches:
                        old.arches.append(pkg.arch)
                    if erratum.id not in old.vendor_ids:
                        old.vendor_ids.append(erratum.id)

                if not put_input.advisories:
                    continue

                put_input.platform_name = platform_name
                put_input.cve_id = cve_id
                put_input.vuln = VulnerabilityDetail(
                    severity=generalize_severity(erratum.severity),
                    references=[ref.href for ref in erratum.references],
                    title=erratum.title,
                    description=erratum.description,
                )
                put_input.erratum = erratum
                saved[cve_id] = put_input

        for put_input in saved.values():
            self._put_input(store, put_input)

    @staticmethod
    def _put_input(store: Store, put_input: PutInput) -> None:
        store.put_vulnerability_detail(put_input.cve_id, SourceID.ROCKY, put_input.vuln)
        store.put_vulnerability_id(put_input.cve_id)
        for pkg_name, advisories in put_input.advisories.items():
            for entry in advisories.entries:
                entry.arches.sort()
                entry.vendor_ids.sort()
            store.put_advisory_detail(
                put_input.cve_id, pkg_name, [put_input.platform_name], advisories)

    def get(self, release: str, pkg_name: str, arch: str) -> list[Advisory]:
        """Advisories for a package on a Rocky release and architecture."""
        bucket = _PLATFORM_FORMAT.format(release)
        result: list[Advisory] = []
        for vuln_id, raw in self.store.for_each_advisory([bucket], pkg_name).items():
            try:
                data = json.loads(raw.content)
                if not isinstance(data, dict):
                    raise ValueError("not an object")
                stored = Advisories.from_dict(data)
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc

            # Older databases hold only a fixed version and custom data.
            if not stored.entries:
                result.append(Advisory(
                    vulnerability_id=vuln_id,
                    fixed_version=stored.fixed_version,
                    data_source=raw.source,
                    custom=stored.custom,
                ))
                continue

            for entry in stored.entries:
                if arch not in entry.arches:
                    continue
                entry.vulnerability_id = vuln_id
                entry.data_source = raw.source
                result.append(entry)
        return result