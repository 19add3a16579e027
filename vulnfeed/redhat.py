"""Vulnerability details from the Red Hat security data API."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .models import Severity, SourceID, VulnerabilityDetail
from .store import Store, walk_json_files

logger = logging.getLogger(__name__)

_VULN_LIST_DIR = "vuln-list-redhat"
_API_DIR = "api"
_RESOURCE_URL = "https://access.redhat.com/security/cve/{}"


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _string(obj: dict[str, Any], key: str, owner: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"cannot unmarshal {_kind(value)} into {owner}.{key} of type string")
    return value


def _object(obj: dict[str, Any], key: str, owner: str) -> dict[str, Any]:
    value = obj.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot unmarshal {_kind(value)} into {owner}.{key} of type object")
    return value


def _strings(obj: dict[str, Any], key: str, owner: str) -> list[str]:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"cannot unmarshal {_kind(value)} into {owner}.{key} of type []string")
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"cannot unmarshal {_kind(item)} into {owner}.{key} of type string")
    return list(value)


@dataclass
class _Bugzilla:
    description: str = ""
    id: str = ""
    url: str = ""


@dataclass
class _Cvss:
    base_score: str = ""
    scoring_vector: str = ""
    status: str = ""


@dataclass
class _AffectedRelease:
    product_name: str = ""
    release_date: str = ""
    advisory: str = ""
    package: str = ""
    cpe: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], owner: str) -> _AffectedRelease:
        return cls(**{name: _string(data, name, owner)
                      for name in ("product_name", "release_date", "advisory", "package", "cpe")})


@dataclass
class _PackageState:
    product_name: str = ""
    fix_state: str = ""
    package_name: str = ""
    cpe: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], owner: str) -> _PackageState:
        return cls(**{name: _string(data, name, owner)
                      for name in ("product_name", "fix_state", "package_name", "cpe")})


def _one_or_many(data: dict[str, Any], key: str, label: str,
                 factory: Callable[[dict[str, Any], str], Any]) -> list[Any]:
    # The API returns either a single object or a list of them.
    value = data.get(key)
    if value is None:
        return []
    try:
        if isinstance(value, list):
            items = []
            for item in value:
                if not isinstance(item, dict):
                    raise ValueError(f"cannot unmarshal {_kind(item)} into {key} of type {label}")
                items.append(factory(item, key))
            return items
        if isinstance(value, dict):
            return [factory(value, key)]
    except ValueError as exc:
        raise ValueError(f"unknown {key} type: {exc}") from exc
    raise ValueError(f"unknown {key} type")


@dataclass
class RedHatCVE:
    """One CVE record of the Red Hat security data API."""

    name: str = ""
    threat_severity: str = ""
    public_date: str = ""
    bugzilla: _Bugzilla = field(default_factory=_Bugzilla)
    cvss: _Cvss = field(default_factory=_Cvss)
    cvss3: _Cvss = field(default_factory=_Cvss)
    iava: str = ""
    cwe: str = ""
    statement: str = ""
    acknowledgement: str = ""
    mitigation: str = ""
    affected_release: list[_AffectedRelease] = field(default_factory=list)
    package_state: list[_PackageState] = field(default_factory=list)
    document_distribution: str = ""
    details: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> RedHatCVE:
        owner = "RedHatCVE"
        if not isinstance(data, dict):
            raise ValueError(
                f"failed to decode RedHat JSON: cannot unmarshal {_kind(data)} into {owner}"
            )
        try:
            bugzilla = _object(data, "bugzilla", owner)
            cvss = _object(data, "cvss", owner)
            cvss3 = _object(data, "cvss3", owner)
            cve = cls(
                name=_string(data, "name", owner),
                threat_severity=_string(data, "threat_severity", owner),
                public_date=_string(data, "public_date", owner),
                bugzilla=_Bugzilla(
                    description=_string(bugzilla, "description", "bugzilla"),
                    id=_string(bugzilla, "id", "bugzilla"),
                    url=_string(bugzilla, "url", "bugzilla"),
                ),
                cvss=_Cvss(
                    base_score=_string(cvss, "cvss_base_score", "cvss"),
                    scoring_vector=_string(cvss, "cvss_scoring_vector", "cvss"),
                    status=_string(cvss, "status", "cvss"),
                ),
                cvss3=_Cvss(
                    base_score=_string(cvss3, "cvss3_base_score", "cvss3"),
                    scoring_vector=_string(cvss3, "cvss3_scoring_vector", "cvss3"),
                    status=_string(cvss3, "status", "cvss3"),
                ),
                iava=_string(data, "iava", owner),
                cwe=_string(data, "cwe", owner),
                statement=_string(data, "statement", owner),
                acknowledgement=_string(data, "acknowledgement", owner),
                mitigation=_string(data, "mitigation", owner),
                document_distribution=_string(data, "document_distribution", owner),
                details=_strings(data, "details", owner),
                references=_strings(data, "references", owner),
            )
        except ValueError as exc:
            raise ValueError(f"failed to decode RedHat JSON: {exc}") from exc

        cve.affected_release = _one_or_many(
            data, "affected_release", "RedhatAffectedRelease", _AffectedRelease.from_dict)
        cve.package_state = _one_or_many(
            data, "package_state", "RedhatPackageState", _PackageState.from_dict)
        return cve


def _parse_float(text: str) -> float:
    if text != text.strip():
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def severity_from_threat(severity: str) -> Severity:
    return {
        "Low": Severity.LOW,
        "Moderate": Severity.MEDIUM,
        "Important": Severity.HIGH,
        "Critical": Severity.CRITICAL,
    }.get(severity.title(), Severity.UNKNOWN)


class RedHatSource:
    """Loads Red Hat API CVE records into a store."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def name(self) -> SourceID:
        return SourceID.RED_HAT

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory) / _VULN_LIST_DIR / _API_DIR
        cves = []
        for path, text in walk_json_files(root):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"failed to decode RedHat JSON: {path}: {exc}") from exc
            cves.append(RedHatCVE.from_dict(data))
        self._save(cves)

    def _save(self, cves: list[RedHatCVE]) -> None:
        logger.info("Saving Red Hat DB")
        with self.store.batch_update() as store:
            for cve in cves:
                self._put_vulnerability_detail(store, cve)

    @staticmethod
    def _put_vulnerability_detail(store: Store, cve: RedHatCVE) -> None:
        title = cve.bugzilla.description.strip().removeprefix(cve.name)
        detail = VulnerabilityDetail(
            cvss_score=_parse_float(cve.cvss.base_score),
            cvss_vector=cve.cvss.scoring_vector,
            cvss_score_v3=_parse_float(cve.cvss3.base_score),
            cvss_vector_v3=cve.cvss3.scoring_vector,
            severity=severity_from_threat(cve.threat_severity),
            references=[*cve.references, _RESOURCE_URL.format(cve.name)],
            title=title.strip(),
            description="".join(cve.details).strip(),
        )
        store.put_vulnerability_detail(cve.name, SourceID.RED_HAT, detail)
        store.put_vulnerability_id(cve.name)