"""Core data types shared by every vulnerability source."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any


class SourceID(str, Enum):
    """Identifier of a vulnerability data source."""

    NVD = "nvd"
    RED_HAT = "redhat"
    RED_HAT_OVAL = "redhat-oval"
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    CENTOS = "centos"
    ROCKY = "rocky"
    FEDORA = "fedora"
    AMAZON = "amazon"
    ORACLE_OVAL = "oracle-oval"
    SUSE_CVRF = "suse-cvrf"
    ALPINE = "alpine"
    ARCH_LINUX = "arch-linux"
    ALMA = "alma"
    AZURE_LINUX = "azure"
    CBL_MARINER = "cbl-mariner"
    PHOTON = "photon"
    RUBYSEC = "ruby-advisory-db"
    PHP_SECURITY_ADVISORIES = "php-security-advisories"
    NODEJS_SECURITY_WG = "nodejs-security-wg"
    GHSA = "ghsa"
    GLAD = "glad"
    OSV = "osv"
    WOLFI = "wolfi"
    CHAINGUARD = "chainguard"
    BITNAMI_VULNDB = "bitnami"
    K8S_VULNDB = "k8s"
    OPENEULER = "openeuler"
    EULER = "euler"
    GOVULNDB = "govulndb"

    def __hash__(self) -> int:
        return str.__hash__(self)

    def __str__(self) -> str:
        return self.value


class Ecosystem(str, Enum):
    """Package ecosystem of a language-specific advisory."""

    UNKNOWN = "unknown"
    NPM = "npm"
    COMPOSER = "composer"
    PIP = "pip"
    RUBYGEMS = "rubygems"
    CARGO = "cargo"
    NUGET = "nuget"
    MAVEN = "maven"
    GO = "go"
    CONAN = "conan"
    ERLANG = "erlang"
    PUB = "pub"
    SWIFT = "swift"
    COCOAPODS = "cocoapods"
    BITNAMI = "bitnami"
    KUBERNETES = "k8s"

    def __hash__(self) -> int:
        return str.__hash__(self)

    def __str__(self) -> str:
        return self.value


class Severity(IntEnum):
    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name


class Status(IntEnum):
    UNKNOWN = 0
    NOT_AFFECTED = 1
    AFFECTED = 2
    FIXED = 3
    UNDER_INVESTIGATION = 4
    WILL_NOT_FIX = 5
    FIX_DEFERRED = 6
    END_OF_LIFE = 7


def _compact(pairs: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in pairs.items() if v}


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class DataSource:
    id: str = ""
    name: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"ID": str(self.id), "Name": self.name, "URL": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataSource:
        raw_id = data.get("ID", "")
        try:
            source_id: str = SourceID(raw_id)
        except ValueError:
            source_id = raw_id
        return cls(id=source_id, name=data.get("Name", ""), url=data.get("URL", ""))


@dataclass
class Advisory:
    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    affected_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    data_source: DataSource | None = None
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "VulnerabilityID": self.vulnerability_id,
            "VendorIDs": list(self.vendor_ids),
            "Arches": list(self.arches),
            "Severity": int(self.severity),
            "FixedVersion": self.fixed_version,
            "AffectedVersion": self.affected_version,
            "VulnerableVersions": list(self.vulnerable_versions),
            "PatchedVersions": list(self.patched_versions),
            "UnaffectedVersions": list(self.unaffected_versions),
            "Status": int(self.status),
            "Custom": self.custom,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Advisory:
        return cls(
            vulnerability_id=data.get("VulnerabilityID", ""),
            vendor_ids=list(data.get("VendorIDs") or []),
            arches=list(data.get("Arches") or []),
            severity=Severity(data.get("Severity", 0)),
            fixed_version=data.get("FixedVersion", ""),
            affected_version=data.get("AffectedVersion", ""),
            vulnerable_versions=list(data.get("VulnerableVersions") or []),
            patched_versions=list(data.get("PatchedVersions") or []),
            unaffected_versions=list(data.get("UnaffectedVersions") or []),
            status=Status(data.get("Status", 0)),
            custom=data.get("Custom"),
        )


@dataclass
class Advisories:
    """Per-package advisory container with a legacy top-level fixed version."""

    fixed_version: str = ""
    entries: list[Advisory] = field(default_factory=list)
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "FixedVersion": self.fixed_version,
            "Entries": [e.to_dict() for e in self.entries],
            "Custom": self.custom,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Advisories:
        return cls(
            fixed_version=data.get("FixedVersion", ""),
            entries=[Advisory.from_dict(e) for e in data.get("Entries") or []],
            custom=data.get("Custom"),
        )


@dataclass
class VulnerabilityDetail:
    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    cvss_score_v40: float = 0.0
    cvss_vector_v40: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    severity_v40: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "ID": self.id,
            "CvssScore": self.cvss_score,
            "CvssVector": self.cvss_vector,
            "CvssScoreV3": self.cvss_score_v3,
            "CvssVectorV3": self.cvss_vector_v3,
            "CvssScoreV40": self.cvss_score_v40,
            "CvssVectorV40": self.cvss_vector_v40,
            "Severity": int(self.severity),
            "SeverityV3": int(self.severity_v3),
            "SeverityV40": int(self.severity_v40),
            "CweIDs": list(self.cwe_ids),
            "References": list(self.references),
            "Title": self.title,
            "Description": self.description,
            "PublishedDate": self.published_date.isoformat() if self.published_date else None,
            "LastModifiedDate": (
                self.last_modified_date.isoformat() if self.last_modified_date else None
            ),
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VulnerabilityDetail:
        return cls(
            id=data.get("ID", ""),
            cvss_score=float(data.get("CvssScore", 0.0)),
            cvss_vector=data.get("CvssVector", ""),
            cvss_score_v3=float(data.get("CvssScoreV3", 0.0)),
            cvss_vector_v3=data.get("CvssVectorV3", ""),
            cvss_score_v40=float(data.get("CvssScoreV40", 0.0)),
            cvss_vector_v40=data.get("CvssVectorV40", ""),
            severity=Severity(data.get("Severity", 0)),
            severity_v3=Severity(data.get("SeverityV3", 0)),
            severity_v40=Severity(data.get("SeverityV40", 0)),
            cwe_ids=list(data.get("CweIDs") or []),
            references=list(data.get("References") or []),
            title=data.get("Title", ""),
            description=data.get("Description", ""),
            published_date=_parse_time(data.get("PublishedDate")),
            last_modified_date=_parse_time(data.get("LastModifiedDate")),
        )


@dataclass
class CVSS:
    v2_vector: str = ""
    v3_vector: str = ""
    v40_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0
    v40_score: float = 0.0


@dataclass
class Vulnerability:
    """A vulnerability with details merged from all sources."""

    title: str = ""
    description: str = ""
    severity: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    vendor_severity: dict[str, Severity] = field(default_factory=dict)
    cvss: dict[str, CVSS] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None