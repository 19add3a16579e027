"""Merging vulnerability details from several sources into one view."""

from __future__ import annotations

import logging

from .models import CVSS, Ecosystem, Severity, SourceID, Vulnerability, VulnerabilityDetail
from .store import Store, StoreError

logger = logging.getLogger(__name__)

_REJECT = "** REJECT **"

_SOURCES = [
    SourceID.NVD, SourceID.RED_HAT, SourceID.DEBIAN, SourceID.UBUNTU, SourceID.ALPINE,
    SourceID.AMAZON, SourceID.ORACLE_OVAL, SourceID.SUSE_CVRF, SourceID.PHOTON,
    SourceID.ARCH_LINUX, SourceID.ALMA, SourceID.ROCKY, SourceID.CBL_MARINER,
    SourceID.AZURE_LINUX, SourceID.RUBYSEC, SourceID.PHP_SECURITY_ADVISORIES,
    SourceID.NODEJS_SECURITY_WG, SourceID.GHSA, SourceID.GLAD, SourceID.OSV,
    SourceID.K8S_VULNDB, SourceID.OPENEULER, SourceID.EULER,
]

Details = dict[str, VulnerabilityDetail]


def score_to_severity(score: float) -> Severity:
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.UNKNOWN


def _ordered(details: Details):
    for source in _SOURCES:
        if source in details:
            yield source, details[source]


def _cvss(details: Details) -> dict[str, CVSS]:
    result = {}
    for vendor, d in details.items():
        if ((not d.cvss_vector or d.cvss_score == 0)
                and (not d.cvss_vector_v3 or d.cvss_score_v3 == 0)
                and (not d.cvss_vector_v40 or d.cvss_score_v40 == 0)):
            continue
        result[vendor] = CVSS(
            v2_vector=d.cvss_vector, v3_vector=d.cvss_vector_v3, v40_vector=d.cvss_vector_v40,
            v2_score=d.cvss_score, v3_score=d.cvss_score_v3, v40_score=d.cvss_score_v40,
        )
    return result


def _vendor_severity(details: Details) -> dict[str, Severity]:
    result = {}
    for vendor, d in details.items():
        if d.severity_v40 != Severity.UNKNOWN:
            result[vendor] = d.severity_v40
        elif d.severity_v3 != Severity.UNKNOWN:
            result[vendor] = d.severity_v3
        elif d.severity != Severity.UNKNOWN:
            result[vendor] = d.severity
        elif d.cvss_score_v40 > 0:
            result[vendor] = score_to_severity(d.cvss_score_v40)
        elif d.cvss_score_v3 > 0:
            result[vendor] = score_to_severity(d.cvss_score_v3)
        elif d.cvss_score > 0:
            result[vendor] = score_to_severity(d.cvss_score)
    return result


def _severity(details: Details) -> Severity:
    for _, d in _ordered(details):
        for score in (d.cvss_score_v40, d.cvss_score_v3, d.cvss_score):
            if score > 0:
                return score_to_severity(score)
        for sev in (d.severity_v40, d.severity_v3, d.severity):
            if sev != Severity.UNKNOWN:
                return sev
    return Severity.UNKNOWN


def _references(details: Details) -> list[str]:
    refs = set()
    for source, d in _ordered(details):
        if source == SourceID.AMAZON:  # Amazon carries unrelated references
            continue
        for ref in d.references:
            refs.update(ref.strip().split("\n"))
    return sorted(refs)


class VulnerabilityResolver:
    """Reads per-source details from a store and merges them."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store

    def get_details(self, vuln_id: str) -> Details | None:
        try:
            details = self.store.get_vulnerability_detail(vuln_id)
        except StoreError as exc:
            logger.warning("Failed to get vulnerability detail: %s", exc)
            return None
        return details or None

    def is_rejected(self, details: Details) -> bool:
        return any(_REJECT in d.description for _, d in _ordered(details))

    def normalize(self, details: Details) -> Vulnerability:
        title = next((d.title for _, d in _ordered(details) if d.title), "")
        description = next((d.description for _, d in _ordered(details) if d.description), "")
        cwe_ids = next((list(d.cwe_ids) for _, d in _ordered(details) if d.cwe_ids), [])
        nvd = details.get(SourceID.NVD)
        return Vulnerability(
            title=title,
            description=description,
            severity=str(_severity(details)),
            cwe_ids=cwe_ids,
            vendor_severity=_vendor_severity(details),
            cvss=_cvss(details),
            references=_references(details),
            published_date=nvd.published_date if nvd else None,
            last_modified_date=nvd.last_modified_date if nvd else None,
        )


def normalize_pkg_name(ecosystem: str, pkg_name: str) -> str:
    """Bring a package name into the canonical form of its ecosystem."""
    if ecosystem == Ecosystem.PIP:
        return pkg_name.lower().replace("_", "-")
    if ecosystem == Ecosystem.SWIFT:
        if pkg_name.startswith("https://"):
            pkg_name = pkg_name[len("https://"):]
        if pkg_name.endswith(".git"):
            pkg_name = pkg_name[:-len(".git")]
        return pkg_name
    if ecosystem in (Ecosystem.NUGET, Ecosystem.GO, Ecosystem.COCOAPODS):
        return pkg_name
    return pkg_name.lower()