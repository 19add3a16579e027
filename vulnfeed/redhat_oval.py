"""Red Hat OVAL v2 advisories, stored against compact CPE indices."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

from .models import Advisory, DataSource, Severity, SourceID, Status
from .redhat_oval_parse import RpmInfoTest, parse_tests
from .redhat_oval_types import CpeSet, CveEntry, Entry, OvalAdvisory
from .store import Store, StoreError, walk_json_files

logger = logging.getLogger(__name__)

_ROOT_BUCKET = "Red Hat"
_VULN_LIST_DIR = "vuln-list-redhat"
_OVAL_DIR = "oval"
_CPE_DIR = "cpe"

_MODULE_RE = re.compile(r"Module\s+(.*)\s+is enabled")

_SOURCE = DataSource(
    id=SourceID.RED_HAT_OVAL,
    name="Red Hat OVAL v2",
    url="https://www.redhat.com/security/data/oval/v2/",
)


class _Bucket(NamedTuple):
    pkg_name: str
    vuln_id: str


@dataclass
class _Package:
    name: str = ""
    fixed_version: str = ""
    arches: list[str] = field(default_factory=list)


def _field(obj: Any, name: str) -> Any:
    # Field names match case-insensitively, exact match first.
    if not isinstance(obj, dict):
        return None
    if name in obj:
        return obj[name]
    lowered = name.lower()
    return next((v for k, v in obj.items() if k.lower() == lowered), None)


def _str(obj: Any, *path: str) -> str:
    for name in path:
        obj = _field(obj, name)
    return obj if isinstance(obj, str) else ""


def _list(obj: Any, name: str) -> list[Any]:
    value = _field(obj, name)
    return value if isinstance(value, list) else []


def _merge(first: Iterable[str], second: Iterable[str]) -> list[str]:
    return list(dict.fromkeys([*first, *second]))


def vendor_id(references: Iterable[Any]) -> str:
    """Return the RHSA or RHBA identifier among the references, if any."""
    for ref in references:
        if _str(ref, "Source") in ("RHSA", "RHBA"):
            return _str(ref, "RefID")
    return ""


def severity_from_impact(impact: str) -> Severity:
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "important": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(impact.lower(), Severity.UNKNOWN)


def new_status(state: str) -> Status:
    return {
        "affected": Status.AFFECTED,
        "fix deferred": Status.AFFECTED,
        "under investigation": Status.UNDER_INVESTIGATION,
        "will not fix": Status.WILL_NOT_FIX,
        "out of support scope": Status.END_OF_LIFE,
    }.get(state.lower(), Status.UNKNOWN)


def walk_criterion(criteria: Any, tests: dict[str, RpmInfoTest]) -> tuple[str, list[_Package]]:
    """Collect the module name and affected packages of a criteria tree."""
    module_name = ""
    packages: list[_Package] = []

    for criterion in _list(criteria, "Criterions"):
        match = _MODULE_RE.search(_str(criterion, "Comment"))
        if match and match.group(1):
            module_name = match.group(1)
            continue

        test = tests.get(_str(criterion, "TestRef"))
        if test is None or test.signature_key_id:
            continue

        # Affected arches are joined with '|', e.g. 'aarch64|ppc64le|x86_64'.
        arches = sorted(test.arch.split("|")) if test.arch else []
        packages.append(_Package(test.name, test.fixed_version, arches))

    for child in _list(criteria, "Criterias"):
        name, found = walk_criterion(child, tests)
        if name:
            module_name = name
        packages.extend(found)

    return module_name, packages


def parse_definitions(definitions: Iterable[Any], tests: dict[str, RpmInfoTest],
                      cpes: CpeSet) -> dict[_Bucket, Entry]:
    """Turn OVAL definitions into one entry per (package, vulnerability) bucket."""
    defs: dict[_Bucket, Entry] = {}

    for definition in definitions:
        if "unaffected" in _str(definition, "ID"):
            continue

        metadata = _field(definition, "Metadata")
        oval_advisory = _field(metadata, "Advisory")
        affected_cpes = [c for c in _list(oval_advisory, "AffectedCpeList") if isinstance(c, str)]
        rhsa_id = vendor_id(_list(metadata, "References"))
        cve_entries = sorted(
            (CveEntry(id=_str(cve, "CveID"), severity=severity_from_impact(_str(cve, "Impact")))
             for cve in _list(oval_advisory, "Cves")),
            key=lambda entry: entry.id,
        )
        state = _str(oval_advisory, "Affected", "Resolution", "State")

        module_name, packages = walk_criterion(_field(definition, "Criteria"), tests)
        for package in packages:
            pkg_name = f"{module_name}::{package.name}" if module_name else package.name

            if rhsa_id:
                # Patched: the status is implicitly "fixed" and is not stored.
                defs[_Bucket(pkg_name, rhsa_id)] = Entry(
                    fixed_version=package.fixed_version,
                    cves=list(cve_entries),
                    arches=list(package.arches),
                    affected_cpe_list=list(affected_cpes),
                )
            else:
                for cve in cve_entries:
                    defs[_Bucket(pkg_name, cve.id)] = Entry(
                        fixed_version=package.fixed_version,
                        cves=[CveEntry(severity=cve.severity)],
                        arches=list(package.arches),
                        status=new_status(state),
                        affected_cpe_list=list(affected_cpes),
                    )

        cpes.update(affected_cpes)

    return defs


def merge_advisories(advisories: dict[Any, OvalAdvisory],
                     definitions: dict[Any, Entry]) -> dict[Any, OvalAdvisory]:
    """Fold one stream's entries into the advisories collected so far."""
    for bucket, entry in definitions.items():
        existing = advisories.get(bucket)
        if existing is None:
            advisories[bucket] = OvalAdvisory(entries=[entry])
            continue

        found = False
        for old in existing.entries:
            if (old.fixed_version == entry.fixed_version and old.status == entry.status
                    and old.arches == entry.arches and old.cves == entry.cves):
                found = True
                old.affected_cpe_list = _merge(old.affected_cpe_list, entry.affected_cpe_list)
        if not found:
            existing.entries.append(entry)
    return advisories


def parse_oval_stream(directory: str | os.PathLike[str], cpes: CpeSet) -> dict[_Bucket, Entry]:
    """Parse the tests and definitions of one OVAL stream directory."""
    logger.info("    Parsing %s", directory)
    tests = parse_tests(directory)

    definitions_dir = Path(directory) / "definitions"
    if not definitions_dir.exists():
        return {}

    definitions = []
    for path, text in walk_json_files(definitions_dir):
        try:
            definition = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"failed to decode {path}: {exc}") from exc
        if not isinstance(definition, dict):
            raise ValueError(f"failed to decode {path}: not an object")
        definitions.append(definition)

    return parse_definitions(definitions, tests, cpes)


def _parse_cpe_mapping(path: Path, cpes: CpeSet) -> dict[str, list[str]]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"file open error: no such file or directory: {path}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"JSON parse error: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict) or not all(
            value is None or (isinstance(value, list) and all(isinstance(c, str) for c in value))
            for value in data.values()):
        raise ValueError("JSON parse error: expected an object of string lists")

    mapping = {key: list(value or []) for key, value in data.items()}
    for values in mapping.values():
        cpes.update(values)
    return mapping


class RedHatOvalSource:
    """Loads Red Hat OVAL v2 streams into a store and answers lookups."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def name(self) -> SourceID:
        return SourceID.RED_HAT_OVAL

    def update(self, directory: str | os.PathLike[str]) -> None:
        cpes = CpeSet()
        base = Path(directory) / _VULN_LIST_DIR

        repo_to_cpe = _parse_cpe_mapping(base / _CPE_DIR / "repository-to-cpe.json", cpes)
        nvr_to_cpe = _parse_cpe_mapping(base / _CPE_DIR / "nvr-to-cpe.json", cpes)

        root = base / _OVAL_DIR
        if not root.is_dir():
            raise FileNotFoundError(
                f"unable to list directory entries: no such file or directory: {root}")

        advisories: dict[_Bucket, OvalAdvisory] = {}
        for version in sorted(root.iterdir()):
            for stream in sorted(version.iterdir()):
                if not stream.is_dir():
                    continue
                merge_advisories(advisories, parse_oval_stream(stream, cpes))

        self._save(repo_to_cpe, nvr_to_cpe, advisories, cpes)

    def _save(self, repo_to_cpe: dict[str, list[str]], nvr_to_cpe: dict[str, list[str]],
              advisories: dict[_Bucket, OvalAdvisory], cpes: CpeSet) -> None:
        cpe_list = cpes.to_list()
        with self.store.batch_update() as store:
            store.put_data_source(_ROOT_BUCKET, _SOURCE)

            for repo, names in repo_to_cpe.items():
                store.put_redhat_repositories(repo, cpe_list.indices(names))
            for nvr, names in nvr_to_cpe.items():
                store.put_redhat_nvrs(nvr, cpe_list.indices(names))

            for (pkg_name, vuln_id), advisory in advisories.items():
                for entry in advisory.entries:
                    entry.affected_cpe_indices = cpe_list.indices(entry.affected_cpe_list)
                store.put_advisory_detail(vuln_id, pkg_name, [_ROOT_BUCKET], advisory)
                store.put_vulnerability_id(vuln_id)

            # CPE names by index, kept for debugging.
            for index, cpe in enumerate(cpe_list):
                store.put_redhat_cpes(index, cpe)

    def _cpe_indices(self, repositories: Iterable[str], nvrs: Iterable[str]) -> set[int]:
        indices: set[int] = set()
        for repo in repositories:
            indices.update(self.store.redhat_repo_to_cpes(repo))
        for nvr in nvrs:
            indices.update(self.store.redhat_nvr_to_cpes(nvr))
        return indices

    def get(self, pkg_name: str, repositories: Iterable[str] | None,
            nvrs: Iterable[str] | None) -> list[Advisory]:
        """Advisories for a package on the platforms given by repositories or NVRs."""
        cpe_indices = self._cpe_indices(repositories or [], nvrs or [])
        if not cpe_indices:
            raise ValueError(
                "unable to find CPE indices. The repositories and NVRs are unknown.")

        advisories: list[Advisory] = []
        for vuln_id, raw in self.store.for_each_advisory([_ROOT_BUCKET], pkg_name).items():
            try:
                data = json.loads(raw.content)
                if not isinstance(data, dict):
                    raise ValueError("not an object")
                stored = OvalAdvisory.from_dict(data)
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc

            for entry in stored.entries:
                if cpe_indices.isdisjoint(entry.affected_cpe_indices):
                    continue
                for cve in entry.cves:
                    advisory = Advisory(
                        severity=cve.severity,
                        fixed_version=entry.fixed_version,
                        arches=list(entry.arches),
                        status=entry.status,
                        data_source=raw.source,
                    )
                    if vuln_id.startswith("CVE-"):
                        advisory.vulnerability_id = vuln_id
                    else:
                        advisory.vulnerability_id = cve.id
                        advisory.vendor_ids = [vuln_id]
                    advisories.append(advisory)

        return advisories