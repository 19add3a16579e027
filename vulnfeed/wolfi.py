"""Advisories from the Wolfi security database."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import Advisory, DataSource, SourceID
from .store import Store, StoreError, walk_json_files

_WOLFI_DIR = "wolfi"
_DISTRO_NAME = "wolfi"

_SOURCE = DataSource(
    id=SourceID.WOLFI,
    name="Wolfi Secdb",
    url="https://packages.wolfi.dev/os/security.json",
)


@dataclass
class _WolfiAdvisory:
    pkg_name: str = ""
    secfixes: dict[str, list[str]] = field(default_factory=dict)


def _decode(path: Path, text: str) -> _WolfiAdvisory:
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"failed to decode Wolfi advisory: {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"failed to decode Wolfi advisory: {path}: not an object")

    name = data.get("name") or ""
    secfixes = data.get("secfixes") or {}
    valid = (
        isinstance(name, str)
        and isinstance(secfixes, dict)
        and all(ids is None or (isinstance(ids, list) and all(isinstance(i, str) for i in ids))
                for ids in secfixes.values())
    )
    if not valid:
        raise ValueError(f"failed to decode Wolfi advisory: {path}: unexpected field types")
    return _WolfiAdvisory(name, {version: list(ids or []) for version, ids in secfixes.items()})


class WolfiSource:
    """Loads Wolfi secfixes into a store and answers lookups."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def name(self) -> SourceID:
        return SourceID.WOLFI

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory) / "vuln-list" / _WOLFI_DIR
        advisories = [_decode(path, text) for path, text in walk_json_files(root)]
        self._save(advisories)

    def _save(self, advisories: list[_WolfiAdvisory]) -> None:
        with self.store.batch_update() as store:
            for advisory in advisories:
                store.put_data_source(_DISTRO_NAME, _SOURCE)
                self._save_secfixes(store, advisory.pkg_name, advisory.secfixes)

    @staticmethod
    def _save_secfixes(store: Store, pkg_name: str, secfixes: dict[str, list[str]]) -> None:
        for fixed_version, vuln_ids in secfixes.items():
            advisory = Advisory(fixed_version=fixed_version)
            for vuln_id in vuln_ids:
                # Entries may carry notes, e.g. "CVE-2017-2616 (+ regression fix)".
                for cve_id in vuln_id.split():
                    cve_id = cve_id.replace("CVE_", "CVE-")
                    if not cve_id.startswith("CVE-"):
                        continue
                    store.put_advisory_detail(cve_id, pkg_name, [_DISTRO_NAME], advisory)
                    store.put_vulnerability_id(cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Advisories for a package; Wolfi is a rolling release, so release is ignored."""
        try:
            return self.store.get_advisories(_DISTRO_NAME, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get Wolfi advisories: {exc}") from exc