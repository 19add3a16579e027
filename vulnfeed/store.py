"""A bucketed key-value store of advisories and vulnerability details."""

from __future__ import annotations

import copy
import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import Advisory, DataSource, SourceID, VulnerabilityDetail

_DATA_SOURCE = "data-source"
_ADVISORY_DETAIL = "advisory-detail"
_VULN_DETAIL = "vulnerability-detail"
_VULN_ID = "vulnerability-id"
_REDHAT_CPE = "Red Hat CPE"


class StoreError(Exception):
    """Raised when stored data is missing its shape or cannot be decoded."""


@dataclass
class RawAdvisory:
    content: str
    source: DataSource | None


def _key(value: Any) -> str:
    return str(getattr(value, "value", value))


def _encode(value: Any) -> str:
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    return json.dumps(value)


class Store:
    """Nested buckets whose leaves hold JSON-encoded values."""

    def __init__(self, tree: dict[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = tree if tree is not None else {}

    def _bucket(self, path: list[str], create: bool) -> dict[str, Any] | None:
        node = self._root
        for name in path:
            child = node.get(name)
            if child is None:
                if not create:
                    return None
                child = node[name] = {}
            elif not isinstance(child, dict):
                raise StoreError(f"{name} is not a bucket")
            node = child
        return node

    def _put(self, path: list[str], key: str, value: Any) -> None:
        self._bucket(path, True)[key] = _encode(value)

    def get(self, *args: str) -> Any:
        """Decode the value at the given bucket path, or None if absent."""
        bucket = self._bucket([_key(a) for a in args[:-1]], False)
        if bucket is None:
            return None
        raw = bucket.get(_key(args[-1]))
        if not isinstance(raw, str):
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"failed to decode value: {exc}") from exc

    def has_bucket(self, *args: str) -> bool:
        try:
            return self._bucket([_key(a) for a in args], False) is not None
        except StoreError:
            return False

    @contextmanager
    def batch_update(self) -> Iterator[Store]:
        """Apply a group of writes that is rolled back if the block raises."""
        snapshot = copy.deepcopy(self._root)
        try:
            yield self
        except BaseException:
            self._root = snapshot
            raise

    def put_data_source(self, bucket: str, source: DataSource) -> None:
        self._put([_DATA_SOURCE], bucket, source)

    def put_advisory_detail(self, vuln_id: str, pkg_name: str,
                            nested_buckets: list[str], advisory: Any) -> None:
        self._put([_ADVISORY_DETAIL, vuln_id, *nested_buckets], pkg_name, advisory)

    def put_vulnerability_detail(self, vuln_id: str, source_id: Any,
                                 detail: VulnerabilityDetail) -> None:
        self._put([_VULN_DETAIL, vuln_id], _key(source_id), detail)

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put([_VULN_ID], vuln_id, {})

    def put_redhat_repositories(self, repository: str, cpe_indices: list[int]) -> None:
        self._put([_REDHAT_CPE, "repository"], repository, list(cpe_indices))

    def put_redhat_nvrs(self, nvr: str, cpe_indices: list[int]) -> None:
        self._put([_REDHAT_CPE, "nvr"], nvr, list(cpe_indices))

    def put_redhat_cpes(self, index: int, cpe: str) -> None:
        self._put([_REDHAT_CPE, "cpe"], str(index), cpe)

    def redhat_repo_to_cpes(self, repository: str) -> list[int]:
        return list(self.get(_REDHAT_CPE, "repository", repository) or [])

    def redhat_nvr_to_cpes(self, nvr: str) -> list[int]:
        return list(self.get(_REDHAT_CPE, "nvr", nvr) or [])

    def _data_source(self, name: str) -> DataSource | None:
        data = self.get(_DATA_SOURCE, name)
        if not isinstance(data, dict):
            return None
        return DataSource.from_dict(data)

    def for_each_advisory(self, sources: list[str], pkg_name: str) -> dict[str, RawAdvisory]:
        """Collect raw advisories for a package under the given source buckets."""
        root = self._root.get(_ADVISORY_DETAIL)
        if not isinstance(root, dict):
            return {}
        data_source = self._data_source(sources[0]) if sources else None
        found: dict[str, RawAdvisory] = {}
        for vuln_id in sorted(root):
            node: Any = root[vuln_id]
            for name in sources:
                node = node.get(name) if isinstance(node, dict) else None
            raw = node.get(pkg_name) if isinstance(node, dict) else None
            if isinstance(raw, str):
                found[vuln_id] = RawAdvisory(content=raw, source=data_source)
        return found

    def get_advisories(self, source: str, pkg_name: str) -> list[Advisory]:
        advisories = []
        for vuln_id, raw in self.for_each_advisory([source], pkg_name).items():
            try:
                data = json.loads(raw.content)
            except json.JSONDecodeError as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc
            if not isinstance(data, dict):
                raise StoreError("failed to unmarshal advisory JSON: not an object")
            advisory = Advisory.from_dict(data)
            advisory.vulnerability_id = vuln_id
            advisory.data_source = raw.source
            advisories.append(advisory)
        return advisories

    def get_vulnerability_detail(self, vuln_id: str) -> dict[str, VulnerabilityDetail]:
        bucket = self._bucket([_VULN_DETAIL, vuln_id], False)
        if bucket is None:
            return {}
        details: dict[str, VulnerabilityDetail] = {}
        for source_name, raw in bucket.items():
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as exc:
                raise StoreError(f"failed to unmarshal vulnerability detail: {exc}") from exc
            if not isinstance(data, dict):
                raise StoreError("failed to unmarshal vulnerability detail: not an object")
            try:
                key: str = SourceID(source_name)
            except ValueError:
                key = source_name
            details[key] = VulnerabilityDetail.from_dict(data)
        return details

    def save(self, path: str | os.PathLike[str]) -> None:
        Path(path).write_text(json.dumps(self._root, sort_keys=True), encoding="utf-8")

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> Store:
        tree = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(tree, dict):
            raise StoreError("store file must hold an object")
        return cls(tree)


def walk_json_files(root: str | os.PathLike[str]) -> Iterator[tuple[Path, str]]:
    """Yield (path, text) for every JSON file under root, in sorted order."""
    base = Path(root)
    if not base.is_dir():
        raise FileNotFoundError(f"no such file or directory: {base}")
    for path in sorted(p for p in base.rglob("*.json") if p.is_file()):
        yield path, path.read_text(encoding="utf-8")