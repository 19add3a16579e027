"""Reading OVAL tests, objects and states of a Red Hat OVAL stream."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class RpmInfoTest:
    """An rpminfo test with its object and state references resolved."""

    name: str = ""
    signature_key_id: str = ""
    fixed_version: str = ""
    arch: str = ""


def _field(obj: Any, name: str) -> Any:
    # Field names match case-insensitively, exact match first.
    if not isinstance(obj, dict):
        return None
    if name in obj:
        return obj[name]
    lowered = name.lower()
    return next((v for k, v in obj.items() if k.lower() == lowered), None)


def _text(obj: Any, *path: str) -> str:
    for name in path:
        obj = _field(obj, name)
    if obj is None:
        return ""
    if not isinstance(obj, str):
        raise ValueError(
            f"failed to decode Red Hat OVAL JSON: {'.'.join(path)} is not a string"
        )
    return obj


def _load(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"failed to decode Red Hat OVAL JSON: {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"failed to decode Red Hat OVAL JSON: {path}: not an object")
    return data


def _items(data: dict[str, Any], name: str) -> list[Any]:
    items = _field(data, name)
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValueError(f"failed to decode Red Hat OVAL JSON: {name} is not a list")
    return items


def parse_objects(directory: str | os.PathLike[str]) -> dict[str, str]:
    """Map rpminfo object IDs to package names."""
    data = _load(Path(directory) / "objects" / "objects.json")
    return {_text(obj, "ID"): _text(obj, "Name") for obj in _items(data, "RpminfoObjects")}


def parse_states(directory: str | os.PathLike[str]) -> dict[str, dict[str, Any]]:
    """Map rpminfo state IDs to their raw state records."""
    data = _load(Path(directory) / "states" / "states.json")
    return {
        _text(state, "ID"): state
        for state in _items(data, "RpminfoState")
        if isinstance(state, dict)
    }


def follow_test_refs(test: dict[str, Any], objects: dict[str, str],
                     states: dict[str, dict[str, Any]]) -> RpmInfoTest:
    """Resolve a raw rpminfo test against the objects and states it refers to."""
    result = RpmInfoTest()

    object_ref = _text(test, "Object", "ObjectRef")
    if not object_ref:
        return result
    test_id = _text(test, "ID")
    if object_ref not in objects:
        raise ValueError(
            f"invalid tests data, can't find object ref: {object_ref}, test ref: {test_id}"
        )
    result.name = objects[object_ref]

    state_ref = _text(test, "State", "StateRef")
    if not state_ref:
        return result
    state = states.get(state_ref)
    if state is None:
        raise ValueError(
            f"invalid tests data, can't find ovalstate ref {state_ref}, test ref: {test_id}"
        )

    result.signature_key_id = _text(state, "SignatureKeyID", "Text")

    if _text(state, "Arch", "Datatype") == "string" and \
            _text(state, "Arch", "Operation") in ("pattern match", "equals"):
        result.arch = _text(state, "Arch", "Text")

    if _text(state, "Evr", "Datatype") == "evr_string" and \
            _text(state, "Evr", "Operation") == "less than":
        result.fixed_version = _text(state, "Evr", "Text")

    return result


def parse_tests(directory: str | os.PathLike[str]) -> dict[str, RpmInfoTest]:
    """Read and resolve every 'at least one' rpminfo test of a stream."""
    objects = parse_objects(directory)
    states = parse_states(directory)
    data = _load(Path(directory) / "tests" / "tests.json")

    tests: dict[str, RpmInfoTest] = {}
    for test in _items(data, "RpminfoTests"):
        if _text(test, "Check") != "at least one":
            continue
        tests[_text(test, "ID")] = follow_test_refs(test, objects, states)
    return tests