import json

import pytest

from vulnfeed.redhat_oval_parse import (
    RpmInfoTest,
    follow_test_refs,
    parse_objects,
    parse_states,
    parse_tests,
)

OBJECTS = {
    "RpminfoObjects": [
        {"ID": "oval:com.redhat.rhsa:obj:1", "Version": "1", "Name": "thunderbird"},
        {"ID": "oval:com.redhat.rhsa:obj:2", "Version": "1", "Name": "redhat-release"},
    ]
}

STATES = {
    "RpminfoState": [
        {
            "ID": "oval:com.redhat.rhsa:ste:1",
            "Arch": {"Text": "aarch64|ppc64le|x86_64", "Datatype": "string",
                     "Operation": "pattern match"},
            "Evr": {"Text": "0:78.6.0-1.el8_3", "Datatype": "evr_string",
                    "Operation": "less than"},
        },
        {
            "ID": "oval:com.redhat.rhsa:ste:2",
            "SignatureKeyID": {"Text": "199e2f91fd431d51", "Operation": "equals"},
        },
        {
            "ID": "oval:com.redhat.rhsa:ste:3",
            "Arch": {"Text": "x86_64", "Datatype": "string", "Operation": "not equal"},
            "Evr": {"Text": "0:1.0", "Datatype": "evr_string", "Operation": "equals"},
        },
    ]
}


def _test(test_id, object_ref="", state_ref="", check="at least one"):
    return {
        "Check": check,
        "ID": test_id,
        "Object": {"ObjectRef": object_ref},
        "State": {"StateRef": state_ref},
    }


def _write_stream(root, tests, objects=OBJECTS, states=STATES):
    for name, data in (("objects", objects), ("states", states), ("tests", tests)):
        (root / name).mkdir(parents=True, exist_ok=True)
        (root / name / f"{name}.json").write_text(json.dumps(data), encoding="utf-8")
    return root


def test_parse_objects(tmp_path):
    _write_stream(tmp_path, {"RpminfoTests": []})
    objects = parse_objects(tmp_path)
    assert objects == {
        "oval:com.redhat.rhsa:obj:1": "thunderbird",
        "oval:com.redhat.rhsa:obj:2": "redhat-release",
    }


def test_parse_states_keys(tmp_path):
    _write_stream(tmp_path, {"RpminfoTests": []})
    states = parse_states(tmp_path)
    assert set(states) == {s["ID"] for s in STATES["RpminfoState"]}


def test_parse_tests_resolves_refs(tmp_path):
    tests = {"RpminfoTests": [
        _test("t1", "oval:com.redhat.rhsa:obj:1", "oval:com.redhat.rhsa:ste:1"),
        _test("t2", "oval:com.redhat.rhsa:obj:2", "oval:com.redhat.rhsa:ste:2"),
        _test("t3", "oval:com.redhat.rhsa:obj:1", "oval:com.redhat.rhsa:ste:3"),
        _test("t4", "oval:com.redhat.rhsa:obj:1", check="none satisfy"),
    ]}
    result = parse_tests(_write_stream(tmp_path, tests))
    assert result == {
        "t1": RpmInfoTest(name="thunderbird", fixed_version="0:78.6.0-1.el8_3",
                          arch="aarch64|ppc64le|x86_64"),
        "t2": RpmInfoTest(name="redhat-release", signature_key_id="199e2f91fd431d51"),
        "t3": RpmInfoTest(name="thunderbird"),
    }


def test_field_names_are_case_insensitive(tmp_path):
    objects = {"rpminfoobjects": [{"id": "o1", "name": "bind"}]}
    tests = {"rpminfotests": [{"check": "at least one", "id": "t1",
                               "object": {"objectref": "o1"}}]}
    result = parse_tests(_write_stream(tmp_path, tests, objects=objects))
    assert result["t1"].name == "bind"


def test_follow_without_object_ref():
    assert follow_test_refs(_test("t1"), {}, {}) == RpmInfoTest()


def test_follow_without_state_ref():
    result = follow_test_refs(_test("t1", "o1"), {"o1": "bind"}, {})
    assert result == RpmInfoTest(name="bind")


def test_follow_missing_object():
    with pytest.raises(ValueError, match="can't find object ref: o9, test ref: t1"):
        follow_test_refs(_test("t1", "o9"), {"o1": "bind"}, {})


def test_follow_missing_state():
    with pytest.raises(ValueError, match="can't find ovalstate ref s9"):
        follow_test_refs(_test("t1", "o1", "s9"), {"o1": "bind"}, {})


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_tests(tmp_path)


def test_broken_json(tmp_path):
    _write_stream(tmp_path, {"RpminfoTests": []})
    (tmp_path / "tests" / "tests.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(ValueError, match="failed to decode Red Hat OVAL JSON"):
        parse_tests(tmp_path)