import json
from pathlib import Path

import pytest

from vulnfeed.models import Advisory, DataSource, Severity, SourceID
from vulnfeed.store import Store, StoreError
from vulnfeed.ubuntu import (
    UbuntuCVE,
    UbuntuSource,
    default_put,
    severity_from_priority,
)

DESCRIPTION = (
    "Observable response discrepancy in some Intel(R) Processors may allow an authorized "
    "user to potentially enable information disclosure via local access."
)

CVE_RECORD = {
    "description": DESCRIPTION,
    "Candidate": "CVE-2020-1234",
    "Priority": "medium",
    "Patches": {
        "xen": {
            "bionic": {"Status": "released", "Note": "1.2.3"},
            "focal": {"Status": "not-affected", "Note": "1.2.3"},
            "unknown-release": {"Status": "needed", "Note": ""},
        },
    },
    "References": ["https://cve.mitre.org/cgi-bin/cvename.cgi?name=CVE-2021-0089"],
}


def _write(base: Path, name: str, data) -> None:
    path = base / "vuln-list" / "ubuntu" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")


def test_update_happy(tmp_path):
    _write(tmp_path, "CVE-2020-1234.json", CVE_RECORD)
    store = Store()
    UbuntuSource(store).update(tmp_path)

    assert store.get("data-source", "ubuntu 18.04") == {
        "ID": "ubuntu",
        "Name": "Ubuntu CVE Tracker",
        "URL": "https://git.launchpad.net/ubuntu-cve-tracker",
    }
    assert store.get("advisory-detail", "CVE-2020-1234", "ubuntu 18.04", "xen") == {
        "FixedVersion": "1.2.3",
    }
    assert store.get("vulnerability-detail", "CVE-2020-1234", "ubuntu") == {
        "Description": DESCRIPTION,
        "Severity": 2,
        "References": ["https://cve.mitre.org/cgi-bin/cvename.cgi?name=CVE-2021-0089"],
    }
    assert store.has_bucket("advisory-detail", "CVE-2020-1234", "ubuntu 20.04") is False


def test_update_needed_status_has_no_fixed_version(tmp_path):
    record = dict(CVE_RECORD, Patches={"xen": {"esm-infra/xenial": {"Status": "needed", "Note": "x"}}})
    _write(tmp_path, "CVE-2020-1234.json", record)
    store = Store()
    UbuntuSource(store).update(tmp_path)
    assert store.get("advisory-detail", "CVE-2020-1234", "ubuntu 16.04-ESM", "xen") == {}


def test_update_broken_json(tmp_path):
    _write(tmp_path, "CVE-2020-1234.json", "{broken")
    with pytest.raises(ValueError, match="failed to decode Ubuntu JSON"):
        UbuntuSource(Store()).update(tmp_path)


def test_update_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError, match="no such file or directory"):
        UbuntuSource(Store()).update(tmp_path)


def test_update_with_custom_put(tmp_path):
    _write(tmp_path, "CVE-2020-1234.json", CVE_RECORD)
    seen = []
    store = Store()
    UbuntuSource(store, put=lambda s, cve: seen.append(cve.candidate)).update(tmp_path)
    assert seen == ["CVE-2020-1234"]
    assert store.has_bucket("advisory-detail") is False


def test_default_put_rejects_unknown_type():
    with pytest.raises(TypeError, match="unknown type"):
        default_put(Store(), {"Candidate": "CVE-1"})


def test_get_round_trip(tmp_path):
    _write(tmp_path, "CVE-2020-1234.json", CVE_RECORD)
    store = Store()
    source = UbuntuSource(store)
    source.update(tmp_path)
    got = source.get("18.04", "xen")
    assert got == [Advisory(
        vulnerability_id="CVE-2020-1234",
        fixed_version="1.2.3",
        data_source=DataSource(id=SourceID.UBUNTU, name="Ubuntu CVE Tracker",
                               url="https://git.launchpad.net/ubuntu-cve-tracker"),
    )]
    assert source.get("20.04", "xen") == []


def test_get_broken_json():
    store = Store({"advisory-detail": {"CVE-1": {"ubuntu 18.04": {"xen": "{broken"}}}})
    with pytest.raises(StoreError, match="failed to get Ubuntu advisories"):
        UbuntuSource(store).get("18.04", "xen")


def test_cve_from_dict():
    cve = UbuntuCVE.from_dict(CVE_RECORD)
    assert cve.candidate == "CVE-2020-1234"
    assert cve.patches["xen"]["bionic"].note == "1.2.3"
    assert cve.priority == "medium"


def test_cve_from_dict_rejects_wrong_types():
    with pytest.raises(ValueError, match="failed to decode Ubuntu JSON"):
        UbuntuCVE.from_dict({"Candidate": 3})


@pytest.mark.parametrize("priority, want", [
    ("untriaged", Severity.UNKNOWN),
    ("negligible", Severity.LOW),
    ("low", Severity.LOW),
    ("medium", Severity.MEDIUM),
    ("high", Severity.HIGH),
    ("critical", Severity.CRITICAL),
    ("other", Severity.UNKNOWN),
])
def test_severity_from_priority(priority, want):
    assert severity_from_priority(priority) == want


def test_name():
    assert UbuntuSource(Store()).name() == SourceID.UBUNTU