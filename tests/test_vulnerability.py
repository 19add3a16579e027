import json
from datetime import datetime, timezone

import pytest

from vulnfeed.models import CVSS, Ecosystem, Severity, SourceID, Vulnerability, VulnerabilityDetail
from vulnfeed.store import Store
from vulnfeed.vulnerability import VulnerabilityResolver, normalize_pkg_name, score_to_severity


def t(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


NVD_DETAIL = VulnerabilityDetail(
    cvss_score=4.2, cvss_vector="AV:N/AC:M/Au:N/C:N/I:P/A:N",
    cvss_score_v3=5.6, cvss_vector_v3="CVSS:3.0/AV:A/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
    severity_v3=Severity.HIGH, cwe_ids=["CWE-125", "CWE-200"],
    last_modified_date=t("2020-01-01T01:02:03Z"), published_date=t("2001-01-01T01:02:03Z"),
)
RH_DETAIL = VulnerabilityDetail(
    cvss_score_v3=6.7, cvss_vector_v3="CVSS:3.0/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
    severity_v3=Severity.HIGH, title="test vulnerability",
    description="a test vulnerability where vendor rates it lower than NVD",
    references=["http://foo-bar.com/baz"],
)


def happy_store():
    store = Store()
    store.put_vulnerability_detail("CVE-2020-1234", SourceID.NVD, NVD_DETAIL)
    store.put_vulnerability_detail("CVE-2020-1234", SourceID.RED_HAT, RH_DETAIL)
    return store


def test_get_details_happy():
    got = VulnerabilityResolver(happy_store()).get_details("CVE-2020-1234")
    assert got == {SourceID.NVD: NVD_DETAIL, SourceID.RED_HAT: RH_DETAIL}


def test_get_details_missing():
    assert VulnerabilityResolver(happy_store()).get_details("CVE-2020-9999") is None


def test_get_details_broken(tmp_path):
    path = tmp_path / "db.json"
    path.write_text(json.dumps({"vulnerability-detail": {"CVE-2020-1234": {"nvd": "{bad"}}}))
    assert VulnerabilityResolver(Store.load(path)).get_details("CVE-2020-1234") is None


def test_is_rejected():
    desc = "a test vulnerability where vendor rates it lower than NVD"
    plain = {
        SourceID.NVD: VulnerabilityDetail(id="CVE-2020-1234", cvss_score=9.1, title="test vulnerability", description=desc),
        SourceID.RED_HAT: VulnerabilityDetail(id="CVE-2020-1234", cvss_score_v3=5.6, title="test vulnerability", description=desc),
    }
    assert VulnerabilityResolver().is_rejected(plain) is False
    rejected = {
        SourceID.RED_HAT: VulnerabilityDetail(cvss_score_v3=5.6, description=desc),
        SourceID.UBUNTU: VulnerabilityDetail(cvss_score=1.2, cvss_score_v3=3.4, severity=Severity.LOW,
                                             severity_v3=Severity.MEDIUM, description=desc),
        SourceID.NVD: VulnerabilityDetail(cvss_score=9.1, description="** REJECT ** " + desc),
    }
    assert VulnerabilityResolver().is_rejected(rejected) is True


def test_normalize_happy():
    nvd = VulnerabilityDetail(**{**NVD_DETAIL.__dict__, "severity_v3": Severity.MEDIUM})
    got = VulnerabilityResolver().normalize({SourceID.NVD: nvd, SourceID.RED_HAT: RH_DETAIL})
    assert got == Vulnerability(
        title="test vulnerability",
        description="a test vulnerability where vendor rates it lower than NVD",
        severity="MEDIUM",
        vendor_severity={SourceID.NVD: Severity.MEDIUM, SourceID.RED_HAT: Severity.HIGH},
        cvss={
            SourceID.NVD: CVSS(v2_vector="AV:N/AC:M/Au:N/C:N/I:P/A:N",
                               v3_vector="CVSS:3.0/AV:A/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
                               v2_score=4.2, v3_score=5.6),
            SourceID.RED_HAT: CVSS(v3_vector="CVSS:3.0/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H", v3_score=6.7),
        },
        cwe_ids=["CWE-125", "CWE-200"],
        references=["http://foo-bar.com/baz"],
        last_modified_date=t("2020-01-01T01:02:03Z"),
        published_date=t("2001-01-01T01:02:03Z"),
    )


def test_normalize_mixed_vendors():
    desc = "a test vulnerability where vendor rates it lower than NVD"
    vec3 = "CVSS:3.0/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"
    details = {
        SourceID.RED_HAT: VulnerabilityDetail(cvss_score=4.2, cvss_vector="AV:N/AC:M/Au:N/C:N/I:P/A:N",
                                              cvss_score_v3=5.6, cvss_vector_v3=vec3,
                                              severity_v3=Severity.CRITICAL, title="test vulnerability",
                                              description=desc, references=["http://foo-bar.com/baz"]),
        SourceID.UBUNTU: VulnerabilityDetail(cvss_score_v3=3.4, cvss_vector_v3=vec3, severity=Severity.LOW,
                                             severity_v3=Severity.MEDIUM, title="test vulnerability",
                                             description=desc),
        SourceID.NODEJS_SECURITY_WG: VulnerabilityDetail(cvss_score=-1, title="test vulnerability",
                                                         description=desc),
    }
    got = VulnerabilityResolver().normalize(details)
    assert got.severity == "MEDIUM"
    assert got.vendor_severity == {SourceID.RED_HAT: Severity.CRITICAL, SourceID.UBUNTU: Severity.MEDIUM}
    assert got.cvss == {
        SourceID.RED_HAT: CVSS(v2_vector="AV:N/AC:M/Au:N/C:N/I:P/A:N", v3_vector=vec3, v2_score=4.2, v3_score=5.6),
        SourceID.UBUNTU: CVSS(v3_vector=vec3, v3_score=3.4),
    }
    assert got.references == ["http://foo-bar.com/baz"]
    assert got.cwe_ids == []


def test_normalize_no_scores():
    desc = "a test vulnerability where vendor rates it lower than NVD"
    details = {
        SourceID.UBUNTU: VulnerabilityDetail(severity=Severity.LOW, severity_v3=Severity.MEDIUM,
                                             title="test vulnerability", description=desc),
        SourceID.NODEJS_SECURITY_WG: VulnerabilityDetail(title="test vulnerability", description=desc),
    }
    got = VulnerabilityResolver().normalize(details)
    assert got == Vulnerability(severity="MEDIUM", vendor_severity={SourceID.UBUNTU: Severity.MEDIUM},
                                cvss={}, title="test vulnerability", description=desc)


def test_normalize_cvss_v40():
    v3 = "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"
    v40 = "CVSS:4.0/AV:N/AC:L/AT:N/PR:N/UI:N/VC:L/VI:L/VA:L/SC:N/SI:N/SA:N"
    refs = ["https://vuldb.com/?ctiid.267406", "https://vuldb.com/?id.267406"]
    details = {SourceID.NVD: VulnerabilityDetail(
        description="a test vulnerability for NVD CVSS v4.0", cvss_score_v3=9.8, cvss_vector_v3=v3,
        cvss_score_v40=6.9, cvss_vector_v40=v40, severity_v3=Severity.CRITICAL,
        severity_v40=Severity.MEDIUM, cwe_ids=["CWE-287"], references=refs,
        last_modified_date=t("2024-06-11T17:57:13.767Z"), published_date=t("2024-06-07T10:15:12.293Z"))}
    got = VulnerabilityResolver().normalize(details)
    assert got.severity == "MEDIUM"
    assert got.vendor_severity == {SourceID.NVD: Severity.MEDIUM}
    assert got.cvss == {SourceID.NVD: CVSS(v3_vector=v3, v40_vector=v40, v3_score=9.8, v40_score=6.9)}
    assert got.references == refs
    assert got.published_date == t("2024-06-07T10:15:12.293Z")


def test_references_split_and_amazon_skipped():
    details = {
        SourceID.RED_HAT: VulnerabilityDetail(references=["\nhttps://b\nhttps://a\n    "]),
        SourceID.AMAZON: VulnerabilityDetail(references=["https://amazon"]),
    }
    assert VulnerabilityResolver().normalize(details).references == ["https://a", "https://b"]


@pytest.mark.parametrize("score,expected", [
    (9.0, Severity.CRITICAL), (7.0, Severity.HIGH), (4.0, Severity.MEDIUM),
    (0.1, Severity.LOW), (0.0, Severity.UNKNOWN),
])
def test_score_to_severity(score, expected):
    assert score_to_severity(score) is expected


@pytest.mark.parametrize("ecosystem,name,expected", [
    (Ecosystem.PIP, "Foo_Bar", "foo-bar"),
    (Ecosystem.SWIFT, "https://github.com/a/B.git", "github.com/a/B"),
    (Ecosystem.NUGET, "Newtonsoft.Json", "Newtonsoft.Json"),
    (Ecosystem.GO, "github.com/A/b", "github.com/A/b"),
    (Ecosystem.NPM, "Lodash", "lodash"),
])
def test_normalize_pkg_name(ecosystem, name, expected):
    assert normalize_pkg_name(ecosystem, name) == expected