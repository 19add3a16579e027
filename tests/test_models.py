from datetime import datetime, timezone

from vulnfeed.models import (
    Advisories,
    Advisory,
    DataSource,
    Severity,
    SourceID,
    Status,
    VulnerabilityDetail,
)


def test_source_id_hashes_like_string():
    mapping = {"nvd": 1}
    assert mapping[SourceID.NVD] == 1
    assert SourceID("redhat-oval") is SourceID.RED_HAT_OVAL


def test_severity_names():
    assert str(Severity.MEDIUM) == "MEDIUM"
    assert Severity(0) is Severity.UNKNOWN


def test_data_source_round_trip():
    ds = DataSource(id=SourceID.ROCKY, name="Rocky Linux updateinfo",
                    url="https://download.rockylinux.org/pub/rocky/")
    data = ds.to_dict()
    assert data["ID"] == "rocky"
    assert DataSource.from_dict(data) == ds


def test_advisory_omits_empty_fields():
    adv = Advisory(fixed_version="1.2.3")
    assert adv.to_dict() == {"FixedVersion": "1.2.3"}


def test_advisory_round_trip_excludes_data_source():
    adv = Advisory(vendor_ids=["RLSA-2021:1989"], arches=["x86_64"],
                   severity=Severity.HIGH, status=Status.AFFECTED,
                   data_source=DataSource(id="x"))
    back = Advisory.from_dict(adv.to_dict())
    assert back.data_source is None
    assert back.vendor_ids == ["RLSA-2021:1989"]
    assert back.status is Status.AFFECTED
    assert back.severity is Severity.HIGH


def test_advisories_round_trip():
    advs = Advisories(fixed_version="0.0.0",
                      entries=[Advisory(fixed_version="32:9.11.26-4.el8_4", arches=["aarch64"])])
    assert Advisories.from_dict(advs.to_dict()) == advs


def test_vulnerability_detail_round_trip_with_dates():
    detail = VulnerabilityDetail(
        cvss_score_v3=5.9, severity=Severity.MEDIUM, references=["a"],
        published_date=datetime(2001, 1, 1, 1, 2, 3, tzinfo=timezone.utc),
    )
    assert VulnerabilityDetail.from_dict(detail.to_dict()) == detail


def test_vulnerability_detail_parses_zulu_time():
    detail = VulnerabilityDetail.from_dict({"LastModifiedDate": "2020-01-01T01:02:03Z"})
    assert detail.last_modified_date == datetime(2020, 1, 1, 1, 2, 3, tzinfo=timezone.utc)