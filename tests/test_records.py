import logging

from profileharvest.core.extract.profile import DetailRecord
from profileharvest.core.orchestrator.records import CompleteRecord, PartialRecord
from profileharvest.core.search.models import Query, RecordSummary

QUERY = Query(keyword="epidemiology", department="", institution="HSPH")

SUMMARY = RecordSummary(
    id=42,
    display_name="Jane Doe",
    institution="Harvard T.H. Chan School of Public Health",
    department="Epidemiology",
    rank="Professor",
    detail_url="https://connects.catalyst.harvard.edu/profiles/display/Person/42",
)


def test_complete_record_prefers_detail_values():
    detail = DetailRecord(
        first_name="Jane",
        last_name="Doe",
        display_name="Jane Doe, Sc.D.",
        title="Professor of Epidemiology",
        department="Dept. of Epidemiology",
        address="677 Huntington Ave",
        phone="617-555-0100",
        email="jdoe@hsph.harvard.edu",
    )

    record = CompleteRecord.merge(SUMMARY, detail, QUERY).to_dict()

    assert record["display_name"] == "Jane Doe, Sc.D."
    assert record["department"] == "Dept. of Epidemiology"
    assert record["institution"] == "Harvard T.H. Chan School of Public Health"
    assert record["faculty_rank"] == "Professor"
    assert record["email"] == "jdoe@hsph.harvard.edu"
    assert record["query"] == {
        "search_keywords": "epidemiology",
        "department": "",
        "institution": "HSPH",
    }
    assert "is_partial" not in record
    assert "error" not in record


def test_complete_record_uses_recovered_email():
    detail = DetailRecord(first_name="Jane", last_name="Doe")

    record = CompleteRecord.merge(SUMMARY, detail, QUERY, email="jane@hsph.harvard.edu")

    assert record.email == "jane@hsph.harvard.edu"


def test_limited_detail_is_logged(caplog):
    with caplog.at_level(logging.WARNING):
        record = CompleteRecord.merge(SUMMARY, DetailRecord(), QUERY)

    assert record.has_limited_detail
    assert record.display_name == "Jane Doe"
    assert "Limited detail" in caplog.text


def test_partial_record_shape():
    record = PartialRecord.from_summary(SUMMARY, "Timeout loading page", QUERY).to_dict()

    assert record["is_partial"] is True
    assert record["error"] == "Timeout loading page"
    assert record["display_name"] == "Jane Doe"
    assert record["profile_url"].endswith("/42")
    assert "email" not in record
    assert record["collected_at"]
