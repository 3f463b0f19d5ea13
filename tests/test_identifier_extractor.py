import pytest

from issuelink.schemas.records import TicketRecord
from issuelink.services.identifier_extractor import (
    ExtractedIdentifier,
    extract_identifiers,
    validate_field_specs,
)

from factories import make_ticket

ALL_FIELDS = ("custom_fields", "summary", "description", "labels")


def _ticket(**kwargs) -> TicketRecord:
    return TicketRecord.model_validate(make_ticket("t1", "EDGE-1", **kwargs))


def test_finds_case_number_in_summary():
    ticket = _ticket(summary="Customer case 00345678 reopened")

    assert extract_identifiers(ticket, ALL_FIELDS) == [
        ExtractedIdentifier("00345678", "summary")
    ]


def test_custom_field_hits_are_tagged_with_field_id():
    ticket = _ticket(custom_fields={"customfield_10500": "5003000000D8cuIAAR"})

    found = extract_identifiers(ticket, ALL_FIELDS)

    assert found == [ExtractedIdentifier("5003000000D8cuIAAR", "custom_fields.customfield_10500")]
    assert found[0].from_custom_field


def test_list_and_numeric_values_are_coerced():
    ticket = _ticket(custom_fields={"cases": ["12345678", 87654321], "empty": None})

    identifiers = {item.identifier for item in extract_identifiers(ticket, ALL_FIELDS)}

    assert identifiers == {"12345678", "87654321"}


def test_longer_digit_runs_are_not_case_numbers():
    ticket = _ticket(summary="order 123456789 and phone 5551234")

    assert extract_identifiers(ticket, ALL_FIELDS) == []


def test_missing_fields_are_tolerated():
    ticket = _ticket(summary=None, description=None, custom_fields=None)

    assert extract_identifiers(ticket, ALL_FIELDS) == []


def test_single_custom_field_spec_ignores_other_fields():
    ticket = _ticket(custom_fields={"cf_a": "11111111", "cf_b": "22222222"})

    found = extract_identifiers(ticket, ["custom_fields.cf_a"])

    assert found == [ExtractedIdentifier("11111111", "custom_fields.cf_a")]


def test_same_identifier_reported_once_per_field():
    ticket = _ticket(
        summary="12345678 duplicate of 12345678",
        description="see 12345678",
    )

    found = extract_identifiers(ticket, ALL_FIELDS)

    assert found == [
        ExtractedIdentifier("12345678", "summary"),
        ExtractedIdentifier("12345678", "description"),
    ]


def test_labels_are_scanned_when_configured():
    ticket = _ticket(labels=["case-00345678", "billing"])

    assert extract_identifiers(ticket, ["labels"]) == [ExtractedIdentifier("00345678", "labels")]
    assert extract_identifiers(ticket, ["summary"]) == []


def test_unknown_field_spec_is_rejected():
    with pytest.raises(ValueError):
        validate_field_specs(["summary", "comments"])
    with pytest.raises(ValueError):
        validate_field_specs(["custom_fields."])
