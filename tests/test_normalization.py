from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from issuelink.schemas.records import AccountRecord, CaseRecord, TicketRecord
from issuelink.utils.datetime_parsing import coerce_utc_datetime
from issuelink.utils.normalization import (
    identifier_variants,
    normalize_name,
    normalize_theme_key,
    project_prefix,
    significant_tokens,
    split_list_value,
)

from factories import make_ticket


def test_normalize_name():
    assert normalize_name("  Harbor   Storage\tCo ") == "harbor storage co"
    assert normalize_name(None) == ""


def test_significant_tokens_drop_short_words():
    assert significant_tokens("Harbor Storage Co, LLC") == ["harbor", "storage"]


def test_split_list_value():
    assert split_list_value("EDGE; SiteLink, ,Storable") == ["EDGE", "SiteLink", "Storable"]
    assert split_list_value(["a, b", "c"]) == ["a", "b", "c"]
    assert split_list_value(None) == []


def test_identifier_variants():
    assert identifier_variants("00345678") == ["00345678", "345678"]
    assert identifier_variants("500A00000000000001") == ["500A00000000000001"]
    assert identifier_variants("  ") == []


def test_project_prefix_and_theme_key():
    assert project_prefix("mreq-100") == "MREQ"
    assert project_prefix("NOKEY") is None
    assert normalize_theme_key("Billing-Errors") == "billing_errors"
    assert normalize_theme_key("slip  reservations") == "slip_reservations"


def test_coerce_utc_datetime():
    assert coerce_utc_datetime("2024-05-01T10:00:00Z") == datetime(
        2024, 5, 1, 10, 0, tzinfo=timezone.utc
    )
    assert coerce_utc_datetime(datetime(2024, 5, 1)) == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert coerce_utc_datetime(date(2024, 5, 1)) == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert coerce_utc_datetime("not a date") is None
    assert coerce_utc_datetime("") is None


# =============================================================================
# Record validation
# =============================================================================

def test_ticket_record_normalizes_fields():
    ticket = TicketRecord.model_validate(
        {
            **make_ticket("t1", "EDGE-1", labels=None),
            "custom_fields": None,
            "labels": "billing-errors, gate",
            "resolution_date": "2024-05-01",
        }
    )

    assert ticket.custom_fields == {}
    assert ticket.labels == ["billing-errors", "gate"]
    assert ticket.resolution_date == datetime(2024, 5, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "overrides",
    [
        {"external_key": "EDGE"},
        {"external_key": "EDGE-1a"},
        {"id": ""},
        {"resolution_date": "yesterday-ish"},
    ],
)
def test_ticket_record_rejects_malformed(overrides):
    with pytest.raises(ValidationError):
        TicketRecord.model_validate({**make_ticket("t1", "EDGE-1"), **overrides})


def test_case_and_account_records():
    case = CaseRecord.model_validate(
        {"id": "c1", "account_id": " ", "external_case_number": 345678, "theme_key": ""}
    )
    assert case.account_id is None
    assert case.external_case_number == "345678"
    assert case.theme_key is None

    account = AccountRecord.model_validate({"id": "a1", "name": "Harbor", "products": "EDGE;SiteLink"})
    assert account.products == ["EDGE", "SiteLink"]
