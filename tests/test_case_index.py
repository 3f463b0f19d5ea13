from issuelink.schemas.records import CaseRecord
from issuelink.services.case_index import CaseIndex

from factories import make_case


def _index(*cases) -> CaseIndex:
    return CaseIndex([CaseRecord.model_validate(case) for case in cases])


def test_lookup_by_case_number_and_zero_stripped_variant():
    index = _index(make_case("500A00000000000001", "acct-1", external_case_number="00345678"))

    assert index.lookup("00345678") == "acct-1"
    assert index.lookup("345678") == "acct-1"


def test_padded_identifier_resolves_unpadded_case_number():
    index = _index(make_case("500A00000000000001", "acct-1", external_case_number="345678"))

    assert index.lookup("00345678") == "acct-1"


def test_lookup_by_record_id():
    index = _index(make_case("500A00000000000001", "acct-1", external_case_number="00345678"))

    assert index.lookup("500A00000000000001") == "acct-1"
    assert index.lookup_case("500A00000000000001").external_case_number == "00345678"


def test_unknown_identifier_returns_none():
    index = _index(make_case("500A00000000000001", "acct-1", external_case_number="00345678"))

    assert index.lookup("99999999") is None


def test_identifier_shared_by_two_accounts_is_dropped():
    index = _index(
        make_case("500A00000000000001", "acct-1", external_case_number="00345678"),
        make_case("500A00000000000002", "acct-2", external_case_number="00345678"),
    )

    assert index.lookup("00345678") is None
    assert "00345678" in index.ambiguous
    # Record ids stay unique.
    assert index.lookup("500A00000000000002") == "acct-2"


def test_duplicate_identifier_within_one_account_is_kept():
    index = _index(
        make_case("500A00000000000001", "acct-1", external_case_number="00345678"),
        make_case("500A00000000000002", "acct-1", external_case_number="00345678"),
    )

    assert index.lookup("00345678") == "acct-1"
    assert not index.ambiguous


def test_accounts_by_theme():
    index = _index(
        make_case("500A00000000000001", "acct-1", external_case_number="00345678", theme_key="billing"),
        make_case("500A00000000000002", "acct-2", theme_key="billing"),
        make_case("500A00000000000003", "acct-2", theme_key="sync_delays"),
    )

    assert index.accounts_for_theme("billing") == {"acct-1", "acct-2"}
    assert index.accounts_for_theme("unknown") == frozenset()
    assert index.theme_keys == {"billing", "sync_delays"}
