from issuelink.db.enums import ThemeMatchType
from issuelink.schemas.records import CaseRecord, TicketRecord
from issuelink.services.theme_linker import ThemeLinker, theme_keywords

from factories import make_case, make_ticket


def _ticket(**kwargs) -> TicketRecord:
    return TicketRecord.model_validate(make_ticket("t1", "EDGE-1", **kwargs))


def test_theme_keywords_drop_short_words():
    assert theme_keywords("app_login_failure") == ("login", "failure")


def test_label_matches_normalized_theme_key():
    linker = ThemeLinker(["billing_errors"])

    links = linker.link(_ticket(labels=["Billing-Errors"]))

    assert [(l.theme_key, l.match_type, l.confidence) for l in links] == [
        ("billing_errors", ThemeMatchType.LABEL, 1.0)
    ]


def test_two_keyword_hits_give_high_confidence():
    linker = ThemeLinker(["payment_processing_failure"])

    links = linker.link(_ticket(summary="Payment processing is slow"))

    assert len(links) == 1
    assert links[0].match_type == ThemeMatchType.KEYWORD
    assert links[0].confidence == 0.8
    assert links[0].evidence == ("payment", "processing")


def test_single_word_theme_gives_medium_confidence():
    linker = ThemeLinker(["integrations"])

    links = linker.link(_ticket(description="All integrations broken since deploy"))

    assert [(l.theme_key, l.confidence) for l in links] == [("integrations", 0.6)]


def test_one_word_of_multi_word_theme_is_not_enough():
    linker = ThemeLinker(["payment_processing_failure"])

    assert linker.link(_ticket(summary="Payment page typo")) == []


def test_case_hit_beats_keyword_evidence():
    linker = ThemeLinker(["billing_errors"])
    case = CaseRecord.model_validate(
        make_case("500A00000000000001", "acct-1", theme_key="billing_errors")
    )

    links = linker.link(_ticket(summary="billing errors again"), [case])

    assert len(links) == 1
    assert links[0].match_type == ThemeMatchType.DIRECT_CASE_ID
    assert links[0].confidence == 1.0
    assert links[0].evidence == ("500A00000000000001",)


def test_links_are_ordered_by_theme_key():
    linker = ThemeLinker(["sync_delays", "billing_errors"])

    links = linker.link(_ticket(labels=["sync_delays", "billing errors"]))

    assert [l.theme_key for l in links] == ["billing_errors", "sync_delays"]
