import pytest

from app.entities import SessionState
from app.services.intent_service import (
    Intent,
    classify_intent,
    detect_intents,
    intent_for_reply,
    normalize_text,
)


class TestIntentEnum:
    def test_all_intents_defined(self):
        expected = {"start", "confirm", "buy", "restart", "check_payment", "share", "unknown"}
        assert {i.value for i in Intent} == expected


class TestClassifyIntent:
    @pytest.mark.parametrize(
        "text,intent",
        [
            ("hi", Intent.START),
            ("Hello there", Intent.START),
            ("I'm READY", Intent.CONFIRM),
            ("yes", Intent.CONFIRM),
            ("I want the PDF", Intent.BUY),
            ("buy", Intent.BUY),
            ("new photo please", Intent.RESTART),
            ("paid", Intent.CHECK_PAYMENT),
            ("share", Intent.SHARE),
        ],
    )
    def test_keywords(self, text, intent):
        assert classify_intent(text) == intent

    def test_unknown_text(self):
        assert classify_intent("what's the weather like") == Intent.UNKNOWN

    def test_empty_and_none(self):
        assert classify_intent("") == Intent.UNKNOWN
        assert classify_intent(None) == Intent.UNKNOWN

    def test_whole_words_only(self):
        # "this" contains "hi", "newsletter" contains "new"
        assert classify_intent("this newsletter") == Intent.UNKNOWN

    def test_priority_payment_over_buy(self):
        assert classify_intent("I paid for the guide") == Intent.CHECK_PAYMENT

    def test_priority_buy_over_start(self):
        assert classify_intent("hi, can I buy the guide") == Intent.BUY


class TestDetectIntents:
    def test_returns_all_matches(self):
        assert detect_intents("yes I paid") == frozenset({Intent.CONFIRM, Intent.CHECK_PAYMENT})

    def test_normalizes_whitespace_and_case(self):
        assert normalize_text("  Hello   THERE ") == "hello there"


class TestIntentForReply:
    def test_button_ids(self):
        assert intent_for_reply("get_pdf", SessionState.RESULTS_SHOWN) == Intent.BUY
        assert intent_for_reply("start_analysis", SessionState.GUIDE_SHOWN) == Intent.CONFIRM
        assert intent_for_reply("share_results", SessionState.RESULTS_SHOWN) == Intent.SHARE

    def test_menu_numbers_depend_on_state(self):
        assert intent_for_reply("1", SessionState.RESULTS_SHOWN) == Intent.BUY
        assert intent_for_reply("2", SessionState.RESULTS_SHOWN) == Intent.RESTART
        assert intent_for_reply("1", SessionState.GUIDE_SHOWN) == Intent.CONFIRM
        assert intent_for_reply("2", SessionState.GUIDE_SHOWN) == Intent.UNKNOWN

    def test_unknown_reply(self):
        assert intent_for_reply("something_else", SessionState.RESULTS_SHOWN) == Intent.UNKNOWN
