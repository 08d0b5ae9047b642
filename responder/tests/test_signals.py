"""
Tests for the Signal Normalizer

Covers the regex detectors, the blank / question / multi-topic derived
signals, and the union with classifier-provided signals.
"""

import pytest

from responder.engine.signals import Signal, detect, normalize_signals


class TestDetectors:
    """Tests for single named detectors"""

    @pytest.mark.parametrize("text", [
        "Please unsubscribe me",
        "remove me from your list",
        "Stop emailing me.",
        "Do not contact this address again",
    ])
    def test_unsubscribe(self, text):
        assert detect(Signal.UNSUBSCRIBE, text)

    @pytest.mark.parametrize("text", [
        "I'm out of office until the 14th",
        "Automatic reply: thanks for your message",
        "I am currently out with limited access to email",
        "I will return on Monday",
    ])
    def test_out_of_office(self, text):
        assert detect(Signal.OUT_OF_OFFICE, text)

    def test_explicit_yes_only_at_start(self):
        assert detect(Signal.EXPLICIT_YES, "Yes please")
        assert detect(Signal.EXPLICIT_YES, "  sure, go ahead")
        assert not detect(Signal.EXPLICIT_YES, "I'm not sure yes is right")

    def test_agreement_requests(self):
        assert detect(Signal.SEND_AGREEMENT, "Send over the agreement")
        assert detect(Signal.ASKS_FOR_AGREEMENT, "Could you send the contract?")
        assert not detect(Signal.ASKS_FOR_AGREEMENT, "We signed a contract last year")

    def test_skeptical_short_words_need_word_boundaries(self):
        assert detect(Signal.SKEPTICAL, "Are you a bot?")
        assert detect(Signal.SKEPTICAL, "Is this AI generated?")
        assert not detect(Signal.SKEPTICAL, "I'm available this afternoon")
        assert not detect(Signal.SKEPTICAL, "Both roles are open")

    def test_done_all_set(self):
        assert detect(Signal.DONE_ALL_SET, "We're all set, thanks")
        assert detect(Signal.DONE_ALL_SET, "no need at the moment")

    def test_already_signed(self):
        assert detect(Signal.ALREADY_SIGNED, "I already signed it yesterday")

    def test_detection_is_case_insensitive(self):
        assert detect(Signal.UNSUBSCRIBE, "UNSUBSCRIBE")

    def test_unknown_detector_raises(self):
        with pytest.raises(KeyError, match="Unknown detector"):
            detect("no_such_signal", "text")


class TestNormalizeSignals:
    """Tests for normalize_signals"""

    def test_yes_send_it_over(self):
        signals = normalize_signals("yes, send it over")

        assert Signal.EXPLICIT_YES in signals
        assert Signal.SEND_IT in signals
        assert Signal.HAS_QUESTION not in signals

    def test_unsubscribe_please(self):
        assert Signal.UNSUBSCRIBE in normalize_signals("unsubscribe please")

    @pytest.mark.parametrize("body", ["", "   ", "a", None])
    def test_blank_body(self, body):
        assert Signal.AUTO_REPLY_BLANK in normalize_signals(body)

    def test_two_characters_is_not_blank(self):
        assert Signal.AUTO_REPLY_BLANK not in normalize_signals("ok")

    def test_question_mark(self):
        assert Signal.HAS_QUESTION in normalize_signals("Who is this?")

    def test_agreement_plus_fees_is_multi_topic(self):
        signals = normalize_signals("Can you send the agreement? Also what are your fees?")

        assert Signal.ASKS_FOR_AGREEMENT in signals
        assert Signal.ASKS_FEES in signals
        assert Signal.MULTI_TOPIC in signals

    def test_resume_and_call_is_multi_topic(self):
        signals = normalize_signals("Can you send the resume first? Then we can talk Monday.")

        assert Signal.WANTS_RESUME_FIRST in signals
        assert Signal.WANTS_CALL_FIRST in signals
        assert Signal.MULTI_TOPIC in signals

    def test_single_topic_is_not_multi_topic(self):
        signals = normalize_signals("What are your fees?")

        assert Signal.ASKS_FEES in signals
        assert Signal.MULTI_TOPIC not in signals

    def test_model_signals_are_kept(self):
        signals = normalize_signals("hello there", [Signal.NEEDS_HUMAN, "custom_flag"])

        assert Signal.NEEDS_HUMAN in signals
        assert "custom_flag" in signals

    def test_model_signals_never_removed(self):
        # Regex finds nothing fee-related, classifier signal still stands
        signals = normalize_signals("Thanks!", [Signal.ASKS_FEES])
        assert Signal.ASKS_FEES in signals

    def test_empty_model_signals_are_dropped(self):
        signals = normalize_signals("hello there", ["", None])
        assert "" not in signals
        assert None not in signals

    def test_result_is_frozen(self):
        assert isinstance(normalize_signals("hi"), frozenset)

    def test_deterministic(self):
        body = "Sure, send the contract. What's the fee?"
        assert normalize_signals(body, ["interested"]) == normalize_signals(body, ["interested"])
