"""
Tests for the Manual Ownership Detector

Threads are built the way the Reachinbox thread endpoint returns them:
campaign email first, then lead replies and our (marked) answers.
"""

from datetime import datetime, timezone

import pytest

from responder.engine.ownership import (
    ThreadMessage,
    detect_manual_owner,
    order_thread,
    parse_timestamp,
)

ACCOUNT = "sales@agency.io"
LEAD = "lead@corp.com"
MARKER = "<!-- autoresponder:auto -->"


def msg(message_id, sender, body, sent_at=None, html=""):
    return ThreadMessage(
        message_id=message_id,
        from_address=sender,
        body=body,
        sent_at=parse_timestamp(sent_at),
        html=html,
    )


class TestParseTimestamp:
    def test_zulu(self):
        parsed = parse_timestamp("2024-05-01T10:00:00Z")
        assert parsed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-05-01T10:00:00").tzinfo == timezone.utc

    def test_offset_is_converted(self):
        parsed = parse_timestamp("2024-05-01T12:00:00+02:00")
        assert parsed.hour == 10

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None


class TestOrderThread:
    def test_sorts_by_timestamp(self):
        thread = [
            msg("m2", LEAD, "reply", "2024-05-02T00:00:00Z"),
            msg("m1", ACCOUNT, "campaign", "2024-05-01T00:00:00Z"),
        ]
        assert [m.message_id for m in order_thread(thread)] == ["m1", "m2"]

    def test_keeps_provider_order_without_timestamps(self):
        thread = [
            msg("m2", LEAD, "reply"),
            msg("m1", ACCOUNT, "campaign", "2024-05-01T00:00:00Z"),
        ]
        assert [m.message_id for m in order_thread(thread)] == ["m2", "m1"]


class TestDetectManualOwner:
    """Tests for detect_manual_owner"""

    def test_only_campaign_email(self):
        thread = [
            msg("m1", ACCOUNT, "Hi, we recruit nurses"),
            msg("m2", LEAD, "What are your fees?"),
        ]

        verdict = detect_manual_owner(thread, ACCOUNT, MARKER)

        assert verdict.manual is False
        assert verdict.reason == "no outbound replies after the campaign email"

    def test_marked_replies_are_automated(self):
        thread = [
            msg("m1", ACCOUNT, "Hi, we recruit nurses"),
            msg("m2", LEAD, "What are your fees?"),
            msg("m3", ACCOUNT, f"<p>10%</p>{MARKER}"),
        ]

        verdict = detect_manual_owner(thread, ACCOUNT, MARKER)

        assert verdict.manual is False
        assert verdict.reason == "all 1 outbound replies carry the automation marker"

    def test_unmarked_reply_is_manual(self):
        thread = [
            msg("m1", ACCOUNT, "Hi, we recruit nurses"),
            msg("m2", LEAD, "What are your fees?"),
            msg("m3", ACCOUNT, f"<p>10%</p>{MARKER}"),
            msg("m4", LEAD, "Can we talk?"),
            msg("m5", "Sales Team <SALES@agency.io>", "Sure, calling you now"),
        ]

        verdict = detect_manual_owner(thread, ACCOUNT, MARKER)

        assert verdict.manual is True
        assert verdict.evidence_message_id == "m5"

    def test_marker_in_html_counts(self):
        thread = [
            msg("m1", ACCOUNT, "campaign"),
            msg("m2", LEAD, "Interested"),
            msg("m3", ACCOUNT, "plain text rendition", html=f"<p>hi</p>{MARKER}"),
        ]

        assert detect_manual_owner(thread, ACCOUNT, MARKER).manual is False

    def test_campaign_email_is_exempt_even_if_out_of_order(self):
        thread = [
            msg("m2", LEAD, "Interested", "2024-05-02T00:00:00Z"),
            msg("m1", ACCOUNT, "campaign without marker", "2024-05-01T00:00:00Z"),
        ]

        assert detect_manual_owner(thread, ACCOUNT, MARKER).manual is False

    def test_messages_before_rollout_are_ignored(self):
        thread = [
            msg("m1", ACCOUNT, "campaign", "2024-01-01T00:00:00Z"),
            msg("m2", LEAD, "Interested", "2024-01-02T00:00:00Z"),
            msg("m3", ACCOUNT, "old unmarked auto reply", "2024-01-03T00:00:00Z"),
        ]

        without_cutoff = detect_manual_owner(thread, ACCOUNT, MARKER)
        with_cutoff = detect_manual_owner(thread, ACCOUNT, MARKER, rollout_cutoff="2024-06-01")

        assert without_cutoff.manual is True
        assert with_cutoff.manual is False

    def test_raw_provider_dicts(self):
        thread = [
            {"messageId": "m1", "fromEmail": ACCOUNT, "text": "campaign", "sentAt": "2024-05-01T00:00:00Z"},
            {"messageId": "m2", "fromEmail": LEAD, "text": "yes", "sentAt": "2024-05-02T00:00:00Z"},
            {"messageId": "m3", "fromEmail": ACCOUNT, "html": "<p>Calling you</p>", "sentAt": "2024-05-03T00:00:00Z"},
        ]

        verdict = detect_manual_owner(thread, ACCOUNT, MARKER)

        assert verdict.manual is True
        assert verdict.evidence_message_id == "m3"

    def test_no_account_or_marker(self):
        thread = [msg("m1", ACCOUNT, "campaign"), msg("m2", ACCOUNT, "unmarked")]

        assert detect_manual_owner(thread, "", MARKER).manual is False
        assert detect_manual_owner(thread, ACCOUNT, "").manual is False


class TestThreadMessageFromDict:
    def test_key_variants(self):
        message = ThreadMessage.from_dict({
            "id": "abc",
            "from": "x@y.com",
            "body": "<p>hello</p>",
            "timestamp": "2024-05-01T10:00:00Z",
            "references": "<a@x> <b@x>",
            "originalMessageId": "<a@x>",
        })

        assert message.message_id == "abc"
        assert message.from_address == "x@y.com"
        assert message.references == ["<a@x>", "<b@x>"]
        assert message.original_message_id == "<a@x>"
        assert message.sent_at is not None

    def test_single_space_separated_reference_entry(self):
        message = ThreadMessage.from_dict({"messageId": "m", "references": ["<a@x> <b@x>"]})
        assert message.references == ["<a@x>", "<b@x>"]
