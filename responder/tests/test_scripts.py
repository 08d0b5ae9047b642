"""Tests for the reply scripts."""

import pytest

from responder.engine.catalog import AUTO_ELIGIBLE_TEMPLATES, Template
from responder.gateway.scripts import FEE_TERMS, SCRIPTS, follow_up_text, render_reply


class TestRenderReply:
    @pytest.mark.parametrize("template_id", sorted(AUTO_ELIGIBLE_TEMPLATES))
    def test_every_auto_eligible_template_has_a_script(self, template_id):
        assert template_id in SCRIPTS
        text = render_reply(template_id)
        assert text.strip()

    @pytest.mark.parametrize("template_id", [Template.UNSUBSCRIBE, Template.OUT_OF_OFFICE, "NOPE"])
    def test_unknown_template_raises(self, template_id):
        with pytest.raises(KeyError):
            render_reply(template_id)

    def test_interested_offers_two_roles(self):
        text = render_reply(Template.INTERESTED, {"role1": "ICU Nurse", "role2": "ER Nurse"})

        assert "the ICU Nurse position" in text
        assert "the ER Nurse position" in text
        assert FEE_TERMS in text

    def test_interested_without_vars(self):
        text = render_reply(Template.INTERESTED, {})
        assert "this position or similar positions" in text

    def test_fees_question_confirms_role(self):
        text = render_reply(Template.FEES_QUESTION, {"role": "Sous Chef"})
        assert "is this for the Sous Chef position?" in text

    def test_not_interested_with_unsubscribe_flag(self):
        text = render_reply(Template.NOT_INTERESTED, {}, {"unsubscribe": True})
        assert "won't reach out again" in text

    def test_role_confirmed_followup(self):
        assert "the Welder position" in render_reply(Template.ROLE_CONFIRMED_FOLLOWUP, {"role": "Welder"})

    def test_follow_up_mentions_agreement(self):
        assert "agreement" in follow_up_text()
