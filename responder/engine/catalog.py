"""
Template Catalog

Known reply-intent labels and the lookup tables the decision engine scores
against. Template ids are open strings: the classifier may return labels that
are not listed here, and those simply score 0 and are never auto-eligible.
"""

from typing import Dict, FrozenSet


class Template:
    """Known template ids (plain strings, compared by value)"""
    YES_SEND = "YES_SEND"
    ASK_AGREEMENT = "ASK_AGREEMENT"
    ASK_FEES_ONLY = "ASK_FEES_ONLY"
    INTERESTED = "INTERESTED"
    NOT_INTERESTED = "NOT_INTERESTED"
    NOT_HIRING = "NOT_HIRING"
    NO_JOB_POST = "NO_JOB_POST"
    ROLE_UNCLEAR = "ROLE_UNCLEAR"
    ASKING_WHICH_ROLE = "ASKING_WHICH_ROLE"
    ROLE_CONFIRMED_FOLLOWUP = "ROLE_CONFIRMED_FOLLOWUP"
    FEES_QUESTION = "FEES_QUESTION"
    ASK_WEBSITE = "ASK_WEBSITE"
    ROLE_CLARIFICATION_MULTI = "ROLE_CLARIFICATION_MULTI"
    GEO_CONCERN = "GEO_CONCERN"
    LINK_TO_APPLY = "LINK_TO_APPLY"
    ASK_COMPANY = "ASK_COMPANY"
    ASK_EXPERIENCE = "ASK_EXPERIENCE"
    ASK_SALARY = "ASK_SALARY"
    ASK_SOURCE = "ASK_SOURCE"
    FORWARD_TO_TEAM = "FORWARD_TO_TEAM"
    CHECK_WITH_HR = "CHECK_WITH_HR"
    CONFUSED_MESSAGE = "CONFUSED_MESSAGE"
    THANK_YOU = "THANK_YOU"
    SINGLE_QUESTION_MARK = "SINGLE_QUESTION_MARK"
    HYBRID_WORK = "HYBRID_WORK"
    PDF_FORMAT = "PDF_FORMAT"
    WILL_FORWARD = "WILL_FORWARD"
    TOO_EXPENSIVE = "TOO_EXPENSIVE"
    PERCENT_TOO_HIGH = "PERCENT_TOO_HIGH"
    ALREADY_HAVE_AGENCY = "ALREADY_HAVE_AGENCY"

    # Never auto-answered
    UNSUBSCRIBE = "UNSUBSCRIBE"
    OUT_OF_OFFICE = "OUT_OF_OFFICE"
    AUTO_REPLY_BLANK = "AUTO_REPLY_BLANK"
    DONE_ALL_SET = "DONE_ALL_SET"
    UNCLASSIFIED = "UNCLASSIFIED"
    WANTS_RESUME_FIRST = "WANTS_RESUME_FIRST"
    WANTS_CALL_FIRST = "WANTS_CALL_FIRST"
    SKEPTICAL = "SKEPTICAL"
    NOT_HIRING_CONTACT = "NOT_HIRING_CONTACT"
    WRONG_PERSON_WITH_CONTACT = "WRONG_PERSON_WITH_CONTACT"
    WRONG_PERSON_NO_CONTACT = "WRONG_PERSON_NO_CONTACT"


# Classifier labels that mean the same thing as a catalog entry
TEMPLATE_ALIASES: Dict[str, str] = {
    "ASKING_FEES_ONLY": Template.ASK_FEES_ONLY,
    "NOT_INTERESTED_GENERAL": Template.NOT_INTERESTED,
}


# Base confidence per template: how reliably the label predicts genuine intent
BASE_SCORES: Dict[str, float] = {
    Template.YES_SEND: 0.85,
    Template.ASK_AGREEMENT: 0.85,
    Template.ASK_FEES_ONLY: 0.65,
    Template.INTERESTED: 0.60,
    Template.NOT_INTERESTED: 0.75,
    Template.NOT_HIRING: 0.65,
    Template.NO_JOB_POST: 0.60,
    Template.ROLE_UNCLEAR: 0.55,
    Template.ASKING_WHICH_ROLE: 0.60,
    Template.ROLE_CONFIRMED_FOLLOWUP: 0.70,
    Template.FEES_QUESTION: 0.65,
    Template.ASK_WEBSITE: 0.60,
    Template.ROLE_CLARIFICATION_MULTI: 0.55,
    Template.GEO_CONCERN: 0.55,
    Template.LINK_TO_APPLY: 0.50,
    Template.ASK_COMPANY: 0.60,
    Template.ASK_EXPERIENCE: 0.60,
    Template.ASK_SALARY: 0.60,
    Template.ASK_SOURCE: 0.60,
    Template.FORWARD_TO_TEAM: 0.60,
    Template.CHECK_WITH_HR: 0.60,
    Template.CONFUSED_MESSAGE: 0.60,
    Template.THANK_YOU: 0.60,
    Template.SINGLE_QUESTION_MARK: 0.60,
    Template.HYBRID_WORK: 0.60,
    Template.PDF_FORMAT: 0.60,
    Template.WILL_FORWARD: 0.60,
    Template.TOO_EXPENSIVE: 0.60,
    Template.PERCENT_TOO_HIGH: 0.60,
    Template.ALREADY_HAVE_AGENCY: 0.60,
}

# Templates the engine may answer automatically at all
AUTO_ELIGIBLE_TEMPLATES: FrozenSet[str] = frozenset(BASE_SCORES)

# Templates still allowed once the thread hit the depth limit
DEPTH_WHITELIST: FrozenSet[str] = frozenset({
    Template.YES_SEND,
    Template.ASK_AGREEMENT,
    Template.NOT_INTERESTED,
    Template.UNSUBSCRIBE,
    Template.DONE_ALL_SET,
})

# Templates whose reply is followed by an e-signature dispatch
AGREEMENT_TEMPLATES: FrozenSet[str] = frozenset({
    Template.YES_SEND,
    Template.ASK_AGREEMENT,
})

# Templates that guess at the role; replaced once the lead confirmed one
ROLE_GUESSING_TEMPLATES: FrozenSet[str] = frozenset({
    Template.INTERESTED,
    Template.ROLE_UNCLEAR,
    Template.ASKING_WHICH_ROLE,
    Template.ROLE_CLARIFICATION_MULTI,
    Template.NO_JOB_POST,
})


def canonical_template(template_id) -> str:
    """Normalize a classifier label to its catalog spelling ("" when missing)"""
    if not template_id or not isinstance(template_id, str):
        return ""
    key = template_id.strip().upper()
    return TEMPLATE_ALIASES.get(key, key)


def base_score(template_id: str) -> float:
    return BASE_SCORES.get(template_id, 0.0)


def is_auto_eligible(template_id: str) -> bool:
    return template_id in AUTO_ELIGIBLE_TEMPLATES
