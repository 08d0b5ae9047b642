"""
Signal Normalizer

Deterministic signal detection over reply text, merged with whatever signals
the external classifier attached. Every detector is a single case-insensitive
regex run once against the full (trimmed) text; detectors are independent and
several may fire on the same message.

The normalizer never overrides the classifier: its output is the union of
both sources. Only the decision engine's hard stops give the deterministic
signals the final word.
"""

import re
from typing import Dict, FrozenSet, Iterable, Optional, Pattern


class Signal:
    """Known signal names (plain strings, compared by value)"""
    EXPLICIT_YES = "explicit_yes"
    SEND_IT = "send_it"
    SEND_AGREEMENT = "send_agreement"
    ASKS_FOR_AGREEMENT = "asks_for_agreement"
    ASKS_FEES = "asks_fees"
    INTERESTED = "interested"
    HAS_QUESTION = "has_question"
    MULTI_TOPIC = "multi_topic"
    WANTS_RESUME_FIRST = "wants_resume_first"
    WANTS_CALL_FIRST = "wants_call_first"
    SKEPTICAL = "skeptical"
    ROLE_AMBIGUOUS = "role_ambiguous"
    MULTIPLE_ROLES = "multiple_roles"
    WRONG_PERSON = "wrong_person"
    OUT_OF_OFFICE = "out_of_office"
    AUTO_REPLY_BLANK = "auto_reply_blank"
    UNSUBSCRIBE = "unsubscribe"
    NOT_INTERESTED = "not_interested"
    DONE_ALL_SET = "done_all_set"
    ALREADY_SIGNED = "already_signed"

    # Raised from classifier flags
    ABUSE = "abuse"
    BOUNCE = "bounce"
    NEEDS_HUMAN = "needs_human"
    WANTS_MORE_INFO = "wants_more_info"
    CONTACT_INFO_PROVIDED = "contact_info_provided"


def _rx(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


# Detector name == emitted signal name
DETECTORS: Dict[str, Pattern] = {
    Signal.UNSUBSCRIBE: _rx(
        r"unsubscribe|remove me|stop emailing|do not contact|opt out|no more emails"
    ),
    Signal.OUT_OF_OFFICE: _rx(
        r"out of office|\booo\b|automatic reply|auto-?reply|vacation|away from the office"
        r"|i'?m (currently )?out|will return|will respond (upon|when) (my )?return"
        r"|currently unavailable|i will be away|i am currently out|out until|back on"
        r"|returning on|away until"
    ),
    Signal.SEND_AGREEMENT: _rx(
        r"(send|share).{0,20}(agreement|contract|docusign|signwell|e-?sign)"
    ),
    Signal.ASKS_FOR_AGREEMENT: _rx(
        r"(can you|could you|please|pls).{0,10}(send|share).{0,20}(agreement|contract)"
    ),
    Signal.SEND_IT: _rx(
        r"send it|send over|shoot it over|go ahead and send"
    ),
    Signal.EXPLICIT_YES: _rx(
        r"^(yes|yep|yeah|sure|ok|okay|sounds good|go ahead|send it|send|go for it)\b"
    ),
    Signal.NOT_INTERESTED: _rx(
        r"\b(no|nope|not interested|don't need|not looking|not hiring|we're not|we aren't"
        r"|not right now|not at this time)\b"
    ),
    Signal.ASKS_FEES: _rx(
        r"fee|fees|charge|pricing|cost|percent|percentage|%"
    ),
    Signal.WANTS_RESUME_FIRST: _rx(
        r"send (the )?resume|see (the )?resume|resume first|before (we )?sign"
        r"|show me (the )?candidates first|profiles first|blind resume|send (the )?candidates"
        r"|see (the )?candidates|show (me )?(the )?candidates|want to see (the )?resume"
        r"|want to see (the )?candidates|review (the )?candidates|review (the )?resume"
    ),
    Signal.WANTS_CALL_FIRST: _rx(
        r"call|phone|talk|schedule|meeting|zoom|teams|monday|tuesday|wednesday|thursday"
        r"|friday|get with me|touch base|connect|reach out|set up (a )?time|when can we"
        r"|let'?s (talk|connect|discuss)|i'?d like to (talk|discuss|connect)"
    ),
    Signal.SKEPTICAL: _rx(
        r"cold email|is this legit|spam|do you actually|\bbot\b|\bai\b|automation"
        r"|you('re| are) in florida|mass email|don'?t know (you|us)|never heard of (you|us)"
        r"|who are (you|y'?all)|what is this about|why are you contacting me|why did you email me"
    ),
    Signal.DONE_ALL_SET: _rx(
        r"\b(all set|we'?re all set|we'?re good|we'?re covered|no need|good for now)\b"
    ),
    Signal.WRONG_PERSON: _rx(
        r"wrong person|not the right person|not the hiring manager|please contact|reach out to"
    ),
    Signal.ALREADY_SIGNED: _rx(
        r"already signed|signed it|signed the agreement|completed (the )?agreement"
        r"|already completed|i signed|we signed|just signed"
    ),
}

# Competing intents; two or more in one message make it multi-topic
MULTI_TOPIC_DETECTORS = (
    Signal.SEND_AGREEMENT,
    Signal.ASKS_FEES,
    Signal.WANTS_RESUME_FIRST,
    Signal.WANTS_CALL_FIRST,
    Signal.SKEPTICAL,
)
MULTI_TOPIC_MIN_HITS = 2


def detect(name: str, text: str) -> bool:
    """Run a single named detector against text"""
    pattern = DETECTORS.get(name)
    if pattern is None:
        raise KeyError(f"Unknown detector: {name}")
    return pattern.search((text or "").strip()) is not None


def normalize_signals(
    body_text: Optional[str],
    model_signals: Optional[Iterable[str]] = None,
) -> FrozenSet[str]:
    """
    Build the canonical signal set for a message.

    Args:
        body_text: Raw reply text (may be empty or None)
        model_signals: Signals attached by the classifier (may be None)

    Returns:
        Frozen set of model signals united with all regex-derived signals
    """
    text = (body_text or "").strip()
    signals = {s for s in (model_signals or ()) if s}

    if len(text) < 2:
        signals.add(Signal.AUTO_REPLY_BLANK)
    if "?" in text:
        signals.add(Signal.HAS_QUESTION)

    hits = {name for name, pattern in DETECTORS.items() if pattern.search(text)}
    signals |= hits

    topic_count = sum(1 for name in MULTI_TOPIC_DETECTORS if name in hits)
    if topic_count >= MULTI_TOPIC_MIN_HITS:
        signals.add(Signal.MULTI_TOPIC)

    return frozenset(signals)
