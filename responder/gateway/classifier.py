"""
Reply Classifier

Asks an LLM to label a lead's reply with one template id, a handful of
extracted fields ("vars") and boolean routing flags. True flags become
signals of the same name for the decision engine.

Retries once (exponential backoff) when the provider call fails; a response
that arrives but cannot be parsed is not retried.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..common.config import LLMConfig
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..engine.catalog import canonical_template

logger = logging.getLogger("autoresponder.gateway.classifier")


CLASSIFIER_PROMPT = """You are an email intent classifier for a recruitment agency that sends cold outreach to hiring managers.

Your ONLY job is to read the latest reply from a prospect and classify it into:
- one intent label called "template_id" (chosen from a fixed list)
- a "vars" object containing any useful extracted fields
- a "flags" object with boolean signals for safety and routing

Rules:

1. Return STRICT JSON ONLY. No commentary, no explanations, no extra text.

2. "template_id" MUST be one of:
   INTERESTED, YES_SEND, NO_JOB_POST, NOT_HIRING, NOT_INTERESTED_GENERAL, UNSUBSCRIBE,
   ASK_AGREEMENT, TOO_EXPENSIVE, ROLE_UNCLEAR, ROLE_CLARIFICATION_MULTI, SKEPTICAL,
   GEO_CONCERN, ALREADY_HAVE_AGENCY, NOT_HIRING_CONTACT, WRONG_PERSON_WITH_CONTACT,
   WRONG_PERSON_NO_CONTACT, OUT_OF_OFFICE, AUTO_REPLY_BLANK, LINK_TO_APPLY, FEES_QUESTION,
   ASKING_FEES_ONLY, PERCENT_TOO_HIGH, ASKING_WHICH_ROLE, ASK_WEBSITE, DONE_ALL_SET,
   ROLE_CONFIRMED_FOLLOWUP, ASK_COMPANY, ASK_EXPERIENCE, ASK_SALARY, ASK_SOURCE,
   FORWARD_TO_TEAM, CHECK_WITH_HR, CONFUSED_MESSAGE, THANK_YOU, SINGLE_QUESTION_MARK,
   HYBRID_WORK, PDF_FORMAT, WILL_FORWARD

3. "vars" is a JSON object. Include keys ONLY if reasonably confident:
   - "role": the main job title they are talking about
   - "location": location if mentioned
   - "role1", "role2": two distinct likely roles when the reply is vague, inferred from the
     company domain, name or industry
   - "company_name", "contact_email", "contact_name"

4. "flags" is a JSON object with EXACT keys:
   - "unsubscribe": they want no more contact, or say they are out of business / closed
   - "abuse": the message is rude, hostile, or abusive
   - "bounce": it looks like a bounce / undeliverable / delivery failure
   - "wants_more_info": they ask for more details or clarification
   - "needs_human": the message is ambiguous, mixed, or too complex to map confidently
   - "contact_info_provided": they gave contact details for someone else
   - "wants_resume_first": they want resumes/candidates BEFORE signing anything
   - "wants_call_first": they want a call or meeting before proceeding
   - "already_signed": they say they already signed the agreement

5. Priority:
   - Out-of-office / automatic replies -> OUT_OF_OFFICE (highest priority)
   - Blank replies, only quoted text or signatures -> AUTO_REPLY_BLANK
   - Stop / remove me / out of business -> NOT_INTERESTED_GENERAL with flags.unsubscribe = true
   - Yes / sure / send it / go ahead -> YES_SEND
   - Explicit request for the agreement, terms or contract -> ASK_AGREEMENT
   - Fees asked without mentioning a role -> ASKING_FEES_ONLY; fees plus a role -> FEES_QUESTION
   - Not the right person: WRONG_PERSON_WITH_CONTACT if they give a different contact,
     otherwise WRONG_PERSON_NO_CONTACT
   - "We're all set", "we're good", "no need" -> DONE_ALL_SET

6. If unsure, choose the CLOSEST template_id and set "needs_human": true."""


# Classifier flags converted to signals when true
FLAG_SIGNALS = (
    "unsubscribe",
    "abuse",
    "bounce",
    "wants_more_info",
    "needs_human",
    "contact_info_provided",
    "wants_resume_first",
    "wants_call_first",
    "already_signed",
)


class ClassificationError(Exception):
    """The classifier could not produce a usable classification."""
    pass


class Classification(BaseModel):
    """Classifier output as consumed by the decision engine"""
    template_id: str = ""
    signals: List[str] = Field(default_factory=list)
    extracted: Dict[str, str] = Field(default_factory=dict)
    flags: Dict[str, bool] = Field(default_factory=dict)
    raw_response: Optional[str] = None

    def flag(self, name: str) -> bool:
        return bool(self.flags.get(name, False))


def _clean_vars(raw_vars: Any) -> Dict[str, str]:
    if not isinstance(raw_vars, dict):
        return {}
    cleaned = {}
    for key, value in raw_vars.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            cleaned[str(key)] = text
    return cleaned


def build_classification(data: Dict[str, Any], raw: Optional[str] = None) -> Classification:
    """
    Validate a parsed classifier response.

    Raises:
        ClassificationError: If template_id or the flags object is missing
    """
    template_id = data.get("template_id")
    raw_flags = data.get("flags")
    if not template_id or not isinstance(template_id, str) or not isinstance(raw_flags, dict):
        raise ClassificationError("Invalid classification structure")

    flags = {name: raw_flags.get(name) is True for name in FLAG_SIGNALS}
    signals = [name for name in FLAG_SIGNALS if flags[name]]
    extra = data.get("signals")
    if isinstance(extra, list):
        signals.extend(s for s in extra if isinstance(s, str) and s and s not in signals)

    return Classification(
        template_id=canonical_template(template_id),
        signals=signals,
        extracted=_clean_vars(data.get("vars")),
        flags=flags,
        raw_response=raw,
    )


class ReplyClassifier:
    """
    LLM-backed reply classifier.

    `classify` is blocking; async callers should run it in a worker thread.
    """

    def __init__(
        self,
        llm: LLMClient,
        max_retries: int = 1,
        retry_base_delay: float = 1.0,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._llm = llm
        self._max_retries = max(0, max_retries)
        self._retry_base_delay = retry_base_delay
        self._timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: LLMConfig) -> "ReplyClassifier":
        return cls(
            llm=LLMClient.from_config(config),
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            timeout=config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def classify(self, body_text: str, meta: Optional[Dict[str, Any]] = None) -> Classification:
        """
        Classify one reply.

        Args:
            body_text: Latest reply from the lead
            meta: Lead context (lead_email, lead_name, ...)

        Returns:
            Classification with canonical template id

        Raises:
            ClassificationError: If the LLM is unavailable, keeps failing,
                or returns something that is not a classification
        """
        if not self.is_available:
            raise ClassificationError("LLM client is not available")

        prompt = json.dumps({"latest_message": body_text or "", "meta": meta or {}})

        attempt = 0
        while True:
            try:
                raw = self._llm.generate(
                    prompt,
                    system=CLASSIFIER_PROMPT,
                    max_tokens=400,
                    timeout=self._timeout,
                    temperature=0.3,
                    json_mode=True,
                )
                break
            except Exception as e:
                if attempt >= self._max_retries:
                    logger.error("Classification failed after %d attempt(s): %s", attempt + 1, e)
                    raise ClassificationError(f"LLM call failed: {e}") from e
                delay = self._retry_base_delay * (2 ** attempt)
                logger.warning("Classification attempt %d failed (%s), retrying in %.1fs", attempt + 1, e, delay)
                self._sleep(delay)
                attempt += 1

        data = parse_llm_json(raw)
        if not data:
            raise ClassificationError("Failed to parse classifier response")
        classification = build_classification(data, raw=raw)
        logger.info(
            "Classified as %s (signals: %s)",
            classification.template_id,
            ", ".join(classification.signals) or "none",
        )
        return classification
