"""
Auto-Response Decision Engine

Pure, synchronous gate that turns (classification, reply text, thread state)
into a confidence score and a "safe to auto-respond" verdict. It sends
nothing and mutates nothing.

Stages, evaluated top to bottom (earlier stages short-circuit later ones):

0. Normalize signals (classifier signals united with regex signals)
   and apply the role lock (confirmed role replaces role-guessing templates)
1. Hard stops: unsubscribe, out-of-office, blank auto-reply, all-set,
   agreement already sent. Confidence forced to 1.0, verdict False.
2. Soft blockers: accumulated reasons; scoring still runs so the caller
   sees every reason the message would be held.
3. Scoring: per-template base + corroborating signals - competing signals,
   clamped to [0, 1], compared against a threshold that is relaxed for
   agreement requests.

The engine is fail-closed: a missing or unknown template scores 0 and is
never auto-eligible.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from .catalog import (
    AGREEMENT_TEMPLATES,
    DEPTH_WHITELIST,
    ROLE_GUESSING_TEMPLATES,
    Template,
    base_score,
    canonical_template,
    is_auto_eligible,
)
from .signals import Signal, normalize_signals
from .state_store import ThreadState


DEFAULT_CONFIDENCE_THRESHOLD = 0.70
DEFAULT_AGREEMENT_THRESHOLD = 0.60
# Minimum gap below the base threshold for agreement requests
AGREEMENT_THRESHOLD_MARGIN = 0.05
DEFAULT_DEPTH_LIMIT = 2
SHORT_MESSAGE_CHARS = 200

# Corroborating signals (each applied at most once)
SIGNAL_BONUSES: Dict[str, float] = {
    Signal.SEND_AGREEMENT: 0.50,
    Signal.ASKS_FOR_AGREEMENT: 0.50,
    Signal.SEND_IT: 0.30,
    Signal.EXPLICIT_YES: 0.30,
    Signal.INTERESTED: 0.20,
}
FEES_ON_FEES_TEMPLATE_BONUS = 0.25
SHORT_MESSAGE_BONUS = 0.05
FIRST_AUTO_REPLY_BONUS = 0.05
NO_QUESTION_BONUS = 0.05

# Competing or ambiguous signals
SIGNAL_PENALTIES: Dict[str, float] = {
    Signal.HAS_QUESTION: 0.15,
    Signal.MULTI_TOPIC: 0.25,
    Signal.WANTS_RESUME_FIRST: 0.60,
    Signal.WANTS_CALL_FIRST: 0.60,
    Signal.SKEPTICAL: 0.50,
    Signal.ROLE_AMBIGUOUS: 0.25,
    Signal.MULTIPLE_ROLES: 0.40,
    Signal.WRONG_PERSON: 0.70,
    Signal.AUTO_REPLY_BLANK: 0.50,
}

AGREEMENT_REQUEST_SIGNALS = frozenset({Signal.SEND_AGREEMENT, Signal.ASKS_FOR_AGREEMENT})

# Soft competing intents an explicit agreement request overrides
OVERRIDABLE_BLOCKERS = (
    Signal.WANTS_RESUME_FIRST,
    Signal.WANTS_CALL_FIRST,
    Signal.SKEPTICAL,
)

# Classifier flags that always need a human
MANUAL_FLAGS = (
    Signal.NEEDS_HUMAN,
    Signal.ABUSE,
    Signal.BOUNCE,
)

# Per-template evidence: at least one of these signals must be present
REQUIRED_EVIDENCE: Dict[str, FrozenSet[str]] = {
    Template.YES_SEND: frozenset({
        Signal.SEND_AGREEMENT, Signal.ASKS_FOR_AGREEMENT, Signal.SEND_IT, Signal.EXPLICIT_YES,
    }),
    Template.ASK_AGREEMENT: frozenset({
        Signal.ASKS_FOR_AGREEMENT, Signal.SEND_AGREEMENT, Signal.SEND_IT,
    }),
    Template.ASK_FEES_ONLY: frozenset({Signal.ASKS_FEES}),
}

# (signal, forced template, reason) in evaluation order
HARD_STOPS = (
    (Signal.UNSUBSCRIBE, Template.UNSUBSCRIBE, "UNSUBSCRIBE: hard stop (mark DNC, no reply)"),
    (Signal.OUT_OF_OFFICE, Template.OUT_OF_OFFICE, "OUT_OF_OFFICE: hard stop (no reply)"),
    (Signal.AUTO_REPLY_BLANK, Template.AUTO_REPLY_BLANK, "AUTO_REPLY_BLANK: hard stop (no reply)"),
    (Signal.DONE_ALL_SET, Template.DONE_ALL_SET, "DONE_ALL_SET: stop automation (no reply recommended)"),
)
AGREEMENT_SENT_REASON = "agreementSent=true: automation stopped completely after agreement sent"
AGREEMENT_SENT_STOP = "AGREEMENT_SENT"


@dataclass
class Decision:
    """Outcome of one auto-response decision"""
    ok_to_auto_respond: bool
    confidence: float
    blocking_reasons: List[str] = field(default_factory=list)
    normalized_signals: FrozenSet[str] = field(default_factory=frozenset)
    effective_template_id: str = ""
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    hard_stop: Optional[str] = None  # template id (or AGREEMENT_SENT) of the stop that fired

    def has_signal(self, signal: str) -> bool:
        return signal in self.normalized_signals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok_to_auto_respond": self.ok_to_auto_respond,
            "confidence": round(self.confidence, 4),
            "blocking_reasons": list(self.blocking_reasons),
            "normalized_signals": sorted(self.normalized_signals),
            "effective_template_id": self.effective_template_id,
            "threshold": self.threshold,
            "hard_stop": self.hard_stop,
        }


def _classification_parts(classification: Any):
    """Accept a Classification model, a plain dict, or a bare template id"""
    if classification is None:
        return "", ()
    if isinstance(classification, str):
        return classification, ()
    if isinstance(classification, Mapping):
        return classification.get("template_id"), classification.get("signals") or ()
    return getattr(classification, "template_id", None), getattr(classification, "signals", None) or ()


class DecisionEngine:
    """
    Deterministic auto-response gate.

    Thresholds and the depth limit are fixed at construction; `decide` is a
    pure function of its arguments, so repeated calls with the same inputs
    return equal decisions.
    """

    def __init__(
        self,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        agreement_threshold: float = DEFAULT_AGREEMENT_THRESHOLD,
        depth_limit: int = DEFAULT_DEPTH_LIMIT,
        process_thread_id_collisions: bool = False,
    ):
        """
        Args:
            confidence_threshold: Default minimum score to auto-respond
            agreement_threshold: Relaxed minimum for agreement requests, capped
                AGREEMENT_THRESHOLD_MARGIN below the base threshold
            depth_limit: Automated replies per thread before only
                DEPTH_WHITELIST templates may be answered
            process_thread_id_collisions: Treat a message whose id equals the
                thread id as new even if it was already processed (provider
                quirk; off unless explicitly enabled)
        """
        self._confidence_threshold = confidence_threshold
        self._agreement_threshold = agreement_threshold
        self._depth_limit = depth_limit
        self._process_thread_id_collisions = process_thread_id_collisions

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    @property
    def agreement_threshold(self) -> float:
        return self._agreement_threshold

    @property
    def depth_limit(self) -> int:
        return self._depth_limit

    def threshold_for(self, template_id: str, signals: Iterable[str], threshold: Optional[float] = None) -> float:
        """Minimum passing score for this template/signal combination"""
        base = self._confidence_threshold if threshold is None else threshold
        if self.is_agreement_request(template_id, signals):
            return max(0.0, min(self._agreement_threshold, base - AGREEMENT_THRESHOLD_MARGIN))
        return base

    @staticmethod
    def is_agreement_request(template_id: str, signals: Iterable[str]) -> bool:
        sigs = set(signals)
        return template_id in AGREEMENT_TEMPLATES or bool(sigs & AGREEMENT_REQUEST_SIGNALS)

    def decide(
        self,
        classification: Any,
        body_text: Optional[str],
        thread_state: Optional[ThreadState] = None,
        message_id: Optional[str] = None,
        threshold: Optional[float] = None,
        thread_id: Optional[str] = None,
    ) -> Decision:
        """
        Decide whether a reply may be answered automatically.

        Args:
            classification: Classification (template_id, signals, extracted),
                an equivalent dict, or a bare template id
            body_text: Reply text the classification was made from
            thread_state: Snapshot of the thread (fresh state if None)
            message_id: Provider id of this message, for duplicate detection
            threshold: Override of the default confidence threshold
            thread_id: Thread key, used only by the id-collision policy

        Returns:
            Decision; never raises for well-formed input
        """
        state = thread_state or ThreadState()
        raw_template, model_signals = _classification_parts(classification)
        template_id = canonical_template(raw_template)

        # Stage 0
        sigs = normalize_signals(body_text, model_signals)

        # Stage 1
        for signal, forced_template, reason in HARD_STOPS:
            if signal in sigs or template_id == forced_template:
                return self._hard_stop(forced_template, reason, sigs, template_id, threshold)

        if state.agreement_sent:
            stop = self._hard_stop(template_id, AGREEMENT_SENT_REASON, sigs, template_id, threshold)
            stop.hard_stop = AGREEMENT_SENT_STOP
            return stop

        if state.locked_roles and template_id in ROLE_GUESSING_TEMPLATES:
            template_id = Template.ROLE_CONFIRMED_FOLLOWUP

        effective_threshold = self.threshold_for(template_id, sigs, threshold)

        # Stage 2
        blocking = self._soft_blockers(template_id, sigs, state, message_id, thread_id)

        # Stage 3
        score = self._score(template_id, sigs, state, body_text)

        ok = not blocking and score >= effective_threshold
        if not ok and not blocking:
            blocking.append(f"belowThreshold: confidence {score:.2f} < {effective_threshold:.2f}")

        return Decision(
            ok_to_auto_respond=ok,
            confidence=score,
            blocking_reasons=[] if ok else blocking,
            normalized_signals=sigs,
            effective_template_id=template_id,
            threshold=effective_threshold,
        )

    def _hard_stop(self, template_id, reason, sigs, classified_template, threshold) -> Decision:
        return Decision(
            ok_to_auto_respond=False,
            confidence=1.0,
            blocking_reasons=[reason],
            normalized_signals=sigs,
            effective_template_id=template_id,
            threshold=self.threshold_for(classified_template, sigs, threshold),
            hard_stop=template_id,
        )

    def _soft_blockers(
        self,
        template_id: str,
        sigs: FrozenSet[str],
        state: ThreadState,
        message_id: Optional[str],
        thread_id: Optional[str],
    ) -> List[str]:
        blocking: List[str] = []

        if state.manual_owner:
            blocking.append("manualOwner=true (human took over thread)")

        if state.auto_replies_sent >= self._depth_limit and template_id not in DEPTH_WHITELIST:
            blocking.append(
                f"depthLimit: autoRepliesSent>={self._depth_limit} and template not whitelisted"
            )

        if message_id and message_id in state.processed_message_ids:
            collision = self._process_thread_id_collisions and thread_id and message_id == thread_id
            if not collision:
                blocking.append("duplicateMessageId: already processed")

        if state.last_template_id and state.last_template_id == template_id:
            blocking.append("duplicateTemplate: same template already sent last")

        if not is_auto_eligible(template_id):
            blocking.append(f"templateNotAutoEligible: {template_id or '<missing>'}")

        explicit_agreement = self.is_agreement_request(template_id, sigs)
        for signal in OVERRIDABLE_BLOCKERS:
            if signal in sigs and not explicit_agreement:
                blocking.append(f"{signal} (manual)")
        if Signal.WRONG_PERSON in sigs:
            blocking.append(f"{Signal.WRONG_PERSON} (manual)")

        for signal in MANUAL_FLAGS:
            if signal in sigs:
                blocking.append(f"{signal} (manual)")

        if Signal.WANTS_MORE_INFO in sigs and state.more_info_loop_count >= 1:
            blocking.append(
                f"moreInfoLoop: repeated request for more info (count {state.more_info_loop_count + 1})"
            )

        required = REQUIRED_EVIDENCE.get(template_id)
        if required and not (sigs & required):
            blocking.append(f"{template_id} requires {' OR '.join(sorted(required))}")

        if template_id == Template.INTERESTED and Signal.MULTI_TOPIC in sigs:
            blocking.append("INTERESTED blocked: multi_topic (manual)")

        return blocking

    def _score(
        self,
        template_id: str,
        sigs: FrozenSet[str],
        state: ThreadState,
        body_text: Optional[str],
    ) -> float:
        score = base_score(template_id)

        for signal, bonus in SIGNAL_BONUSES.items():
            if signal in sigs:
                score += bonus
        if Signal.ASKS_FEES in sigs and template_id == Template.ASK_FEES_ONLY:
            score += FEES_ON_FEES_TEMPLATE_BONUS

        trimmed = (body_text or "").strip()
        if 0 < len(trimmed) < SHORT_MESSAGE_CHARS:
            score += SHORT_MESSAGE_BONUS
        if state.auto_replies_sent == 0:
            score += FIRST_AUTO_REPLY_BONUS
        if Signal.HAS_QUESTION not in sigs:
            score += NO_QUESTION_BONUS

        for signal, penalty in SIGNAL_PENALTIES.items():
            if signal in sigs:
                score -= penalty

        return max(0.0, min(1.0, score))

    def explain(self, decision: Decision) -> str:
        """Human-readable summary of a decision (for logs and review alerts)"""
        verdict = "AUTO-RESPOND" if decision.ok_to_auto_respond else "HOLD"
        lines = [
            f"{verdict}: {decision.effective_template_id or '<missing>'} "
            f"(confidence: {decision.confidence:.2f}, threshold: {decision.threshold:.2f})",
        ]
        if decision.hard_stop:
            lines.append(f"  Hard stop: {decision.hard_stop}")
        if decision.blocking_reasons:
            lines.append("  Reasons:")
            for reason in decision.blocking_reasons:
                lines.append(f"    - {reason}")
        if decision.normalized_signals:
            lines.append(f"  Signals: {', '.join(sorted(decision.normalized_signals))}")
        return "\n".join(lines)


_default_engine = DecisionEngine()


def decide_auto_respond(
    classification: Any,
    body_text: Optional[str],
    thread_state: Optional[ThreadState] = None,
    message_id: Optional[str] = None,
    threshold: Optional[float] = None,
) -> Decision:
    """Decide with the default engine settings"""
    return _default_engine.decide(
        classification,
        body_text,
        thread_state,
        message_id=message_id,
        threshold=threshold,
    )
