"""
Reply Pipeline

Turns one inbound reply into at most one automated answer (plus, for
agreement requests, one e-signature dispatch).

Per event, inside the thread's lock:
1. Duplicate and Do-Not-Contact checks
2. Fetch the thread (non-fatal on failure) and re-check manual ownership
3. Classify (worker thread), normalize signals, lock confirmed roles
4. Decide
5. Act: hold for review, stop quietly, or reply (+ agreement)
6. Commit state, only for what actually happened

A message is marked processed once it reached a final outcome. Failures
before that point (classification, reply send) leave it unprocessed so a
redelivery retries it.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from ..common.alerts import SlackAlerter
from ..common.config import EngineConfig
from ..common.esign_client import AgreementRecipient, SignWellClient, SignWellError
from ..common.reachinbox_client import (
    ReachinboxClient,
    ReachinboxError,
    latest_message,
    threading_headers,
)
from ..engine.catalog import AGREEMENT_TEMPLATES, ROLE_GUESSING_TEMPLATES, Template
from ..engine.decision import AGREEMENT_REQUEST_SIGNALS, Decision, DecisionEngine
from ..engine.ownership import ThreadMessage, detect_manual_owner
from ..engine.signals import Signal, normalize_signals
from ..engine.state_store import ConversationStateStore, normalize_address
from .classifier import Classification, ClassificationError, ReplyClassifier
from .handlers.base import InboundEvent
from .review_queue import ReviewQueue
from .scripts import follow_up_text, render_reply

logger = logging.getLogger("autoresponder.gateway.pipeline")

DEFAULT_SUBJECT = "Your inquiry"

# Inbound messages that say nothing about who the human correspondent is
_NOT_A_HUMAN_SENDER = frozenset({Signal.AUTO_REPLY_BLANK, Signal.OUT_OF_OFFICE, Signal.BOUNCE})

# Competing intents that postpone the agreement unless it was asked for
WANTS_FIRST_SIGNALS = frozenset({Signal.WANTS_RESUME_FIRST, Signal.WANTS_CALL_FIRST})


class Outcome:
    """Final state of one delivery"""
    REPLIED = "replied"
    DUPLICATE = "duplicate"
    LEAD_UNSUBSCRIBED = "lead_unsubscribed"
    HARD_STOP = "hard_stop"
    HELD_FOR_REVIEW = "held_for_review"
    CLASSIFICATION_FAILED = "classification_failed"
    SEND_FAILED = "send_failed"


FAILED_OUTCOMES = frozenset({Outcome.CLASSIFICATION_FAILED, Outcome.SEND_FAILED})


@dataclass
class PipelineResult:
    """What the pipeline did with one delivery"""
    outcome: str
    message_id: str
    thread_id: str
    template_id: Optional[str] = None
    decision: Optional[Decision] = None
    reply_sent: bool = False
    agreement_sent: bool = False
    review_item_id: Optional[str] = None
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome in FAILED_OUTCOMES

    @property
    def http_status(self) -> int:
        return 502 if self.failed else 200

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "outcome": self.outcome,
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "template_id": self.template_id,
            "reply_sent": self.reply_sent,
            "agreement_sent": self.agreement_sent,
            "detail": self.detail,
        }
        if self.decision is not None:
            data["decision"] = self.decision.to_dict()
        if self.review_item_id:
            data["review_item_id"] = self.review_item_id
        return data


@dataclass
class _ThreadContext:
    messages: List[ThreadMessage] = field(default_factory=list)
    latest: Optional[ThreadMessage] = None
    body: str = ""
    subject: str = DEFAULT_SUBJECT
    sender: str = ""


def plain_text(value: str) -> str:
    """Strip HTML tags"""
    return re.sub(r"<[^>]*>", "", value or "").strip()


class ReplyPipeline:
    """
    Orchestrates classify -> decide -> act -> commit for inbound replies.

    Deliveries for the same thread are serialized by the state store's
    per-thread lock; distinct threads run concurrently.
    """

    def __init__(
        self,
        store: ConversationStateStore,
        engine: DecisionEngine,
        classifier: ReplyClassifier,
        reachinbox: ReachinboxClient,
        esign: SignWellClient,
        alerter: SlackAlerter,
        review_queue: ReviewQueue,
        engine_config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.engine = engine
        self.classifier = classifier
        self.reachinbox = reachinbox
        self.esign = esign
        self.alerter = alerter
        self.review_queue = review_queue
        self._config = engine_config or EngineConfig()

    @property
    def marker(self) -> str:
        return self._config.automation_marker

    def _rollout_cutoff(self) -> Optional[date]:
        value = (self._config.marker_rollout_date or "").strip()
        if not value:
            return None
        try:
            return date.fromisoformat(value)
        except ValueError:
            logger.warning("Ignoring invalid marker_rollout_date: %s", value)
            return None

    def _is_duplicate(self, event: InboundEvent, thread_id: str) -> bool:
        if not self.store.is_processed(event.message_id):
            return False
        collision = event.message_id == thread_id
        if collision and self._config.process_thread_id_collisions:
            logger.info("Message id equals thread id, processing despite duplicate: %s", event.message_id)
            return False
        return True

    def _alert_meta(self, inbound: InboundEvent, thread_id: str, **extra) -> Dict[str, Any]:
        meta = {
            "thread_id": thread_id,
            "message_id": inbound.message_id,
            "lead_email": inbound.lead_email,
            "lead_name": inbound.lead_name,
        }
        meta.update(extra)
        return meta

    @staticmethod
    def _deferred_agreement(template_id: str, signals) -> List[str]:
        """Resume/call-first signals that postpone the agreement for this template"""
        if template_id not in AGREEMENT_TEMPLATES or Signal.ALREADY_SIGNED in signals:
            return []
        if signals & AGREEMENT_REQUEST_SIGNALS:
            return []
        return sorted(signals & WANTS_FIRST_SIGNALS)

    async def handle(self, event: InboundEvent) -> PipelineResult:
        """Process one inbound reply"""
        thread_id = event.thread_id or event.message_id
        async with self.store.lock(thread_id):
            return await self._process(event, thread_id)

    async def _process(self, event: InboundEvent, thread_id: str) -> PipelineResult:
        message_id = event.message_id
        logger.info("Processing reply: message_id=%s, thread_id=%s", message_id, thread_id)

        if self._is_duplicate(event, thread_id):
            logger.info("Message already processed, skipping: %s", message_id)
            return PipelineResult(Outcome.DUPLICATE, message_id, thread_id, detail="already processed")

        if self.store.is_unsubscribed(event.lead_email):
            logger.info("Lead is on Do-Not-Contact, skipping: %s", event.lead_email)
            self.store.mark_processed(message_id, thread_id)
            return PipelineResult(Outcome.LEAD_UNSUBSCRIBED, message_id, thread_id, detail="lead unsubscribed")

        context = await self._load_thread(event, thread_id)
        self._update_ownership(event, thread_id, context)

        # === Classify ===
        try:
            classification = await self._classify(event, context)
        except ClassificationError as e:
            await self.alerter.send_error_alert(
                "Classification failed",
                self._alert_meta(event, thread_id, error=str(e)),
            )
            return PipelineResult(Outcome.CLASSIFICATION_FAILED, message_id, thread_id, detail=str(e))

        signals = normalize_signals(context.body, classification.signals)
        if not signals & _NOT_A_HUMAN_SENDER:
            self.store.set_last_from(thread_id, context.sender)
        self._lock_role(thread_id, classification, signals)

        # === Decide ===
        decision = self.engine.decide(
            classification,
            context.body,
            self.store.snapshot(thread_id),
            message_id=message_id,
            thread_id=thread_id,
        )
        logger.info("%s", self.engine.explain(decision))

        if not decision.ok_to_auto_respond:
            return await self._hold_or_stop(event, thread_id, context, decision)

        # === Reply ===
        template_id = decision.effective_template_id
        deferred = self._deferred_agreement(template_id, decision.normalized_signals)
        if deferred:
            # Agreement scripts promise the document
            logger.info("Holding %s on %s: %s before the agreement", template_id, thread_id, ", ".join(deferred))
            decision.ok_to_auto_respond = False
            decision.blocking_reasons.append(
                f"agreementDeferred: {' OR '.join(deferred)} without an agreement request (manual)"
            )
            return await self._hold_or_stop(event, thread_id, context, decision)

        try:
            reply_text = render_reply(template_id, classification.extracted, classification.flags)
        except KeyError as e:
            logger.error("No script for auto-eligible template %s", template_id)
            decision.ok_to_auto_respond = False
            decision.blocking_reasons.append(f"noScript: {e}")
            return await self._hold_or_stop(event, thread_id, context, decision)

        try:
            await self._send(event, thread_id, context, reply_text)
        except ReachinboxError as e:
            logger.error("Failed to send reply for %s: %s", message_id, e)
            await self.alerter.send_error_alert(
                "Failed to send reply",
                self._alert_meta(event, thread_id, template_id=template_id, error=str(e)),
            )
            return PipelineResult(
                Outcome.SEND_FAILED, message_id, thread_id,
                template_id=template_id, decision=decision, detail=str(e),
            )

        self.store.increment_auto_replies_sent(thread_id)
        self.store.set_last_template_id(thread_id, template_id)
        if Signal.WANTS_MORE_INFO in decision.normalized_signals:
            count = self.store.increment_more_info_loop(thread_id)
            logger.info("More-info loop on thread %s, count=%d", thread_id, count)

        agreement_sent = False
        if template_id in AGREEMENT_TEMPLATES:
            agreement_sent = await self._dispatch_agreement(event, thread_id, context, classification, decision)

        self.store.mark_processed(message_id, thread_id)
        logger.info("Reply sent: template_id=%s, thread_id=%s", template_id, thread_id)
        return PipelineResult(
            Outcome.REPLIED, message_id, thread_id,
            template_id=template_id, decision=decision,
            reply_sent=True, agreement_sent=agreement_sent,
        )

    async def _load_thread(self, event: InboundEvent, thread_id: str) -> _ThreadContext:
        context = _ThreadContext(body=(event.body or "").strip(), sender=event.lead_email)
        try:
            context.messages = await self.reachinbox.fetch_thread(event.email_account, thread_id)
        except ReachinboxError as e:
            logger.warning("Failed to fetch thread %s (non-fatal): %s", thread_id, e)
            context.messages = []

        account = normalize_address(event.email_account)
        inbound = [m for m in context.messages if normalize_address(m.from_address) != account]
        context.latest = latest_message(inbound) if inbound else latest_message(context.messages)

        if context.latest is not None:
            if not context.body:
                context.body = plain_text(context.latest.body)
            if normalize_address(context.latest.from_address) != account:
                context.sender = context.latest.from_address or event.lead_email
        context.subject = event.subject or (context.latest.subject if context.latest else "") or DEFAULT_SUBJECT
        return context

    def _update_ownership(self, event: InboundEvent, thread_id: str, context: _ThreadContext) -> None:
        if not context.messages:
            return
        verdict = detect_manual_owner(
            context.messages,
            event.email_account,
            self.marker,
            rollout_cutoff=self._rollout_cutoff(),
        )
        if verdict.manual:
            if not self.store.is_manual_owner(thread_id):
                logger.info("Human takeover detected on %s: %s", thread_id, verdict.reason)
            self.store.mark_manual_owner(thread_id)
        elif self.store.get_manual_owner_source(thread_id) == "detected":
            self.store.reset_manual_owner(thread_id)
            logger.info("Cleared false-positive manual owner on %s: %s", thread_id, verdict.reason)

    async def _classify(self, event: InboundEvent, context: _ThreadContext) -> Classification:
        if len(context.body) < 2:
            # Nothing to classify; the engine stops on the blank signal
            return Classification(template_id=Template.AUTO_REPLY_BLANK)
        meta = {"lead_email": event.lead_email, "lead_name": event.lead_name}
        return await asyncio.to_thread(self.classifier.classify, context.body, meta)

    def _lock_role(self, thread_id: str, classification: Classification, signals) -> None:
        role = classification.extracted.get("role")
        if not role:
            return
        if signals & {Signal.ROLE_AMBIGUOUS, Signal.MULTIPLE_ROLES}:
            return
        confirmed = (
            classification.template_id == Template.ROLE_CONFIRMED_FOLLOWUP
            or self.store.get_last_template_id(thread_id) in ROLE_GUESSING_TEMPLATES
        )
        if confirmed and self.store.add_locked_role(thread_id, role):
            logger.info("Locked role %r on thread %s", role, thread_id)

    async def _hold_or_stop(
        self,
        event: InboundEvent,
        thread_id: str,
        context: _ThreadContext,
        decision: Decision,
    ) -> PipelineResult:
        message_id = event.message_id

        if decision.hard_stop == Template.UNSUBSCRIBE:
            self.store.mark_unsubscribed(event.lead_email)
            if normalize_address(context.sender) != normalize_address(event.lead_email):
                self.store.mark_unsubscribed(context.sender)
            self.store.mark_processed(message_id, thread_id)
            logger.info("Unsubscribe: %s marked Do-Not-Contact", event.lead_email)
            return PipelineResult(
                Outcome.HARD_STOP, message_id, thread_id,
                template_id=decision.effective_template_id, decision=decision,
                detail="unsubscribed (Do-Not-Contact)",
            )

        if decision.hard_stop:
            self.store.mark_processed(message_id, thread_id)
            logger.info("Hard stop %s on %s, no reply", decision.hard_stop, thread_id)
            return PipelineResult(
                Outcome.HARD_STOP, message_id, thread_id,
                template_id=decision.effective_template_id, decision=decision,
                detail=decision.blocking_reasons[0] if decision.blocking_reasons else decision.hard_stop,
            )

        item_id = self.review_queue.add(
            thread_id=thread_id,
            message_id=message_id,
            template_id=decision.effective_template_id,
            confidence=decision.confidence,
            reasons=decision.blocking_reasons,
            lead_email=event.lead_email,
            body=context.body,
        )
        await self.alerter.send_warning_alert(
            "Manual review required",
            self._alert_meta(
                event, thread_id,
                event="manual_review",
                template_id=decision.effective_template_id,
                confidence=f"{decision.confidence:.2f}",
                reasons=decision.blocking_reasons,
            ),
        )
        self.store.mark_processed(message_id, thread_id)
        return PipelineResult(
            Outcome.HELD_FOR_REVIEW, message_id, thread_id,
            template_id=decision.effective_template_id, decision=decision,
            review_item_id=item_id, detail="; ".join(decision.blocking_reasons),
        )

    async def _send(
        self,
        event: InboundEvent,
        thread_id: str,
        context: _ThreadContext,
        text: str,
        to: Optional[str] = None,
    ) -> None:
        in_reply_to, references, original = threading_headers(context.latest, event.message_id, thread_id)
        await self.reachinbox.send_email(
            from_address=event.email_account,
            to=to or event.lead_email or context.sender,
            subject=context.subject,
            body=text,
            in_reply_to=in_reply_to,
            references=references,
            original_message_id=original,
            marker=self.marker,
        )

    async def _dispatch_agreement(
        self,
        event: InboundEvent,
        thread_id: str,
        context: _ThreadContext,
        classification: Classification,
        decision: Decision,
    ) -> bool:
        """Send the agreement once per thread. Returns True if it went out now."""
        if self.store.is_agreement_sent(thread_id):
            return False

        signals = decision.normalized_signals
        if Signal.ALREADY_SIGNED in signals:
            self.store.mark_agreement_sent(thread_id)
            logger.info("Lead reports already signed on %s, not re-sending", thread_id)
            return False

        deferred = self._deferred_agreement(decision.effective_template_id, signals)
        if deferred:
            logger.info("Skipping agreement on %s: %s", thread_id, ", ".join(deferred))
            return False

        lead = normalize_address(event.lead_email)
        last_from = self.store.get_last_from(thread_id)
        forwarded = bool(last_from and last_from != lead)
        recipient = AgreementRecipient(
            email=last_from if forwarded else event.lead_email,
            name=classification.extracted.get("contact_name") if forwarded else event.lead_name,
            company=classification.extracted.get("company_name"),
        )

        try:
            document = await self.esign.send_agreement(recipient)
        except SignWellError as e:
            logger.error("Failed to send agreement on %s: %s", thread_id, e)
            await self.alerter.send_error_alert(
                "Failed to send agreement",
                self._alert_meta(event, thread_id, template_id=decision.effective_template_id, error=str(e)),
            )
            return False

        self.store.mark_agreement_sent(thread_id)
        await self.alerter.send_alert(
            f"Agreement sent: {decision.effective_template_id}",
            self._alert_meta(
                event, thread_id,
                event="agreement_sent",
                template_id=decision.effective_template_id,
                document_id=document.get("id"),
            ),
        )

        try:
            await self._send(event, thread_id, context, follow_up_text(), to=recipient.email)
        except ReachinboxError as e:
            logger.error("Failed to send follow-up after agreement on %s: %s", thread_id, e)
        return True
