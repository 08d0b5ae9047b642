"""
SignWell Handler

Parses SignWell document webhooks and decides which ones deserve an alert.

SignWell signs each delivery: event.hash is the hex HMAC-SHA256 of
"<event.type>@<event.time>" keyed with the webhook secret.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .base import BaseHandler

logger = logging.getLogger("autoresponder.gateway.signwell")

SIGNED_EVENTS = {"document_completed", "document_signed"}
DECLINED_EVENTS = {"document_declined"}
VIEWED_EVENTS = {"document_viewed"}


@dataclass
class SignWellEvent:
    """A document lifecycle event"""
    event_type: str
    document_id: str = ""
    document_name: str = ""
    signer_email: str = ""
    signer_name: str = ""
    status: str = ""
    raw_data: Optional[Dict[str, Any]] = field(default=None, repr=False)


def _normalize_type(event_type: str) -> str:
    # "document.completed" and "document_completed" are the same event
    return (event_type or "").strip().lower().replace(".", "_")


class SignWellHandler(BaseHandler):
    """Handler for SignWell document webhooks"""

    def __init__(self, webhook_secret: str = ""):
        super().__init__("signwell", secret=webhook_secret)

    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[SignWellEvent]:
        event = raw_data.get("event")
        if isinstance(event, dict):
            # Current format: {"event": {"type", "time", "hash"}, "data": {"object": {...}}}
            event_type = event.get("type", "")
            document = (raw_data.get("data") or {}).get("object") or {}
            recipients = document.get("recipients") or []
            signer = next(
                (r for r in recipients if r.get("status") in ("completed", "signed", "declined")),
                recipients[0] if recipients else {},
            )
            return SignWellEvent(
                event_type=_normalize_type(event_type),
                document_id=str(document.get("id") or ""),
                document_name=str(document.get("name") or ""),
                signer_email=str(signer.get("email") or ""),
                signer_name=str(signer.get("name") or ""),
                status=str(document.get("status") or ""),
                raw_data=raw_data,
            )

        if isinstance(event, str) and event:
            # Flat format
            return SignWellEvent(
                event_type=_normalize_type(event),
                document_id=str(raw_data.get("document_id") or ""),
                document_name=str(raw_data.get("document_name") or ""),
                signer_email=str(raw_data.get("signer_email") or ""),
                signer_name=str(raw_data.get("signer_name") or ""),
                status=str(raw_data.get("status") or ""),
                raw_data=raw_data,
            )

        return None

    def verify_signature(self, body: bytes, signature: str = "") -> bool:
        """Check event.hash; the signature header is unused"""
        if not self.verifies:
            return True
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return False
        event = data.get("event") if isinstance(data, dict) else None
        if not isinstance(event, dict):
            return False

        message = f"{event.get('type', '')}@{event.get('time', '')}".encode()
        expected = hmac.new(self._secret.encode(), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, str(event.get("hash") or ""))

    def alert_for(self, event: SignWellEvent) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Alert text and metadata for an event, or None if it is not alert-worthy.
        """
        label = event.document_name or event.document_id
        metadata = {
            "document_id": event.document_id,
            "lead_email": event.signer_email,
            "lead_name": event.signer_name,
        }
        if event.event_type in SIGNED_EVENTS:
            return f"Agreement signed: {label}", {**metadata, "event": "document_signed"}
        if event.event_type in DECLINED_EVENTS:
            return f"Agreement declined: {label}", {**metadata, "event": "document_declined"}
        if event.event_type in VIEWED_EVENTS:
            logger.info("Document viewed: %s by %s", event.document_id, event.signer_email)
            return None
        logger.info("Unhandled SignWell event: %s", event.event_type)
        return None
